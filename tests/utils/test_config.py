"""Unit tests for YAML configuration files and logging."""

import logging

import pytest

from src.utils.config import load_config, save_config
from src.utils.logging import LEVEL_ENV, get_logger


class TestConfigFiles:
    """Test suite for load_config and save_config."""

    def test_round_trip(self, tmp_path):
        """Test saving and loading a YAML file."""
        path = tmp_path / "nested" / "config.yaml"
        data = {"boresight": {"roll": 0.1, "pitch": 0.0, "yaw": -0.2}, "lever_arm": [1.0, 2.0, 3.0]}
        save_config(data, path)
        assert load_config(path) == data

    def test_key_order_is_kept(self, tmp_path):
        """Test that key order is preserved."""
        path = tmp_path / "config.yaml"
        save_config({"z": 1, "a": 2}, path)
        assert path.read_text().startswith("z:")

    def test_missing_file(self, tmp_path):
        """Test loading a missing file."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        """Test that an empty file loads as an empty mapping."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_rejects_non_mapping(self, tmp_path):
        """Test that a non-mapping document is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(path)


class TestLogging:
    """Test suite for get_logger."""

    def test_single_handler(self):
        """Test that repeated calls do not add handlers."""
        logger = get_logger("tests.single_handler")
        again = get_logger("tests.single_handler")
        assert logger is again
        assert len(logger.handlers) == 1

    def test_level_from_environment(self, monkeypatch):
        """Test the log level environment variable."""
        monkeypatch.setenv(LEVEL_ENV, "debug")
        assert get_logger("tests.env_level").level == logging.DEBUG

    def test_explicit_level(self):
        """Test an explicit log level."""
        assert get_logger("tests.explicit_level", level="warning").level == logging.WARNING
