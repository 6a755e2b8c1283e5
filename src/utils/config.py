"""Configuration loader.

Reads configuration files in YAML format and returns a dictionary.
Sensor configuration files should reside in the `configs/` directory
at the project root; see ``configs/sensor.yaml`` for the schema.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML configuration file into a dictionary.

    Parameters
    ----------
    path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    dict
        Parsed configuration dictionary.  An empty file yields an
        empty dict.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the document is not a mapping.
    """
    cfg_path = Path(path)
    if not cfg_path.is_file():
        raise FileNotFoundError(f"configuration file not found: {cfg_path}")
    with open(cfg_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"configuration in {cfg_path} must be a mapping, got {type(data).__name__}")
    return data


def save_config(data: Dict[str, Any], path: Union[str, Path]) -> None:
    """Write a dictionary to a YAML file, creating parent directories."""
    cfg_path = Path(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with open(cfg_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, sort_keys=False)
