"""Unit tests for the per-point engine."""

import math
from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from src.common.errors import DegeneratePlane, OutOfRange
from src.common.point import PointMeasurement
from src.mapping.simulation import straight_line_trajectory
from src.uncertainty.engine import (
    BODY_FRAME_COLUMNS,
    ENGINE_VERSION,
    TPU_COLUMNS,
    LidarEngine,
    Output,
)
from src.uncertainty.propagation import propagate


@pytest.fixture
def trajectory():
    # heading north at 10 m/s, directly above the origin at t=5
    return straight_line_trajectory((0.0, -50.0, 100.0), (0.0, 50.0, 100.0), speed=10.0, rate=10.0)


@pytest.fixture
def engine(trajectory, sensor_config):
    return LidarEngine(trajectory, sensor_config)


def ground_grid(gps_time=5.0, half=5.0):
    return [
        PointMeasurement(x, y, 0.0, scan_angle=math.degrees(math.atan2(x, 100.0)), gps_time=gps_time)
        for x in np.linspace(-half, half, 5)
        for y in np.linspace(-half, half, 5)
    ]


class TestPerPoint:
    """Test suite for single point operations."""

    def test_tpu_matches_propagation(self, engine, trajectory, sensor_config):
        """Test that engine TPU equals direct propagation at the interpolated pose."""
        point = PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=5.0)
        result = engine.tpu(point)
        expected = propagate(point, trajectory.interpolate(5.0), sensor_config)
        assert result == expected
        assert result.sigma_vertical == pytest.approx(math.sqrt(0.04 ** 2 + 0.02 ** 2 + 0.02 ** 2))

    def test_body_frame(self, engine):
        """Test body-frame coordinates of a ground point below a northbound pass."""
        result = engine.body_frame(PointMeasurement(3.0, 4.0, 0.0, scan_angle=0.0, gps_time=5.0))
        assert result.x == pytest.approx(4.0)
        assert result.y == pytest.approx(3.0)
        assert result.z == pytest.approx(100.0)
        assert result.yaw == pytest.approx(0.0)

    def test_time_offset(self, trajectory, sensor_config):
        """Test that the configured time offset shifts trajectory queries."""
        shifted = LidarEngine(trajectory, replace(sensor_config, time_offset=1.0))
        assert shifted.pose(4.0).time == pytest.approx(5.0)
        np.testing.assert_allclose(shifted.pose(4.0).position, [0.0, 0.0, 100.0], atol=1e-9)

    def test_out_of_range(self, engine):
        """Test that points outside the trajectory raise OutOfRange."""
        with pytest.raises(OutOfRange):
            engine.tpu(PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=100.0))

    def test_process_outputs(self, trajectory, sensor_config):
        """Test that only the requested outputs are computed."""
        point = PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=5.0)
        both = LidarEngine(trajectory, sensor_config).process(point)
        assert both.tpu is not None and both.body_frame is not None
        assert list(both.to_dict()) == list(TPU_COLUMNS) + list(BODY_FRAME_COLUMNS)
        tpu_only = LidarEngine(trajectory, sensor_config, outputs=Output.TPU).process(point)
        assert tpu_only.body_frame is None
        body_only = LidarEngine(trajectory, sensor_config, outputs=Output.BODY_FRAME).process(point)
        assert body_only.tpu is None

    def test_requires_an_output(self, trajectory, sensor_config):
        """Test that an empty output selection is rejected."""
        with pytest.raises(ValueError):
            LidarEngine(trajectory, sensor_config, outputs=Output(0))

    def test_version(self, engine):
        """Test the engine version attribute."""
        assert engine.version == ENGINE_VERSION == LidarEngine.version


class TestBatch:
    """Test suite for batch processing."""

    def test_failures_do_not_stop_the_batch(self, engine):
        """Test that failed points are recorded without stopping the batch."""
        points = [
            PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=5.0),
            PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=100.0),
            PointMeasurement(1.0, 1.0, 0.0, scan_angle=0.5, gps_time=5.1),
        ]
        outcomes = engine.process_batch(points)
        assert [o.ok for o in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, OutOfRange)
        assert [o.index for o in outcomes] == [0, 1, 2]

    def test_to_dataframe(self, engine):
        """Test the per-point table for successful and failed points."""
        points = [
            PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=5.0),
            PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=-3.0),
        ]
        df = engine.to_dataframe(engine.process_batch(points))
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == list(TPU_COLUMNS) + list(BODY_FRAME_COLUMNS) + ["Error"]
        assert df.index.name == "point"
        assert df.loc[0, "BodyFrameZ"] == pytest.approx(100.0)
        assert np.isnan(df.loc[0, "IncidenceAngle"])
        assert df["Error"].dtype == object
        assert df.loc[0, "Error"] is None
        assert df["SigmaX"].dtype == np.float64
        assert np.isnan(df.loc[1, "SigmaX"])
        assert "outside trajectory coverage" in df.loc[1, "Error"]


class TestBatchGeometry:
    """Test suite for plane fits, normals and boresight estimation."""

    def test_fit_plane_in_body_frame(self, engine):
        """Test plane fitting in the body frame."""
        plane = engine.fit_plane(ground_grid())
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, 1.0], atol=1e-12)
        assert plane.offset == pytest.approx(100.0)

    def test_fit_plane_in_world_frame(self, engine):
        """Test plane fitting in the world frame."""
        plane = engine.fit_plane(ground_grid(), frame="world")
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, -1.0], atol=1e-12)
        assert plane.rms == pytest.approx(0.0, abs=1e-12)

    def test_fit_plane_needs_three_points(self, engine):
        """Test that too few points raise DegeneratePlane in both frames."""
        for frame in ("body", "world"):
            with pytest.raises(DegeneratePlane):
                engine.fit_plane([], frame=frame)
            with pytest.raises(DegeneratePlane):
                engine.fit_plane(ground_grid()[:2], frame=frame)

    def test_fit_plane_rejects_unknown_frame(self, engine):
        """Test that an unknown frame name is rejected."""
        with pytest.raises(ValueError):
            engine.fit_plane(ground_grid(), frame="sensor")

    def test_estimate_normals(self, engine):
        """Test normal estimation on a flat grid."""
        normals = engine.estimate_normals(ground_grid(), k=6)
        np.testing.assert_allclose(normals, np.tile([0.0, 0.0, -1.0], (25, 1)), atol=1e-9)

    def test_estimate_boresight(self, calibration_scene):
        """Test boresight estimation through the engine."""
        engine = LidarEngine(calibration_scene["trajectory"], calibration_scene["nominal"])
        result = engine.estimate_boresight(calibration_scene["patches"])
        np.testing.assert_allclose(result.boresight_correction, calibration_scene["misalignment"], atol=1e-6)


class TestFromPaths:
    """Test suite for loading an engine from files."""

    def test_csv_trajectory_and_yaml_config(self, tmp_path, trajectory, sensor_config):
        """Test building an engine from a trajectory CSV and a YAML config."""
        table = pd.DataFrame({
            "time": trajectory.times,
            "x": trajectory.positions[:, 0],
            "y": trajectory.positions[:, 1],
            "z": trajectory.positions[:, 2],
            "roll": 0.0,
            "pitch": 0.0,
            "yaw": 0.0,
        })
        table.to_csv(tmp_path / "trajectory.csv", index=False)
        sensor_config.save(tmp_path / "sensor.yaml")

        engine = LidarEngine.from_paths(tmp_path / "trajectory.csv", tmp_path / "sensor.yaml", outputs=Output.TPU)
        assert engine.config == sensor_config
        assert len(engine.trajectory) == len(trajectory)
        point = PointMeasurement(0.0, 0.0, 0.0, scan_angle=0.0, gps_time=5.0)
        assert engine.tpu(point).sigma_x == pytest.approx(LidarEngine(trajectory, sensor_config).tpu(point).sigma_x)
