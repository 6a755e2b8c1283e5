"""Shared fixtures: a sensor configuration and a synthetic calibration flight."""

import math

import numpy as np
import pytest

from src.common.sensor import SensorConfig, Uncertainty
from src.mapping.plane import Plane
from src.mapping.simulation import opposite_flight_lines, simulate_points


@pytest.fixture
def sensor_config():
    """Configuration with every uncertainty source set."""
    return SensorConfig(
        boresight=(0.0, 0.0, 0.0),
        lever_arm=(0.0, 0.0, 0.0),
        uncertainty=Uncertainty(
            range=0.02,
            scan_angle=math.radians(0.001),
            boresight=tuple(math.radians(v) for v in (0.001, 0.001, 0.004)),
            lever_arm=(0.02, 0.02, 0.02),
            platform_position=(0.02, 0.02, 0.04),
            platform_attitude=tuple(math.radians(v) for v in (0.0025, 0.0025, 0.005)),
        ),
        utm_zone=11,
    )


CALIBRATION_PLANES = [
    # flat ground, a slope rising to the north and a slope rising to the east
    ((0.0, 0.0, 1.0), (0.0, 0.0, 0.0)),
    ((0.0, -0.5, math.sqrt(3.0) / 2.0), (0.0, 50.0, 0.0)),
    ((-0.5, 0.0, math.sqrt(3.0) / 2.0), (0.0, -50.0, 0.0)),
]


@pytest.fixture(scope="session")
def calibration_scene():
    """Two opposite flight lines over three planar patches.

    Returns are cast with a misaligned boresight and georeferenced with
    the nominal (zero) boresight.
    """
    nominal = SensorConfig(
        boresight=(0.0, 0.0, 0.0),
        lever_arm=(0.1, -0.2, 0.3),
        uncertainty=Uncertainty(range=0.02, scan_angle=1e-5),
    )
    misalignment = np.radians([0.3, -0.2, 0.4])
    true_config = nominal.with_adjustment(boresight=misalignment)

    trajectory = opposite_flight_lines()
    first_pass = np.arange(trajectory.start_time, trajectory.start_time + 6.0, 0.1)
    second_pass = np.arange(trajectory.end_time - 6.0, trajectory.end_time, 0.1)
    scan_angles = np.arange(-30.0, 30.5, 1.0)

    patches = []
    for normal, centre in CALIBRATION_PLANES:
        plane = Plane(normal=np.array(normal), point=np.array(centre))
        patches.append(simulate_points(
            trajectory, plane, np.concatenate([first_pass, second_pass]), scan_angles,
            true_config, nominal, center=centre, half_size=10.0,
        ))
    return {
        "trajectory": trajectory,
        "nominal": nominal,
        "true_config": true_config,
        "misalignment": misalignment,
        "patches": patches,
        "first_pass": first_pass,
        "scan_angles": scan_angles,
    }
