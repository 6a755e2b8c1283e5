"""Synthetic flight lines and scanner returns.

Used to build data with a known calibration error: returns are cast
onto planes with a "true" configuration and then georeferenced with a
nominal one, exactly as a point cloud processed with a wrong boresight
would look.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..common.point import PointMeasurement
from ..common.sensor import SensorConfig
from ..navigation.trajectory import PoseSample, Trajectory
from .frames import FrameTransformer, body_to_world_matrix, sensor_to_world
from .plane import Plane


def straight_line_trajectory(
    start,
    end,
    speed: float = 50.0,
    rate: float = 100.0,
    start_time: float = 0.0,
    roll: float = 0.0,
    pitch: float = 0.0,
    position_sigma: Optional[Sequence[float]] = None,
    attitude_sigma: Optional[Sequence[float]] = None,
    **kwargs,
) -> Trajectory:
    """A constant-velocity flight line from `start` to `end` (world frame).

    Yaw follows the direction of travel.  Sigmas, when given, become
    constant diagonal covariances on every sample.
    """
    start = np.asarray(start, dtype=float)
    end = np.asarray(end, dtype=float)
    delta = end - start
    length = float(np.linalg.norm(delta))
    if length == 0.0 or speed <= 0.0 or rate <= 0.0:
        raise ValueError("a flight line needs distinct end points, positive speed and rate")
    duration = length / speed
    count = max(int(math.ceil(duration * rate)), 1) + 1
    fraction = np.linspace(0.0, 1.0, count)
    yaw = math.atan2(delta[0], delta[1])
    return Trajectory.from_arrays(
        start_time + fraction * duration,
        start + np.outer(fraction, delta),
        np.tile([roll, pitch, yaw], (count, 1)),
        position_sigmas=None if position_sigma is None else np.tile(position_sigma, (count, 1)),
        attitude_sigmas=None if attitude_sigma is None else np.tile(attitude_sigma, (count, 1)),
        **kwargs,
    )


def opposite_flight_lines(
    separation: float = 40.0,
    altitude: float = 100.0,
    length: float = 300.0,
    speed: float = 50.0,
    rate: float = 100.0,
    pause: float = 60.0,
    position_sigma: Optional[Sequence[float]] = None,
    attitude_sigma: Optional[Sequence[float]] = None,
    **kwargs,
) -> Trajectory:
    """Two parallel flight lines flown in opposite directions.

    The first line heads north along ``x = -separation / 2`` starting at
    time zero, the second heads south along ``x = +separation / 2``
    after `pause` seconds.  Both are centred on the origin.  Unless
    `max_gap` is given, queries between the lines raise `OutOfRange`.
    """
    half = length / 2.0
    offset = separation / 2.0
    sigmas = {"position_sigma": position_sigma, "attitude_sigma": attitude_sigma}
    first = straight_line_trajectory((-offset, -half, altitude), (-offset, half, altitude), speed, rate, **sigmas)
    second = straight_line_trajectory(
        (offset, half, altitude), (offset, -half, altitude), speed, rate,
        start_time=first.end_time + pause, **sigmas,
    )
    kwargs.setdefault("max_gap", 2.0 / rate)
    return Trajectory(list(first) + list(second), **kwargs)


def beam_direction(pose: PoseSample, config: SensorConfig, scan_angle: float) -> np.ndarray:
    """Unit world-frame direction of a beam at `scan_angle` radians."""
    sensor = np.array([0.0, math.sin(scan_angle), math.cos(scan_angle)])
    return body_to_world_matrix(pose.attitude) @ config.boresight_matrix @ sensor


def cast_return(
    pose: PoseSample,
    config: SensorConfig,
    scan_angle: float,
    plane: Plane,
) -> Optional[Tuple[float, np.ndarray]]:
    """Intersect a beam with a plane.

    Returns
    -------
    (range, point) or None
        None when the beam is parallel to the plane or points away from it.
    """
    origin = FrameTransformer(config).sensor_origin(pose)
    direction = beam_direction(pose, config, scan_angle)
    denominator = float(np.dot(plane.normal, direction))
    if abs(denominator) < 1e-12:
        return None
    distance = (plane.offset - float(np.dot(plane.normal, origin))) / denominator
    if distance <= 0.0:
        return None
    return distance, origin + distance * direction


def simulate_points(
    trajectory: Trajectory,
    plane: Plane,
    times: Sequence[float],
    scan_angles: Sequence[float],
    true_config: SensorConfig,
    nominal_config: Optional[SensorConfig] = None,
    center=None,
    half_size: Optional[float] = None,
    with_normals: bool = True,
) -> List[PointMeasurement]:
    """Simulate point cloud returns from a planar surface.

    Parameters
    ----------
    trajectory : Trajectory
    plane : Plane
        Surface hit by the beams.
    times : sequence of float
        Trajectory times of the scan lines.
    scan_angles : sequence of float
        Scan angles in degrees.
    true_config : SensorConfig
        Calibration the returns are cast with.
    nominal_config : SensorConfig, optional
        Calibration the returns are georeferenced with.  Defaults to
        `true_config`, giving points exactly on the plane.
    center, half_size : optional
        Keep only returns whose true position lies within `half_size`
        of `center` in easting and northing.
    with_normals : bool, optional
        Attach the plane normal, oriented away from the scanner.
    """
    nominal_config = true_config if nominal_config is None else nominal_config
    center = None if center is None else np.asarray(center, dtype=float)
    points = []
    for time in times:
        pose = trajectory.interpolate(time)
        for angle in scan_angles:
            radians = math.radians(angle)
            hit = cast_return(pose, true_config, radians, plane)
            if hit is None:
                continue
            range_, true_point = hit
            if center is not None and np.any(np.abs(true_point[:2] - center[:2]) > half_size):
                continue
            recorded = sensor_to_world(
                range_ * np.array([0.0, math.sin(radians), math.cos(radians)]),
                pose.position,
                pose.attitude,
                nominal_config.boresight,
                nominal_config.lever_arm,
            )
            normal = None
            if with_normals:
                normal = plane.normal
                if np.dot(normal, beam_direction(pose, true_config, radians)) < 0.0:
                    normal = -normal
            points.append(PointMeasurement(
                x=float(recorded[0]),
                y=float(recorded[1]),
                z=float(recorded[2]),
                scan_angle=float(angle),
                gps_time=float(time) - nominal_config.time_offset,
                normal=None if normal is None else tuple(normal),
            ))
    return points
