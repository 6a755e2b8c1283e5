"""Conversions between the sensor, body and world frames.

The transforms follow the lidar georeferencing equation::

    p = P + M R (l + B s)

where ``P`` is the platform position, ``R`` the body to NED attitude
rotation, ``M`` the NED to ENU permutation, ``l`` the lever arm, ``B``
the boresight rotation and ``s`` the sensor-frame vector of a return.
Every function here is pure given a pose and a configuration, and
accepts either a single point of shape (3,) or a stack of shape (N, 3).
"""

from dataclasses import dataclass
from typing import Dict

import numpy as np

from ..common.sensor import SensorConfig
from ..navigation.rotations import NED_TO_ENU, rotation_matrix
from ..navigation.trajectory import PoseSample


@dataclass(frozen=True)
class BodyFrameResult:
    """A point in the platform body frame at its measurement time."""

    x: float
    """Forward, metres."""

    y: float
    """Starboard, metres."""

    z: float
    """Down, metres."""

    roll: float
    """Platform roll in radians."""

    pitch: float
    """Platform pitch in radians."""

    yaw: float
    """Platform yaw (grid heading) in radians."""

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z])

    def to_dict(self) -> Dict[str, float]:
        """Named attributes with attitude in degrees."""
        return {
            "BodyFrameX": self.x,
            "BodyFrameY": self.y,
            "BodyFrameZ": self.z,
            "Roll": float(np.degrees(self.roll)),
            "Pitch": float(np.degrees(self.pitch)),
            "Yaw": float(np.degrees(self.yaw)),
        }


def body_to_world_matrix(attitude) -> np.ndarray:
    """Rotation ``M R`` taking body-frame vectors into the world frame."""
    return NED_TO_ENU @ rotation_matrix(*attitude)


def sensor_to_world(
    sensor_points,
    position,
    attitude,
    boresight,
    lever_arm,
) -> np.ndarray:
    """Georeference sensor-frame vectors with explicit parameters.

    Parameters
    ----------
    sensor_points : array_like, shape (3,) or (N, 3)
        Vectors from the scanner origin to the returns, sensor frame.
    position : array_like, shape (3,)
        Platform position, world frame.
    attitude : array_like, shape (3,)
        Platform roll, pitch and yaw in radians.
    boresight : array_like, shape (3,)
        Boresight roll, pitch and yaw in radians.
    lever_arm : array_like, shape (3,)
        Lever arm in the body frame.

    Returns
    -------
    numpy.ndarray
        World-frame points with the shape of `sensor_points`.
    """
    body = np.asarray(lever_arm, dtype=float) + np.asarray(sensor_points, dtype=float) @ rotation_matrix(*boresight).T
    return np.asarray(position, dtype=float) + body @ body_to_world_matrix(attitude).T


class FrameTransformer:
    """Frame conversions for one scanner configuration.

    Parameters
    ----------
    config : SensorConfig
        Supplies the boresight and lever arm.
    """

    def __init__(self, config: SensorConfig):
        self.config = config
        self._boresight = config.boresight_matrix
        self._lever_arm = np.asarray(config.lever_arm, dtype=float)

    def sensor_to_body(self, sensor_points) -> np.ndarray:
        return self._lever_arm + np.asarray(sensor_points, dtype=float) @ self._boresight.T

    def body_to_sensor(self, body_points) -> np.ndarray:
        return (np.asarray(body_points, dtype=float) - self._lever_arm) @ self._boresight

    def body_to_world(self, body_points, pose: PoseSample) -> np.ndarray:
        rotation = body_to_world_matrix(pose.attitude)
        return pose.position + np.asarray(body_points, dtype=float) @ rotation.T

    def world_to_body(self, world_points, pose: PoseSample) -> np.ndarray:
        rotation = body_to_world_matrix(pose.attitude)
        return (np.asarray(world_points, dtype=float) - pose.position) @ rotation

    def sensor_to_world(self, sensor_points, pose: PoseSample) -> np.ndarray:
        return self.body_to_world(self.sensor_to_body(sensor_points), pose)

    def world_to_sensor(self, world_points, pose: PoseSample) -> np.ndarray:
        return self.body_to_sensor(self.world_to_body(world_points, pose))

    def sensor_origin(self, pose: PoseSample) -> np.ndarray:
        """World position of the scanner origin."""
        return self.body_to_world(self._lever_arm, pose)

    def to_body_frame(self, world_point, pose: PoseSample) -> BodyFrameResult:
        """Express a world-frame point in the body frame of `pose`.

        The point is relative to the navigation reference point, so the
        lever arm is not removed.
        """
        world_point = np.asarray(world_point, dtype=float)
        if world_point.shape != (3,):
            raise ValueError(f"expected a single point of shape (3,), got {world_point.shape}")
        x, y, z = self.world_to_body(world_point, pose)
        return BodyFrameResult(
            x=float(x),
            y=float(y),
            z=float(z),
            roll=pose.roll,
            pitch=pose.pitch,
            yaw=pose.yaw,
        )

    def to_world_frame(self, body: BodyFrameResult, pose: PoseSample) -> np.ndarray:
        """Inverse of :meth:`to_body_frame`."""
        return self.body_to_world(body.position, pose)
