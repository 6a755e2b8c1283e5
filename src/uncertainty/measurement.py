"""Lidar measurement model and its partial derivatives.

A `LidarMeasurement` holds every input of the georeferencing equation
for one return::

    p = P + M R (l + B r),   r = d (0, sin a, cos a)

with platform position ``P``, attitude rotation ``R``, NED to ENU
permutation ``M``, lever arm ``l``, boresight rotation ``B``, range
``d`` and scan angle ``a``.  The 14 inputs are ordered as in
`VARIABLES`, which is also the column order of the Jacobian.
"""

import math
from dataclasses import dataclass, replace
from typing import List, Optional

import numpy as np

from ..common.point import PointMeasurement
from ..common.sensor import SensorConfig
from ..mapping.frames import FrameTransformer, body_to_world_matrix
from ..navigation.rotations import NED_TO_ENU, rotation_matrix, rotation_matrix_derivatives
from ..navigation.trajectory import PoseSample

VARIABLES = (
    "gnss_x",
    "gnss_y",
    "gnss_z",
    "imu_roll",
    "imu_pitch",
    "imu_yaw",
    "boresight_roll",
    "boresight_pitch",
    "boresight_yaw",
    "lever_arm_x",
    "lever_arm_y",
    "lever_arm_z",
    "scan_angle",
    "range",
)

DIMENSIONS = ("x", "y", "z")


def scanner_vector(range_: float, scan_angle: float) -> np.ndarray:
    """Sensor-frame vector of a return at `range_` and `scan_angle` (radians)."""
    return range_ * np.array([0.0, math.sin(scan_angle), math.cos(scan_angle)])


@dataclass(frozen=True)
class PartialCheck:
    """Comparison of an analytical partial with a finite difference."""

    variable: str
    dimension: str
    analytical: float
    numerical: float

    @property
    def error(self) -> float:
        return self.analytical - self.numerical


@dataclass(frozen=True, eq=False)
class LidarMeasurement:
    """Inputs of the georeferencing equation for one return."""

    position: np.ndarray
    attitude: np.ndarray
    boresight: np.ndarray
    lever_arm: np.ndarray
    scan_angle: float
    """Radians."""
    range: float
    time: Optional[float] = None
    point: Optional[np.ndarray] = None
    """Measured world point, when built from a point cloud return."""

    def __post_init__(self):
        for name in ("position", "attitude", "boresight", "lever_arm"):
            value = np.asarray(getattr(self, name), dtype=float)
            if value.shape != (3,):
                raise ValueError(f"{name} must have shape (3,), got {value.shape}")
            object.__setattr__(self, name, value)
        if self.point is not None:
            object.__setattr__(self, "point", np.asarray(self.point, dtype=float))
        object.__setattr__(self, "scan_angle", float(self.scan_angle))
        object.__setattr__(self, "range", float(self.range))

    @classmethod
    def from_point(cls, point: PointMeasurement, pose: PoseSample, config: SensorConfig) -> "LidarMeasurement":
        """Recover range and scan angle of a measured return.

        The range is the distance from the scanner origin to the point.
        The scan angle is the reported one unless the configuration asks
        for it to be reconstructed from the sensor-frame geometry.

        Raises
        ------
        ValueError
            If the point coincides with the scanner origin.
        """
        sensor = FrameTransformer(config).world_to_sensor(point.position, pose)
        range_ = float(np.linalg.norm(sensor))
        if range_ == 0.0:
            raise ValueError("point coincides with the scanner origin")
        if config.scan_angle_source == "reconstructed":
            scan_angle = math.atan2(sensor[1], sensor[2])
        else:
            scan_angle = point.scan_angle_radians
        return cls(
            position=pose.position,
            attitude=pose.attitude,
            boresight=np.array(config.boresight),
            lever_arm=np.array(config.lever_arm),
            scan_angle=scan_angle,
            range=range_,
            time=pose.time,
            point=point.position,
        )

    @property
    def parameters(self) -> np.ndarray:
        """The 14 inputs in `VARIABLES` order."""
        return np.concatenate([
            self.position,
            self.attitude,
            self.boresight,
            self.lever_arm,
            [self.scan_angle, self.range],
        ])

    def with_parameters(self, parameters) -> "LidarMeasurement":
        parameters = np.asarray(parameters, dtype=float)
        if parameters.shape != (len(VARIABLES),):
            raise ValueError(f"expected {len(VARIABLES)} parameters, got shape {parameters.shape}")
        return replace(
            self,
            position=parameters[0:3],
            attitude=parameters[3:6],
            boresight=parameters[6:9],
            lever_arm=parameters[9:12],
            scan_angle=parameters[12],
            range=parameters[13],
        )

    def with_variable(self, variable: str, value: float) -> "LidarMeasurement":
        parameters = self.parameters
        parameters[VARIABLES.index(variable)] = value
        return self.with_parameters(parameters)

    @property
    def scanner_vector(self) -> np.ndarray:
        return scanner_vector(self.range, self.scan_angle)

    def predicted_offset(self) -> np.ndarray:
        """World-frame vector from the platform position to the return."""
        body = self.lever_arm + rotation_matrix(*self.boresight) @ self.scanner_vector
        return body_to_world_matrix(self.attitude) @ body

    def georeference(self) -> np.ndarray:
        """World-frame position predicted by the georeferencing equation."""
        return self.position + self.predicted_offset()

    def sensor_origin(self) -> np.ndarray:
        return self.position + body_to_world_matrix(self.attitude) @ self.lever_arm

    def misalignment(self) -> np.ndarray:
        """Georeferenced position minus the measured point."""
        if self.point is None:
            raise ValueError("measurement has no measured point")
        return self.georeference() - self.point

    def line_of_sight(self) -> np.ndarray:
        """Unit world-frame direction from the scanner origin to the return."""
        target = self.point if self.point is not None else self.georeference()
        direction = target - self.sensor_origin()
        return direction / np.linalg.norm(direction)

    def incidence_angle(self, normal) -> float:
        """Angle in radians between the line of sight and a surface normal.

        The normal is expected to point away from the scanner, so a beam
        hitting a surface head on has an incidence angle of zero.
        """
        normal = np.asarray(normal, dtype=float)
        normal = normal / np.linalg.norm(normal)
        cosine = float(np.clip(np.dot(self.line_of_sight(), normal), -1.0, 1.0))
        return math.acos(cosine)

    def jacobian(self) -> np.ndarray:
        """Analytical 3×14 Jacobian of the georeferenced point."""
        rotation = rotation_matrix(*self.attitude)
        d_rotation = rotation_matrix_derivatives(*self.attitude)
        boresight = rotation_matrix(*self.boresight)
        d_boresight = rotation_matrix_derivatives(*self.boresight)
        r = self.scanner_vector
        body = self.lever_arm + boresight @ r
        mr = NED_TO_ENU @ rotation
        sa, ca = math.sin(self.scan_angle), math.cos(self.scan_angle)

        jacobian = np.empty((3, len(VARIABLES)))
        jacobian[:, 0:3] = np.eye(3)
        for k in range(3):
            jacobian[:, 3 + k] = NED_TO_ENU @ d_rotation[k] @ body
            jacobian[:, 6 + k] = mr @ d_boresight[k] @ r
        jacobian[:, 9:12] = mr
        jacobian[:, 12] = mr @ boresight @ (self.range * np.array([0.0, ca, -sa]))
        jacobian[:, 13] = mr @ boresight @ np.array([0.0, sa, ca])
        return jacobian

    def numerical_jacobian(self, step: float = 1e-6) -> np.ndarray:
        """Central finite-difference Jacobian, for checking :meth:`jacobian`."""
        parameters = self.parameters
        jacobian = np.empty((3, len(parameters)))
        for i in range(len(parameters)):
            forward = parameters.copy()
            backward = parameters.copy()
            forward[i] += step
            backward[i] -= step
            jacobian[:, i] = (
                self.with_parameters(forward).georeference() - self.with_parameters(backward).georeference()
            ) / (2.0 * step)
        return jacobian

    def check_partials(self, step: float = 1e-6) -> List[PartialCheck]:
        """Compare every analytical partial with its finite difference."""
        analytical = self.jacobian()
        numerical = self.numerical_jacobian(step)
        return [
            PartialCheck(variable, dimension, float(analytical[row, col]), float(numerical[row, col]))
            for col, variable in enumerate(VARIABLES)
            for row, dimension in enumerate(DIMENSIONS)
        ]
