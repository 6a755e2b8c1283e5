"""Total propagated uncertainty (TPU) of georeferenced lidar points.

The input covariance is block diagonal over the measurement variables
(platform position, platform attitude, boresight, lever arm, scan
angle, range) and is mapped into the world frame through the
measurement Jacobian::

    C = J C_in J^T
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from ..common.errors import InvalidCovariance, MissingInput, SingularJacobian
from ..common.point import PointMeasurement
from ..common.sensor import SensorConfig
from ..navigation.trajectory import PoseSample
from .measurement import VARIABLES, LidarMeasurement


@dataclass(frozen=True)
class TpuResult:
    """Per-point uncertainty in metres.

    `incidence_angle` is in radians and is `None` when no surface normal
    was available.
    """

    sigma_x: float
    sigma_y: float
    sigma_horizontal: float
    sigma_vertical: float
    sigma_magnitude: float
    incidence_angle: Optional[float] = None
    covariance: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    @property
    def incidence_angle_degrees(self) -> Optional[float]:
        if self.incidence_angle is None:
            return None
        return math.degrees(self.incidence_angle)

    def to_dict(self) -> Dict[str, float]:
        """Named attributes; a missing incidence angle becomes NaN."""
        incidence = self.incidence_angle_degrees
        return {
            "SigmaX": self.sigma_x,
            "SigmaY": self.sigma_y,
            "SigmaHorizontal": self.sigma_horizontal,
            "SigmaVertical": self.sigma_vertical,
            "SigmaMagnitude": self.sigma_magnitude,
            "IncidenceAngle": math.nan if incidence is None else incidence,
        }


def _diagonal(sigmas) -> np.ndarray:
    return np.diag(np.square(np.asarray(sigmas, dtype=float)))


def _check_block(block: np.ndarray, name: str, tolerance: float = 1e-12) -> np.ndarray:
    block = np.asarray(block, dtype=float)
    if block.shape != (3, 3) or not np.all(np.isfinite(block)):
        raise InvalidCovariance(f"{name} covariance must be a finite 3x3 matrix")
    scale = max(float(np.max(np.abs(block))), 1.0)
    if not np.allclose(block, block.T, rtol=0.0, atol=tolerance * scale):
        raise InvalidCovariance(f"{name} covariance is not symmetric")
    if np.min(np.linalg.eigvalsh(block)) < -tolerance * scale:
        raise InvalidCovariance(f"{name} covariance is not positive semi-definite")
    return block


def input_covariance(
    pose: PoseSample,
    config: SensorConfig,
    range_: Optional[float] = None,
    incidence_angle: Optional[float] = None,
) -> np.ndarray:
    """Assemble the 14×14 input covariance.

    Platform blocks come from the pose when it carries covariances and
    from the configured platform sigmas otherwise.  When both the range
    and the incidence angle are known, beam divergence adds a footprint
    term to the range variance.

    Raises
    ------
    MissingInput
        If a required standard deviation is not configured.
    InvalidCovariance
        If a pose covariance block is not symmetric positive
        semi-definite.
    """
    uncertainty = config.uncertainty

    def block(given, sigmas, name):
        if given is not None:
            return _check_block(given, name)
        if sigmas is None:
            raise MissingInput(f"no {name} uncertainty in the trajectory or the configuration")
        return _diagonal(sigmas)

    def sigmas(value, name):
        if value is None:
            raise MissingInput(f"{name} uncertainty is not configured")
        return value

    range_variance = sigmas(uncertainty.range, "range") ** 2
    if range_ is not None and incidence_angle is not None and uncertainty.beam_divergence > 0.0:
        # grazing angle either side of the normal
        theta = min(incidence_angle, math.pi - incidence_angle)
        footprint = range_ * math.tan(uncertainty.beam_divergence / 2.0) * math.tan(theta)
        range_variance += footprint ** 2

    covariance = np.zeros((len(VARIABLES), len(VARIABLES)))
    covariance[0:3, 0:3] = block(pose.position_covariance, uncertainty.platform_position, "platform position")
    covariance[3:6, 3:6] = block(pose.attitude_covariance, uncertainty.platform_attitude, "platform attitude")
    covariance[6:9, 6:9] = _diagonal(sigmas(uncertainty.boresight, "boresight"))
    covariance[9:12, 9:12] = _diagonal(sigmas(uncertainty.lever_arm, "lever arm"))
    covariance[12, 12] = sigmas(uncertainty.scan_angle, "scan angle") ** 2
    covariance[13, 13] = range_variance
    return covariance


def propagate_covariance(jacobian: np.ndarray, covariance: np.ndarray, max_condition: float = 1e12) -> np.ndarray:
    """Return ``J C J^T`` after checking the Jacobian.

    Raises
    ------
    SingularJacobian
        If the Jacobian is not finite or its condition number exceeds
        `max_condition`.
    """
    jacobian = np.asarray(jacobian, dtype=float)
    if jacobian.shape != (3, covariance.shape[0]):
        raise ValueError(f"Jacobian shape {jacobian.shape} does not match covariance {covariance.shape}")
    if not np.all(np.isfinite(jacobian)):
        raise SingularJacobian("Jacobian has non-finite entries")
    singular = np.linalg.svd(jacobian, compute_uv=False)
    condition = singular[0] / singular[-1] if singular[-1] > 0.0 else math.inf
    if condition > max_condition:
        raise SingularJacobian(f"Jacobian condition number {condition:.3g} exceeds {max_condition:.3g}")
    output = jacobian @ covariance @ jacobian.T
    return 0.5 * (output + output.T)


def summarize(covariance: np.ndarray, incidence_angle: Optional[float] = None) -> TpuResult:
    """Reduce a 3×3 world-frame covariance to the per-point sigmas."""
    variances = np.clip(np.diag(covariance), 0.0, None)
    return TpuResult(
        sigma_x=float(np.sqrt(variances[0])),
        sigma_y=float(np.sqrt(variances[1])),
        sigma_horizontal=float(np.sqrt(variances[0] + variances[1])),
        sigma_vertical=float(np.sqrt(variances[2])),
        sigma_magnitude=float(np.sqrt(variances.sum())),
        incidence_angle=incidence_angle,
        covariance=covariance,
    )


def propagate(
    point: PointMeasurement,
    pose: PoseSample,
    config: SensorConfig,
    measurement: Optional[LidarMeasurement] = None,
) -> TpuResult:
    """Compute the TPU of one measured point.

    Parameters
    ----------
    point : PointMeasurement
        The return, with an optional surface normal.
    pose : PoseSample
        Platform pose at the time of the return.
    config : SensorConfig
    measurement : LidarMeasurement, optional
        Precomputed measurement model for `point`.
    """
    if measurement is None:
        measurement = LidarMeasurement.from_point(point, pose, config)
    incidence = None if point.normal is None else measurement.incidence_angle(point.normal)
    covariance = input_covariance(pose, config, measurement.range, incidence)
    output = propagate_covariance(measurement.jacobian(), covariance, config.max_condition)
    return summarize(output, incidence)
