"""Sensor and platform configuration.

A `SensorConfig` holds the static mounting geometry of a scanner
(boresight rotation and lever arm) and the noise model used for error
propagation.  It is loaded once per processing run and never mutated;
adjusted configurations are new instances.

The semantic schema accepted by :meth:`SensorConfig.from_dict`::

    boresight: {roll: 0.0, pitch: 0.0, yaw: 0.0}   # or [roll, pitch, yaw]
    lever_arm: [x, y, z]                           # metres, body frame
    angle_units: degrees                           # or radians (default)
    utm_zone: 11
    time_offset: 0.0                               # seconds
    scan_angle_source: reported                    # or reconstructed
    max_condition: 1.0e12
    uncertainty:
      range: 0.02
      scan_angle: 0.001
      boresight: [0.001, 0.001, 0.004]
      lever_arm: [0.02, 0.02, 0.02]
      platform_position: [0.02, 0.02, 0.04]        # east, north, up
      platform_attitude: [0.0025, 0.0025, 0.005]   # roll, pitch, yaw
      beam_divergence: 0.0
"""

import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from .errors import MissingInput
from ..navigation.rotations import rotation_matrix
from ..utils.config import load_config, save_config

Vector3 = Tuple[float, float, float]

SCAN_ANGLE_SOURCES = ("reported", "reconstructed")
ANGLE_UNITS = ("radians", "degrees")


def _vector3(value: Any, name: str, keys: Tuple[str, str, str] = ("x", "y", "z")) -> Vector3:
    if isinstance(value, Mapping):
        missing = [k for k in keys if k not in value]
        if missing:
            raise MissingInput(f"{name} is missing {', '.join(missing)}")
        value = [value[k] for k in keys]
    values = tuple(float(v) for v in value)
    if len(values) != 3:
        raise ValueError(f"{name} must have three components, got {len(values)}")
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"{name} must be finite, got {values}")
    return values


def _sigmas(value: Any, name: str, keys: Tuple[str, str, str] = ("x", "y", "z")) -> Optional[Vector3]:
    if value is None:
        return None
    sigmas = _vector3(value, name, keys)
    if any(s < 0.0 for s in sigmas):
        raise ValueError(f"{name} standard deviations must be non-negative, got {sigmas}")
    return sigmas


def _sigma(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    sigma = float(value)
    if not math.isfinite(sigma) or sigma < 0.0:
        raise ValueError(f"{name} standard deviation must be a non-negative number, got {value}")
    return sigma


RPY = ("roll", "pitch", "yaw")


@dataclass(frozen=True)
class Uncertainty:
    """Standard deviations of the measurement and calibration inputs.

    Angles are in radians, distances in metres.  A block left as `None`
    is treated as missing and error propagation refuses to run without
    it, unless the trajectory supplies the corresponding covariance.
    """

    range: Optional[float] = None
    """Range measurement standard deviation."""

    scan_angle: Optional[float] = None
    """Scan angle measurement standard deviation."""

    boresight: Optional[Vector3] = None
    """Boresight roll, pitch and yaw standard deviations."""

    lever_arm: Optional[Vector3] = None
    """Lever arm x, y and z standard deviations."""

    platform_position: Optional[Vector3] = None
    """East, north, up platform position standard deviations, used when
    the trajectory carries no position covariance."""

    platform_attitude: Optional[Vector3] = None
    """Roll, pitch, yaw standard deviations, used when the trajectory
    carries no attitude covariance."""

    beam_divergence: float = 0.0
    """Full-angle laser beam divergence.  Zero disables the footprint
    contribution to range uncertainty."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], angle_scale: float = 1.0) -> "Uncertainty":
        """Build from a mapping, scaling angular entries by `angle_scale`."""

        def angles(values: Optional[Vector3]) -> Optional[Vector3]:
            if values is None:
                return None
            return tuple(v * angle_scale for v in values)

        scan_angle = _sigma(data.get("scan_angle"), "scan_angle")
        return cls(
            range=_sigma(data.get("range"), "range"),
            scan_angle=None if scan_angle is None else scan_angle * angle_scale,
            boresight=angles(_sigmas(data.get("boresight"), "boresight", RPY)),
            lever_arm=_sigmas(data.get("lever_arm"), "lever_arm"),
            platform_position=_sigmas(data.get("platform_position"), "platform_position"),
            platform_attitude=angles(_sigmas(data.get("platform_attitude"), "platform_attitude", RPY)),
            beam_divergence=(_sigma(data.get("beam_divergence", 0.0), "beam_divergence") or 0.0) * angle_scale,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "range": self.range,
            "scan_angle": self.scan_angle,
            "boresight": None if self.boresight is None else list(self.boresight),
            "lever_arm": None if self.lever_arm is None else list(self.lever_arm),
            "platform_position": None if self.platform_position is None else list(self.platform_position),
            "platform_attitude": None if self.platform_attitude is None else list(self.platform_attitude),
            "beam_divergence": self.beam_divergence,
        }


@dataclass(frozen=True)
class SensorConfig:
    """Static scanner mounting geometry and noise model."""

    boresight: Vector3
    """Boresight roll, pitch and yaw in radians (sensor to body)."""

    lever_arm: Vector3
    """Scanner origin relative to the navigation reference, body frame, metres."""

    uncertainty: Uncertainty = field(default_factory=Uncertainty)
    """Measurement and calibration standard deviations."""

    utm_zone: Optional[int] = None
    """UTM zone of the world frame, needed when projecting geodetic trajectories."""

    time_offset: float = 0.0
    """Seconds added to point GPS times before trajectory lookup."""

    scan_angle_source: str = "reported"
    """Use the point's reported scan angle or reconstruct it from geometry."""

    max_condition: float = 1e12
    """Largest acceptable condition number of a propagation Jacobian."""

    def __post_init__(self):
        object.__setattr__(self, "boresight", _vector3(self.boresight, "boresight", RPY))
        object.__setattr__(self, "lever_arm", _vector3(self.lever_arm, "lever_arm"))
        if self.scan_angle_source not in SCAN_ANGLE_SOURCES:
            raise ValueError(
                f"scan_angle_source must be one of {SCAN_ANGLE_SOURCES}, got {self.scan_angle_source!r}"
            )
        if not self.max_condition > 1.0:
            raise ValueError("max_condition must be greater than one")

    @property
    def boresight_matrix(self) -> np.ndarray:
        """Rotation taking sensor-frame vectors into the body frame."""
        return rotation_matrix(*self.boresight)

    def with_adjustment(
        self,
        boresight: Optional[Vector3] = None,
        lever_arm: Optional[Vector3] = None,
    ) -> "SensorConfig":
        """Return a copy with new boresight and/or lever arm values."""
        changes: Dict[str, Any] = {}
        if boresight is not None:
            changes["boresight"] = tuple(float(v) for v in boresight)
        if lever_arm is not None:
            changes["lever_arm"] = tuple(float(v) for v in lever_arm)
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SensorConfig":
        """Build a configuration from its semantic schema.

        Raises
        ------
        MissingInput
            If `boresight` or `lever_arm` is absent.
        ValueError
            If a value is malformed.
        """
        for key in ("boresight", "lever_arm"):
            if key not in data:
                raise MissingInput(f"sensor configuration is missing '{key}'")
        units = data.get("angle_units", "radians")
        if units not in ANGLE_UNITS:
            raise ValueError(f"angle_units must be one of {ANGLE_UNITS}, got {units!r}")
        scale = math.pi / 180.0 if units == "degrees" else 1.0
        boresight = tuple(v * scale for v in _vector3(data["boresight"], "boresight", RPY))
        utm_zone = data.get("utm_zone")
        return cls(
            boresight=boresight,
            lever_arm=_vector3(data["lever_arm"], "lever_arm"),
            uncertainty=Uncertainty.from_dict(data.get("uncertainty") or {}, angle_scale=scale),
            utm_zone=None if utm_zone is None else int(utm_zone),
            time_offset=float(data.get("time_offset", 0.0)),
            scan_angle_source=data.get("scan_angle_source", "reported"),
            max_condition=float(data.get("max_condition", 1e12)),
        )

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SensorConfig":
        """Load a configuration from a YAML file."""
        return cls.from_dict(load_config(path))

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the schema accepted by :meth:`from_dict`, in radians."""
        return {
            "boresight": dict(zip(RPY, self.boresight)),
            "lever_arm": list(self.lever_arm),
            "angle_units": "radians",
            "utm_zone": self.utm_zone,
            "time_offset": self.time_offset,
            "scan_angle_source": self.scan_angle_source,
            "max_condition": self.max_condition,
            "uncertainty": self.uncertainty.to_dict(),
        }

    def save(self, path: Union[str, Path]) -> None:
        """Write the configuration to a YAML file."""
        save_config(self.to_dict(), path)
