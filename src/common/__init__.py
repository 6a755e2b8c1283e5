"""Types shared across the engine: errors, sensor configuration and point records."""

from .errors import (
    DegeneratePlane,
    DidNotConverge,
    InvalidCovariance,
    LidarTpuError,
    MissingInput,
    OutOfRange,
    SingularJacobian,
)
from .point import PointMeasurement
from .sensor import SensorConfig, Uncertainty

__all__ = [
    "LidarTpuError",
    "OutOfRange",
    "MissingInput",
    "InvalidCovariance",
    "SingularJacobian",
    "DegeneratePlane",
    "DidNotConverge",
    "PointMeasurement",
    "SensorConfig",
    "Uncertainty",
]
