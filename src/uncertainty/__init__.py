"""Lidar measurement model and total propagated uncertainty.

This package contains the georeferencing measurement model with its
Jacobian, covariance propagation into per-point uncertainties and the
`LidarEngine` that applies both to point cloud returns.
"""

from .measurement import VARIABLES, LidarMeasurement, PartialCheck, scanner_vector
from .propagation import TpuResult, input_covariance, propagate, propagate_covariance, summarize
from .engine import ENGINE_VERSION, LidarEngine, Output, PointOutcome, PointResult

__all__ = [
    "VARIABLES",
    "LidarMeasurement",
    "PartialCheck",
    "scanner_vector",
    "TpuResult",
    "input_covariance",
    "propagate",
    "propagate_covariance",
    "summarize",
    "ENGINE_VERSION",
    "LidarEngine",
    "Output",
    "PointOutcome",
    "PointResult",
]
