"""Per-point input record shared by the mapping and uncertainty code."""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class PointMeasurement:
    """One lidar return as delivered by a point cloud.

    The scan angle is in degrees, as stored in point cloud formats.  A
    zero-length or non-finite normal is treated as absent.
    """

    x: float
    y: float
    z: float
    scan_angle: float
    gps_time: float
    normal: Optional[Tuple[float, float, float]] = None

    def __post_init__(self):
        if self.normal is not None:
            normal = np.asarray(self.normal, dtype=float)
            if normal.shape != (3,):
                raise ValueError(f"normal must have three components, got shape {normal.shape}")
            length = float(np.linalg.norm(normal))
            if not math.isfinite(length) or length == 0.0:
                normal = None
            else:
                normal = tuple(float(v) for v in normal / length)
            object.__setattr__(self, "normal", normal)

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    @property
    def scan_angle_radians(self) -> float:
        return math.radians(self.scan_angle)
