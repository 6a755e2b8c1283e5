"""Geometry between the sensor, body and world frames.

This package provides the frame transforms of the lidar
georeferencing equation, least-squares plane fitting and the
estimation of boresight and lever arm corrections from planar patches.
"""

from .frames import BodyFrameResult, FrameTransformer, sensor_to_world
from .plane import Plane, estimate_normals, fit_plane
from .boresight import AdjustmentParameters, AdjustmentResult, BoresightAdjuster

__all__ = [
    "BodyFrameResult",
    "FrameTransformer",
    "sensor_to_world",
    "Plane",
    "fit_plane",
    "estimate_normals",
    "AdjustmentParameters",
    "AdjustmentResult",
    "BoresightAdjuster",
]
