"""Utility functions for the georeferencing engine."""

from .logging import get_logger
from .config import load_config, save_config
from .geodesy import geodetic_to_utm, utm_to_geodetic, grid_convergence, geodetic_to_ecef, ecef_to_ned

__all__ = [
    "get_logger",
    "load_config",
    "save_config",
    "geodetic_to_utm",
    "utm_to_geodetic",
    "grid_convergence",
    "geodetic_to_ecef",
    "ecef_to_ned",
]
