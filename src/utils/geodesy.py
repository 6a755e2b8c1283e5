"""Geodetic utilities.

Conversions between WGS84 geodetic coordinates, UTM grid coordinates,
Earth-centred Earth-fixed (ECEF) coordinates and a local North-East-Down
frame.  The UTM conversions use the Krüger series to third order in
the third flattening, which is accurate to well below a millimetre
inside a zone.

All angles are in radians.  Geodetic points are ``(longitude,
latitude, height)``; UTM points are ``(easting, northing, height)``.
"""

import math
from typing import Tuple

import numpy as np

WGS84_A = 6378137.0
"""Semi-major axis in metres."""

WGS84_F = 1.0 / 298.257223563
"""Flattening."""

WGS84_B = WGS84_A * (1.0 - WGS84_F)
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)

UTM_K0 = 0.9996
UTM_FALSE_EASTING = 500000.0
UTM_FALSE_NORTHING_SOUTH = 10000000.0

_N = WGS84_F / (2.0 - WGS84_F)
_RECTIFYING_RADIUS = WGS84_A / (1.0 + _N) * (1.0 + _N ** 2 / 4.0 + _N ** 4 / 64.0)
_ALPHA = (
    _N / 2.0 - 2.0 / 3.0 * _N ** 2 + 5.0 / 16.0 * _N ** 3,
    13.0 / 48.0 * _N ** 2 - 3.0 / 5.0 * _N ** 3,
    61.0 / 240.0 * _N ** 3,
)
_BETA = (
    _N / 2.0 - 2.0 / 3.0 * _N ** 2 + 37.0 / 96.0 * _N ** 3,
    1.0 / 48.0 * _N ** 2 + 1.0 / 15.0 * _N ** 3,
    17.0 / 480.0 * _N ** 3,
)
_DELTA = (
    2.0 * _N - 2.0 / 3.0 * _N ** 2 - 2.0 * _N ** 3,
    7.0 / 3.0 * _N ** 2 - 8.0 / 5.0 * _N ** 3,
    56.0 / 15.0 * _N ** 3,
)


def central_meridian(zone: int) -> float:
    """Return the central meridian of a UTM zone in radians."""
    if not 1 <= zone <= 60:
        raise ValueError(f"UTM zone must be in 1..60, got {zone}")
    return math.radians(zone * 6.0 - 183.0)


def utm_zone(longitude: float) -> int:
    """Return the UTM zone number containing a longitude (radians)."""
    degrees = (math.degrees(longitude) + 180.0) % 360.0
    return int(degrees // 6.0) + 1


def geodetic_to_utm(longitude, latitude, height, zone: int, north: bool = True):
    """Project geodetic coordinates onto a UTM zone.

    Parameters
    ----------
    longitude, latitude : float or numpy.ndarray
        Geodetic coordinates in radians.
    height : float or numpy.ndarray
        Ellipsoidal height in metres; passed through unchanged.
    zone : int
        UTM zone number.
    north : bool, optional
        Northern hemisphere (default) or southern hemisphere false
        northing.

    Returns
    -------
    (easting, northing, height)
    """
    longitude = np.asarray(longitude, dtype=float)
    latitude = np.asarray(latitude, dtype=float)
    dlon = longitude - central_meridian(zone)
    factor = 2.0 * math.sqrt(_N) / (1.0 + _N)
    sin_lat = np.sin(latitude)
    t = np.sinh(np.arctanh(sin_lat) - factor * np.arctanh(factor * sin_lat))
    xi_prime = np.arctan2(t, np.cos(dlon))
    eta_prime = np.arctanh(np.sin(dlon) / np.sqrt(1.0 + t * t))
    xi = xi_prime.copy()
    eta = eta_prime.copy()
    for j, alpha in enumerate(_ALPHA, start=1):
        xi = xi + alpha * np.sin(2 * j * xi_prime) * np.cosh(2 * j * eta_prime)
        eta = eta + alpha * np.cos(2 * j * xi_prime) * np.sinh(2 * j * eta_prime)
    easting = UTM_FALSE_EASTING + UTM_K0 * _RECTIFYING_RADIUS * eta
    northing = UTM_K0 * _RECTIFYING_RADIUS * xi
    if not north:
        northing = northing + UTM_FALSE_NORTHING_SOUTH
    return easting, northing, height


def utm_to_geodetic(easting, northing, height, zone: int, north: bool = True):
    """Convert UTM grid coordinates back to geodetic coordinates.

    Returns
    -------
    (longitude, latitude, height)
        Longitude and latitude in radians.
    """
    easting = np.asarray(easting, dtype=float)
    northing = np.asarray(northing, dtype=float)
    if not north:
        northing = northing - UTM_FALSE_NORTHING_SOUTH
    xi = northing / (UTM_K0 * _RECTIFYING_RADIUS)
    eta = (easting - UTM_FALSE_EASTING) / (UTM_K0 * _RECTIFYING_RADIUS)
    xi_prime = xi.copy()
    eta_prime = eta.copy()
    for j, beta in enumerate(_BETA, start=1):
        xi_prime = xi_prime - beta * np.sin(2 * j * xi) * np.cosh(2 * j * eta)
        eta_prime = eta_prime - beta * np.cos(2 * j * xi) * np.sinh(2 * j * eta)
    chi = np.arcsin(np.sin(xi_prime) / np.cosh(eta_prime))
    latitude = chi.copy()
    for j, delta in enumerate(_DELTA, start=1):
        latitude = latitude + delta * np.sin(2 * j * chi)
    longitude = central_meridian(zone) + np.arctan2(np.sinh(eta_prime), np.cos(xi_prime))
    return longitude, latitude, height


def grid_convergence(longitude, latitude, zone: int):
    """Angle from true north to UTM grid north, in radians.

    Positive east of the central meridian in the northern hemisphere.
    Subtract it from a true heading to obtain a grid heading.
    """
    dlon = np.asarray(longitude, dtype=float) - central_meridian(zone)
    return np.arctan(np.tan(dlon) * np.sin(np.asarray(latitude, dtype=float)))


def geodetic_to_ecef(longitude: float, latitude: float, height: float) -> np.ndarray:
    """Convert a WGS84 geodetic point to ECEF coordinates in metres."""
    sin_lat = math.sin(latitude)
    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    return np.array([
        (n + height) * math.cos(latitude) * math.cos(longitude),
        (n + height) * math.cos(latitude) * math.sin(longitude),
        (n * (1.0 - WGS84_E2) + height) * sin_lat,
    ])


def ecef_to_ned_matrix(longitude: float, latitude: float) -> np.ndarray:
    """Rotation taking ECEF vectors into the local NED frame."""
    sl, cl = math.sin(latitude), math.cos(latitude)
    so, co = math.sin(longitude), math.cos(longitude)
    return np.array([
        [-sl * co, -sl * so, cl],
        [-so, co, 0.0],
        [-cl * co, -cl * so, -sl],
    ])


def ecef_to_ned(point: np.ndarray, reference: Tuple[float, float, float]) -> np.ndarray:
    """Express an ECEF point in the NED frame centred at a geodetic reference.

    Parameters
    ----------
    point : numpy.ndarray
        ECEF coordinates (3,).
    reference : tuple of float
        ``(longitude, latitude, height)`` of the frame origin.
    """
    origin = geodetic_to_ecef(*reference)
    matrix = ecef_to_ned_matrix(reference[0], reference[1])
    return matrix @ (np.asarray(point, dtype=float) - origin)
