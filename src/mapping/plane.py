"""Least-squares plane fitting.

Planes are fitted by total least squares: the normal is the right
singular vector of the centred points with the smallest singular value.
Normals are oriented so that they point away from a viewpoint, which for
body-frame neighbourhoods is the platform at the origin.  With that
orientation the incidence angle of a return is the angle between its
line of sight and the normal.
"""

from dataclasses import dataclass, field

import numpy as np
from scipy.spatial import cKDTree

from ..common.errors import DegeneratePlane


@dataclass(frozen=True)
class Plane:
    """A plane through `point` with unit `normal`."""

    normal: np.ndarray
    point: np.ndarray
    rms: float = 0.0
    """Root mean square of the point-to-plane distances of the fit."""

    count: int = field(default=0, compare=False)
    """Number of points used in the fit."""

    @property
    def offset(self) -> float:
        """Signed distance of the plane from the origin along the normal."""
        return float(np.dot(self.normal, self.point))

    def distance(self, points) -> np.ndarray:
        """Signed distances of `points` from the plane, positive along the normal."""
        return (np.asarray(points, dtype=float) - self.point) @ self.normal

    def project(self, points) -> np.ndarray:
        """Orthogonal projection of `points` onto the plane."""
        points = np.asarray(points, dtype=float)
        return points - np.multiply.outer(self.distance(points), self.normal)


def _orient(normal: np.ndarray, direction: np.ndarray) -> np.ndarray:
    side = float(np.dot(normal, direction))
    if side < 0.0:
        return -normal
    if side == 0.0:
        first = normal[np.flatnonzero(normal)[0]]
        return normal if first > 0.0 else -normal
    return normal


def fit_plane(points, viewpoint=None, tolerance: float = 1e-9) -> Plane:
    """Fit a plane to three or more points.

    Parameters
    ----------
    points : array_like, shape (N, 3)
        Points in any single frame.
    viewpoint : array_like, shape (3,), optional
        The normal is oriented away from this point.  Defaults to the
        origin, the platform position in the body frame.
    tolerance : float, optional
        Relative size of the second singular value below which the
        points are considered collinear.

    Raises
    ------
    DegeneratePlane
        If fewer than three distinct points are given or they are
        collinear.
    """
    points = np.asarray(points, dtype=float)
    if points.size == 0:
        raise DegeneratePlane("need at least three distinct points, got 0")
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"points must have shape (N, 3), got {points.shape}")
    if not np.all(np.isfinite(points)):
        raise ValueError("points must be finite")
    distinct = np.unique(points, axis=0)
    if len(distinct) < 3:
        raise DegeneratePlane(f"need at least three distinct points, got {len(distinct)}")

    centroid = points.mean(axis=0)
    _, singular, vt = np.linalg.svd(points - centroid, full_matrices=False)
    if singular[1] <= tolerance * singular[0]:
        raise DegeneratePlane("points are collinear")
    normal = vt[2] / np.linalg.norm(vt[2])

    viewpoint = np.zeros(3) if viewpoint is None else np.asarray(viewpoint, dtype=float)
    normal = _orient(normal, centroid - viewpoint)
    residuals = (points - centroid) @ normal
    return Plane(
        normal=normal,
        point=centroid,
        rms=float(np.sqrt(np.mean(residuals ** 2))),
        count=len(points),
    )


def estimate_normals(points, k: int = 10, viewpoints=None) -> np.ndarray:
    """Per-point normals from the `k` nearest neighbours.

    Parameters
    ----------
    points : array_like, shape (N, 3)
    k : int, optional
        Neighbourhood size including the point itself (at least 3).
    viewpoints : array_like, shape (3,) or (N, 3), optional
        Normals are oriented away from these.  Defaults to the origin.

    Returns
    -------
    numpy.ndarray
        Unit normals of shape (N, 3).  Rows whose neighbourhood is
        degenerate are NaN.
    """
    points = np.asarray(points, dtype=float)
    if k < 3:
        raise ValueError("k must be at least 3")
    if len(points) < k:
        raise ValueError(f"need at least k={k} points, got {len(points)}")
    if viewpoints is None:
        viewpoints = np.zeros_like(points)
    else:
        viewpoints = np.broadcast_to(np.asarray(viewpoints, dtype=float), points.shape)

    tree = cKDTree(points)
    _, neighbours = tree.query(points, k=k)
    normals = np.full(points.shape, np.nan)
    for i, idx in enumerate(neighbours):
        try:
            plane = fit_plane(points[idx], viewpoint=viewpoints[i])
        except DegeneratePlane:
            continue
        normals[i] = _orient(plane.normal, points[i] - viewpoints[i])
    return normals
