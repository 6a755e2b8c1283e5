"""Unit tests for plane fitting and normal estimation."""

import numpy as np
import pytest

from src.common.errors import DegeneratePlane
from src.mapping.plane import Plane, estimate_normals, fit_plane


def grid(z=5.0, n=5, spacing=1.0):
    xs, ys = np.meshgrid(np.arange(n) * spacing, np.arange(n) * spacing)
    return np.column_stack([xs.ravel(), ys.ravel(), np.full(n * n, z)])


class TestFitPlane:
    """Test suite for fit_plane."""

    def test_coplanar_points(self):
        """Test fitting points on a horizontal plane."""
        plane = fit_plane(grid(z=5.0))
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, 1.0], atol=1e-12)
        assert plane.offset == pytest.approx(5.0)
        assert plane.rms == pytest.approx(0.0, abs=1e-12)
        assert plane.count == 25

    def test_normal_points_away_from_viewpoint(self):
        """Test normal orientation relative to the viewpoint."""
        points = grid(z=5.0)
        plane = fit_plane(points, viewpoint=[0.0, 0.0, 10.0])
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, -1.0], atol=1e-12)

    def test_tilted_plane(self):
        """Test fitting a tilted plane."""
        normal = np.array([0.0, -0.5, np.sqrt(3.0) / 2.0])
        points = grid(z=0.0)
        points[:, 2] = points[:, 1] * 0.5 / (np.sqrt(3.0) / 2.0) + 20.0
        plane = fit_plane(points)
        np.testing.assert_allclose(plane.normal, normal, atol=1e-12)
        np.testing.assert_allclose(plane.distance(points), 0.0, atol=1e-9)

    def test_noisy_rms(self):
        """Test the rms of a noisy fit."""
        rng = np.random.default_rng(7)
        points = grid(z=5.0, n=20, spacing=0.5)
        points[:, 2] += rng.normal(0.0, 0.01, len(points))
        plane = fit_plane(points)
        assert plane.rms == pytest.approx(0.01, rel=0.2)

    def test_tie_orients_first_component_positive(self):
        """Test orientation when the viewpoint lies in the plane."""
        points = np.array([[0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, -1.0, -1.0]])
        plane = fit_plane(points)
        np.testing.assert_allclose(plane.normal, [1.0, 0.0, 0.0], atol=1e-12)

    def test_too_few_distinct_points(self):
        """Test that duplicate points do not count as distinct."""
        points = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        with pytest.raises(DegeneratePlane, match="three distinct"):
            fit_plane(points)

    def test_no_points(self):
        """Test that an empty point set raises DegeneratePlane."""
        with pytest.raises(DegeneratePlane, match="got 0"):
            fit_plane([])
        with pytest.raises(DegeneratePlane, match="got 0"):
            fit_plane(np.empty((0, 3)))

    def test_collinear_points(self):
        """Test that collinear points raise DegeneratePlane."""
        points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0], [3.0, 3.0, 3.0]])
        with pytest.raises(DegeneratePlane, match="collinear"):
            fit_plane(points)

    def test_rejects_bad_input(self):
        """Test validation of point array shapes."""
        with pytest.raises(ValueError):
            fit_plane(np.zeros((4, 2)))
        points = grid()
        points[0, 0] = np.nan
        with pytest.raises(ValueError):
            fit_plane(points)


class TestPlane:
    """Test suite for Plane geometry helpers."""

    def test_distance_and_project(self):
        """Test signed distances and projection onto the plane."""
        plane = Plane(normal=np.array([0.0, 0.0, 1.0]), point=np.array([0.0, 0.0, 2.0]))
        points = np.array([[1.0, 1.0, 5.0], [0.0, 0.0, -1.0]])
        np.testing.assert_allclose(plane.distance(points), [3.0, -3.0])
        np.testing.assert_allclose(plane.project(points), [[1.0, 1.0, 2.0], [0.0, 0.0, 2.0]])
        np.testing.assert_allclose(plane.project(points[0]), [1.0, 1.0, 2.0])


class TestEstimateNormals:
    """Test suite for estimate_normals."""

    def test_flat_grid(self):
        """Test normals of a flat grid."""
        normals = estimate_normals(grid(z=5.0), k=6)
        np.testing.assert_allclose(normals, np.tile([0.0, 0.0, 1.0], (25, 1)), atol=1e-9)

    def test_per_point_viewpoints(self):
        """Test orienting each normal away from its own viewpoint."""
        points = grid(z=5.0)
        viewpoints = np.tile([0.0, 0.0, 10.0], (len(points), 1))
        normals = estimate_normals(points, k=6, viewpoints=viewpoints)
        np.testing.assert_allclose(normals[:, 2], -1.0, atol=1e-9)

    def test_degenerate_neighbourhood_is_nan(self):
        """Test that collinear neighbourhoods give NaN normals."""
        line = np.column_stack([np.arange(5.0), np.zeros(5), np.zeros(5)])
        normals = estimate_normals(line, k=3)
        assert np.all(np.isnan(normals))

    def test_rejects_small_k(self):
        """Test validation of the neighbourhood size."""
        with pytest.raises(ValueError):
            estimate_normals(grid(), k=2)
        with pytest.raises(ValueError):
            estimate_normals(grid(n=2), k=5)
