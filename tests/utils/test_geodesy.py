"""Unit tests for geodetic conversions."""

import numpy as np
import pytest

from src.utils.geodesy import (
    WGS84_A,
    central_meridian,
    ecef_to_ned,
    geodetic_to_ecef,
    geodetic_to_utm,
    grid_convergence,
    utm_to_geodetic,
    utm_zone,
)


class TestUtm:
    """Test suite for the UTM projection."""

    def test_known_point(self):
        """Test inverse projection of a known point."""
        longitude, latitude, height = utm_to_geodetic(320000.34, 4181319.35, 0.0, zone=11)
        assert np.degrees(longitude) == pytest.approx(-119.043462374326, abs=1e-8)
        assert np.degrees(latitude) == pytest.approx(37.76149775590434, abs=1e-8)
        assert height == 0.0

    def test_round_trip(self):
        """Test projection and inverse projection."""
        longitude = np.radians(np.array([-119.5, -117.0, -114.2]))
        latitude = np.radians(np.array([30.0, 45.5, 60.1]))
        easting, northing, _ = geodetic_to_utm(longitude, latitude, 0.0, zone=11)
        back_lon, back_lat, _ = utm_to_geodetic(easting, northing, 0.0, zone=11)
        np.testing.assert_allclose(back_lon, longitude, atol=1e-12)
        np.testing.assert_allclose(back_lat, latitude, atol=1e-12)
        again_e, again_n, _ = geodetic_to_utm(back_lon, back_lat, 0.0, zone=11)
        np.testing.assert_allclose(again_e, easting, atol=1e-6)
        np.testing.assert_allclose(again_n, northing, atol=1e-6)

    def test_equator_on_central_meridian(self):
        """Test the false easting on the equator."""
        easting, northing, _ = geodetic_to_utm(central_meridian(31), 0.0, 5.0, zone=31)
        assert float(easting) == pytest.approx(500000.0)
        assert float(northing) == pytest.approx(0.0, abs=1e-9)

    def test_southern_hemisphere(self):
        """Test the southern hemisphere false northing."""
        _, north, _ = geodetic_to_utm(np.radians(-117.0), np.radians(-10.0), 0.0, zone=11)
        _, south, _ = geodetic_to_utm(np.radians(-117.0), np.radians(-10.0), 0.0, zone=11, north=False)
        assert float(south - north) == pytest.approx(10000000.0)
        _, latitude, _ = utm_to_geodetic(500000.0, south, 0.0, zone=11, north=False)
        assert np.degrees(latitude) == pytest.approx(-10.0)

    def test_zone_helpers(self):
        """Test zone number and central meridian helpers."""
        assert utm_zone(np.radians(-119.0)) == 11
        assert utm_zone(np.radians(3.0)) == 31
        assert np.degrees(central_meridian(11)) == pytest.approx(-117.0)
        with pytest.raises(ValueError):
            central_meridian(0)
        with pytest.raises(ValueError):
            central_meridian(61)

    def test_grid_convergence(self):
        """Test the sign of grid convergence."""
        assert float(grid_convergence(central_meridian(11), np.radians(40.0), 11)) == pytest.approx(0.0)
        assert grid_convergence(np.radians(-115.0), np.radians(40.0), 11) > 0.0
        assert grid_convergence(np.radians(-119.0), np.radians(40.0), 11) < 0.0


class TestEcef:
    """Test suite for ECEF and local NED conversions."""

    def test_prime_meridian_on_equator(self):
        """Test ECEF coordinates on the prime meridian."""
        np.testing.assert_allclose(geodetic_to_ecef(0.0, 0.0, 0.0), [WGS84_A, 0.0, 0.0])

    def test_point_above_reference_is_up(self):
        """Test that a point above the reference is up in NED."""
        reference = (np.radians(-117.0), np.radians(37.0), 100.0)
        above = geodetic_to_ecef(reference[0], reference[1], 150.0)
        np.testing.assert_allclose(ecef_to_ned(above, reference), [0.0, 0.0, -50.0], atol=1e-6)
