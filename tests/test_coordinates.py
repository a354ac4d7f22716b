import numpy as np
import pytest

from galnu.coordinates import (
    R_SUN_KPC,
    TWO_PI,
    CartesianCoordinate,
    SphericalCoordinate,
    azimuthal_wrap,
    cartesian_to_spherical,
    equatorial_to_galactic,
    from_ra_dec,
    galactic_to_equatorial,
    heliocentric_to_galactocentric,
    spherical_to_cartesian,
)
from galnu.errors import InvalidParameter


def test_galactic_centre():
    gc = from_ra_dec(np.deg2rad(266.40499), np.deg2rad(-28.93617))
    gal = equatorial_to_galactic(gc)
    assert gal.theta == pytest.approx(np.pi / 2, abs=1e-4)
    assert min(gal.phi, TWO_PI - gal.phi) < 1e-4


def test_north_galactic_pole():
    ngp = from_ra_dec(np.deg2rad(192.85948), np.deg2rad(27.12825))
    assert equatorial_to_galactic(ngp).theta == pytest.approx(0.0, abs=1e-8)


def test_rotation_is_orthogonal_and_round_trips():
    rng = np.random.default_rng(3)
    coord = SphericalCoordinate(np.arccos(rng.uniform(-1, 1, 500)), rng.uniform(0, TWO_PI, 500))
    back = galactic_to_equatorial(equatorial_to_galactic(coord))
    np.testing.assert_allclose(
        np.array(spherical_to_cartesian(back)), np.array(spherical_to_cartesian(coord)), atol=1e-9
    )


def test_azimuthal_wrap():
    assert azimuthal_wrap(TWO_PI) == 0.0
    assert azimuthal_wrap(-1e-4) == pytest.approx(TWO_PI - 1e-4)
    assert 0.0 <= azimuthal_wrap(-1e-20) < TWO_PI
    assert azimuthal_wrap(0.5, np.pi) == pytest.approx(0.5 + np.pi)
    wrapped = azimuthal_wrap(np.array([-7.0, 0.0, 7.0, 100.0]))
    assert np.all((wrapped >= 0) & (wrapped < TWO_PI))


def test_unit_vectors():
    theta = np.linspace(0, np.pi, 50)
    phi = np.linspace(0, TWO_PI, 50)
    x, y, z = spherical_to_cartesian(SphericalCoordinate(theta, phi))
    np.testing.assert_allclose(x**2 + y**2 + z**2, 1.0)


def test_pole_precision():
    coord = cartesian_to_spherical(CartesianCoordinate(1e-12, 0.0, 1.0))
    assert coord.theta == pytest.approx(1e-12, rel=1e-6)
    assert cartesian_to_spherical(CartesianCoordinate(0.0, 0.0, -2.0)).theta == pytest.approx(np.pi)


@pytest.mark.parametrize("theta", [-0.1, np.pi + 0.1, np.nan])
def test_invalid_theta(theta):
    with pytest.raises(InvalidParameter):
        spherical_to_cartesian(SphericalCoordinate(theta, 0.0))


def test_invalid_declination():
    with pytest.raises(InvalidParameter):
        from_ra_dec(0.0, 2.0)


def test_heliocentric_to_galactocentric():
    sun = heliocentric_to_galactocentric(CartesianCoordinate(0.0, 0.0, 0.0))
    assert sun.x == pytest.approx(-R_SUN_KPC)
    centre = heliocentric_to_galactocentric(
        spherical_to_cartesian(SphericalCoordinate(np.pi / 2, 0.0), R_SUN_KPC)
    )
    np.testing.assert_allclose(np.array(centre, dtype=float), 0.0, atol=1e-12)
