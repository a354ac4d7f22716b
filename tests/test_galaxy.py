import healpy as hp
import numpy as np
import pytest

from galnu.coordinates import SphericalCoordinate, heliocentric_to_galactocentric, spherical_to_cartesian
from galnu.errors import InvalidParameter
from galnu.galaxy import THICK_DISK, THIN_DISK, Disk, MilkyWayDisks


@pytest.fixture(scope="module")
def galaxy():
    return MilkyWayDisks(nside=8, n_los=200, batch_size=100_000, seed=3)


def test_density(galaxy):
    assert galaxy.density(0.0, 0.0, 0.0) == pytest.approx(1.0)
    assert galaxy.density(5.0, 0.0, 0.0) < galaxy.density(1.0, 0.0, 0.0)
    assert galaxy.density(0.0, 0.0, 1.0) == pytest.approx(galaxy.density(0.0, 0.0, -1.0))


def test_mass_fractions(galaxy):
    assert galaxy.mass_fractions.sum() == pytest.approx(1.0)
    thin = THIN_DISK.weight * THIN_DISK.scale_length**2 * THIN_DISK.scale_height
    thick = THICK_DISK.weight * THICK_DISK.scale_length**2 * THICK_DISK.scale_height
    assert galaxy.mass_fractions[0] == pytest.approx(thin / (thin + thick))


def test_template_normalised(galaxy):
    template = galaxy.template
    assert len(template) == hp.nside2npix(8)
    assert np.all(template > 0)
    assert template.sum() * hp.nside2pixarea(8) == pytest.approx(1.0)


def test_centre_brighter_than_anticentre(galaxy):
    centre = galaxy.intensity(SphericalCoordinate(np.pi / 2, 0.0))
    anticentre = galaxy.intensity(SphericalCoordinate(np.pi / 2, np.pi))
    pole = galaxy.intensity(SphericalCoordinate(0.0, 0.0))
    assert centre > 10 * anticentre
    assert anticentre > pole


def test_intensity_rejects_bad_theta(galaxy):
    with pytest.raises(InvalidParameter):
        galaxy.intensity(SphericalCoordinate(-0.5, 0.0))


def test_directions_follow_plane(galaxy):
    sample = galaxy.sample_directions(2000)
    assert len(sample.theta) == 2000
    latitude = np.pi / 2 - sample.theta
    # an isotropic sky would put sin(10 deg) = 17% within |b| < 10 deg
    assert np.mean(np.abs(latitude) < np.deg2rad(10)) > 0.35


def test_positions(galaxy):
    direction, distance = galaxy.sample_positions(5000)
    assert distance.shape == (5000,)
    assert np.all(distance >= 0)
    positions = heliocentric_to_galactocentric(spherical_to_cartesian(direction, distance), galaxy.r_sun)
    assert np.mean(np.abs(positions.z)) < 1.0
    # R ~ Gamma(2, L) has mean 2L
    lengths = np.array([THIN_DISK.scale_length, THICK_DISK.scale_length])
    expected = 2 * np.sum(galaxy.mass_fractions * lengths)
    assert np.mean(np.hypot(positions.x, positions.y)) == pytest.approx(expected, rel=0.05)


def test_volume_directions(galaxy):
    sample = galaxy.sample_directions(100, flux_weighted=False)
    assert len(sample.phi) == 100


@pytest.mark.parametrize(
    "kwargs",
    [{"disks": ()}, {"disks": (Disk(0.0, 0.3, 1.0),)}, {"r_max": 0.0}, {"r_sun": -1.0}],
)
def test_invalid_model(kwargs):
    with pytest.raises(InvalidParameter):
        MilkyWayDisks(**kwargs)
