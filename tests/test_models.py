import os

import numpy as np
import pytest
from scipy.integrate import quad

from galnu.errors import NO_LOWER_BOUND, InvalidParameter
from galnu.events import EventCatalog, make_event
from galnu.galaxy import MilkyWayDisks
from galnu.likelihood import LLH, Analysis
from galnu.models import FOUR_PI, BrokenPowerLaw, IntensityModels, PowerLaw, check_fraction

EXAMPLE_CATALOG = os.path.join(os.path.dirname(__file__), "..", "data", "example_events.csv")


def log_integral(pdf, e_min, e_max, points=None):
    # int pdf(E) dE = int pdf(e^x) e^x dx
    value, _ = quad(
        lambda x: pdf(np.exp(x)) * np.exp(x), np.log(e_min), np.log(e_max), points=points, limit=200
    )
    return value


@pytest.mark.parametrize("index", [1.0, 2.58, 3.7])
def test_powerlaw_normalised(index):
    pdf = PowerLaw(index)
    assert log_integral(pdf, 60.0, 1e4) == pytest.approx(1.0, rel=1e-6)


def test_powerlaw_outside_range():
    pdf = PowerLaw(2.0)
    assert pdf(10.0) == 0.0
    assert pdf(2e4) == 0.0
    np.testing.assert_array_equal(pdf(np.array([1.0, 1e5])), 0.0)
    assert pdf(100.0) > pdf(1000.0) > 0


def test_broken_powerlaw():
    pdf = BrokenPowerLaw(index_low=2.0, index_high=2.9, e_break=200.0)
    assert log_integral(pdf, 60.0, 1e4, points=[np.log(200.0)]) == pytest.approx(1.0, rel=1e-6)
    assert pdf(200.0 * (1 - 1e-9)) == pytest.approx(pdf(200.0), rel=1e-6)
    # steeper above the break
    assert pdf(400.0) / pdf(200.0) == pytest.approx(2.0**-2.9)
    assert pdf(100.0) / pdf(200.0) == pytest.approx(2.0**2.0)


def test_invalid_energy_range():
    with pytest.raises(InvalidParameter):
        PowerLaw(2.0, e_min=100.0, e_max=10.0)
    with pytest.raises(InvalidParameter):
        BrokenPowerLaw(e_break=1e5)


@pytest.mark.parametrize("f_gal", [-1e-9, 1.0 + 1e-9, np.inf])
def test_check_fraction(f_gal):
    with pytest.raises(InvalidParameter):
        check_fraction(f_gal)


@pytest.fixture(scope="module")
def models():
    galaxy = MilkyWayDisks(nside=8, n_los=200, seed=1)
    return IntensityModels(galaxy=galaxy, n_smear=2000, seed=2)


def test_terms(models):
    event = make_event("a", 100.0, 0.0, 0.0, 0.1)
    assert models.l_bkg(event) == pytest.approx(21.6 * PowerLaw(3.7)(100.0) / FOUR_PI)
    assert models.l_astro(event) == pytest.approx(32.4 * PowerLaw(2.58)(100.0))
    assert models.l_exgal(0.0) == pytest.approx(1.0 / FOUR_PI)
    assert models.l_exgal(1.0) == 0.0
    assert models.l_gal(event, 0.0) == 0.0


def test_galactic_density(models):
    centre = make_event("gc", 100.0, np.deg2rad(266.405), np.deg2rad(-28.936), np.deg2rad(2.0))
    anticentre = make_event("ac", 100.0, np.deg2rad(86.405), np.deg2rad(28.936), np.deg2rad(2.0))
    rho_centre = models.galactic_density(centre)
    assert rho_centre > 10 * models.galactic_density(anticentre)
    # cached, the same value on every call
    assert models.galactic_density(centre) == rho_centre
    assert models.l_gal(centre, 0.5) == pytest.approx(0.5 * rho_centre)


def test_invalid_counts():
    with pytest.raises(InvalidParameter):
        IntensityModels(galaxy=MilkyWayDisks(seed=1), n_bkg=-1.0)


def test_cache_follows_event_contents(models):
    centre = make_event("x", 100.0, np.deg2rad(266.405), np.deg2rad(-28.936), np.deg2rad(2.0))
    anticentre = make_event("x", 100.0, np.deg2rad(86.405), np.deg2rad(28.936), np.deg2rad(2.0))
    rho_centre = models.galactic_density(centre)
    rho_anticentre = models.galactic_density(anticentre)
    assert rho_centre > 10 * rho_anticentre
    assert models.galactic_density(centre) == rho_centre


def test_example_catalog_likelihood(models):
    llh = LLH(EventCatalog.from_csv(EXAMPLE_CATALOG), models)
    analysis = Analysis(llh, n_grid=20)
    scan = analysis.scan(20)
    assert not np.any(np.isnan(scan[:, 1]))
    assert np.all(np.isfinite(scan[:, 1]) | np.isneginf(scan[:, 1]))

    f_hat = analysis.maximize()
    assert 0.0 <= f_hat <= 1.0
    for event in llh.catalog:
        post = llh.per_event_posterior(event, f_hat)
        assert sum(post) == pytest.approx(1.0)
        assert all(0.0 <= p <= 1.0 for p in post)
    lower, upper = analysis.confidence_interval(1.0, f_hat=f_hat)
    assert upper >= f_hat
    assert lower == NO_LOWER_BOUND or 0.0 <= lower <= f_hat
