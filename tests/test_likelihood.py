import numpy as np
import pytest

from galnu.errors import NO_LOWER_BOUND, InvalidParameter
from galnu.events import EventCatalog, make_event
from galnu.likelihood import LLH, Analysis, confidence_level_to_sigma
from galnu.models import FOUR_PI


class StubModels:
    """Fixed per-event terms, gal is the galactic density of each event"""

    def __init__(self, bkg, astro, gal):
        self.bkg, self.astro, self.gal = bkg, astro, gal

    def l_bkg(self, event):
        return self.bkg[event.identifier]

    def l_astro(self, event):
        return self.astro[event.identifier]

    def l_gal(self, event, f_gal):
        return f_gal * self.gal[event.identifier]

    def l_exgal(self, f_gal):
        return (1.0 - f_gal) / FOUR_PI


def make_llh(bkg, astro, gal):
    ids = [str(i) for i in range(len(bkg))]
    catalog = EventCatalog(make_event(i, 100.0, 0.1, 0.2, 0.1) for i in ids)
    return LLH(catalog, StubModels(dict(zip(ids, bkg)), dict(zip(ids, astro)), dict(zip(ids, gal))))


# one event prefers the galactic model, the other cannot be galactic,
# logL = log(c f + d) + log(1 - f) + const with the maximum at (c - d) / 2c
C, D = 1.0 - 1.0 / FOUR_PI, 1.0 / FOUR_PI
F_INTERIOR = (C - D) / (2 * C)


@pytest.fixture
def interior():
    return Analysis(make_llh([0.0, 0.0], [1.0, 1.0], [1.0, 0.0]))


def test_interior_maximum(interior):
    assert interior.maximize() == pytest.approx(F_INTERIOR, abs=1e-5)


def test_maximum_beats_grid(interior):
    f_hat = interior.maximize()
    best = interior.llh.log_likelihood(f_hat)
    scan = interior.scan(200)
    assert np.all(best >= scan[:, 1] - 1e-9)


def test_interior_interval(interior):
    f_hat = interior.maximize()
    lower, upper = interior.confidence_interval(1.0, f_hat=f_hat)
    assert 0 < lower < f_hat < upper < 1
    target = interior.llh.log_likelihood(f_hat) - 0.5
    assert interior.llh.log_likelihood(lower) == pytest.approx(target, abs=1e-5)
    assert interior.llh.log_likelihood(upper) == pytest.approx(target, abs=1e-5)

    lower2, upper2 = interior.confidence_interval(2.0, f_hat=f_hat)
    assert lower2 < lower and upper2 > upper


def test_boundary_maximum_at_one():
    analysis = Analysis(make_llh([0.1, 0.1], [1.0, 1.0], [2.0, 3.0]))
    f_hat = analysis.maximize()
    assert f_hat == pytest.approx(1.0, abs=1e-6)
    assert analysis.confidence_interval(1.0, f_hat=f_hat)[1] == 1.0


def test_no_lower_bound_at_zero():
    analysis = Analysis(make_llh([0.1, 0.1], [1.0, 1.0], [0.0, 0.0]))
    f_hat = analysis.maximize()
    assert f_hat == pytest.approx(0.0, abs=1e-6)
    lower, upper = analysis.confidence_interval(1.0, f_hat=f_hat)
    assert lower == NO_LOWER_BOUND
    assert 0 < upper <= 1


def test_flat_likelihood():
    analysis = Analysis(make_llh([0.5, 0.2], [1.0, 2.0], [1.0 / FOUR_PI] * 2))
    scan = analysis.scan(50)
    np.testing.assert_allclose(scan[:, 1], scan[0, 1])
    assert analysis.confidence_interval(1.0) == (0.0, 1.0)


def test_scan_grid(interior):
    scan = interior.scan(10)
    assert scan.shape == (11, 2)
    assert scan[0, 0] == 0.0
    assert scan[-1, 0] == 1.0
    assert not np.any(np.isnan(scan[:, 1]))


def test_posteriors_sum_to_one(interior):
    for f_gal in (0.0, 0.3, 1.0):
        for event in interior.llh.catalog:
            post = interior.llh.per_event_posterior(event, f_gal)
            if not np.isnan(post.p_gal):
                assert sum(post) == pytest.approx(1.0)


def test_astrophysical_dominates():
    llh = make_llh([1e-9], [1.0], [0.5])
    post = llh.per_event_posterior(llh.catalog[0], 0.0)
    assert post.p_exgal > 0.999999
    assert post.p_gal == 0.0


def test_posterior_sums():
    llh = make_llh([1.0, 0.0], [1.0, 1.0], [0.2, 0.0])
    sums = llh.posterior_sums(0.4)
    assert sum(sums) == pytest.approx(2.0)


def test_zero_density():
    llh = make_llh([0.0, 1.0], [0.0, 1.0], [1.0, 1.0])
    assert llh.log_likelihood(0.5) == -np.inf
    assert np.all(np.isnan(llh.per_event_posterior(llh.catalog[0], 0.5)))
    # the event with a density still counts
    assert sum(llh.posterior_sums(0.5)) == pytest.approx(1.0)


@pytest.mark.parametrize("f_gal", [-0.1, 1.1, np.nan])
def test_invalid_fraction(interior, f_gal):
    with pytest.raises(InvalidParameter):
        interior.llh.log_likelihood(f_gal)


def test_invalid_sigma(interior):
    with pytest.raises(InvalidParameter):
        interior.confidence_interval(0.0)


def test_confidence_level_to_sigma():
    assert confidence_level_to_sigma(0.9) == pytest.approx(1.6449, abs=1e-4)
    assert confidence_level_to_sigma(0.6827) == pytest.approx(1.0, abs=1e-3)
    with pytest.raises(InvalidParameter):
        confidence_level_to_sigma(1.0)
