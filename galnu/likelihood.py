"""
Profile likelihood of the galactic fraction f_gal of the astrophysical flux.

Each event is either background or astrophysical, and an astrophysical
event is galactic or extragalactic in proportion f_gal : 1 - f_gal.
The per-event density is

    D(e, f) = L_bkg(e) + L_astro(e) * (L_gal(e, f) + L_exgal(f))

and logL(f) = sum_e log D(e, f). With the default intensity models
L_gal + L_exgal is the isotropic density 1/4pi at f = 0 and the
smeared galactic density at f = 1.
"""

import logging
from typing import NamedTuple, Optional, Protocol, Set, Tuple

import numpy as np
import numpy.typing as npt
from scipy.optimize import brentq, minimize_scalar
from scipy.stats import norm

from .errors import NO_LOWER_BOUND, InvalidParameter
from .events import Event, EventCatalog
from .models import check_fraction

logger = logging.getLogger(__name__)

# stands in for -inf where the optimisers need finite numbers
_LOG_FLOOR = -1e300


class IntensityProvider(Protocol):
    def l_bkg(self, event: Event) -> float: ...

    def l_astro(self, event: Event) -> float: ...

    def l_gal(self, event: Event, f_gal: float) -> float: ...

    def l_exgal(self, f_gal: float) -> float: ...


class Posterior(NamedTuple):
    p_bkg: float
    p_gal: float
    p_exgal: float


def confidence_level_to_sigma(level: float) -> float:
    """Two-sided Gaussian sigma-equivalent of a confidence level,
    eg. 0.9 -> 1.645"""
    if not 0 < level < 1:
        raise InvalidParameter("confidence level must lie in (0, 1)")
    return float(norm.isf(0.5 * (1.0 - level)))


class LLH:
    """
    Log-likelihood of the catalog as a function of f_gal.
    Holds no state besides its inputs, the catalog and models are
    only read.

    Args:
        catalog (EventCatalog): the events
        models (IntensityModels): per-event likelihood terms
    """

    def __init__(self, catalog: EventCatalog, models: IntensityProvider) -> None:
        self.catalog = catalog
        self.models = models
        self._reported: Set[str] = set()

    def event_terms(self, event: Event, f_gal: float) -> Tuple[float, float, float]:
        """Background, galactic and extragalactic contributions
        to the density of one event"""
        check_fraction(f_gal)
        l_astro = self.models.l_astro(event)
        return (
            self.models.l_bkg(event),
            l_astro * self.models.l_gal(event, f_gal),
            l_astro * self.models.l_exgal(f_gal),
        )

    def event_densities(self, f_gal: float) -> npt.NDArray:
        """D(e, f_gal) for all events, in catalog order"""
        return np.array([sum(self.event_terms(event, f_gal)) for event in self.catalog])

    def log_likelihood(self, f_gal: float) -> float:
        """logL(f_gal) summed over the catalog.

        An event with zero density makes the sum -inf,
        it is reported once and does not abort the computation.

        Args:
            f_gal (float): galactic fraction in [0, 1]

        Returns:
            float: logL, finite or -inf
        """
        densities = self.event_densities(f_gal)
        zero = densities <= 0
        if np.any(zero):
            for event, is_zero in zip(self.catalog, zero):
                if is_zero and event.identifier not in self._reported:
                    logger.warning(
                        "event %s has zero likelihood density at f_gal=%g",
                        event.identifier,
                        f_gal,
                    )
                    self._reported.add(event.identifier)
            return -np.inf
        return float(np.sum(np.log(densities)))

    def per_event_posterior(self, event: Event, f_gal: float) -> Posterior:
        """Probability that the event is background, galactic or extragalactic.

        Args:
            event (Event): the event
            f_gal (float): galactic fraction, usually the best fit

        Returns:
            Posterior: (p_bkg, p_gal, p_exgal), summing to 1.
                All nan if the event has zero density
        """
        terms = self.event_terms(event, f_gal)
        total = sum(terms)
        if total <= 0:
            logger.warning("event %s: posterior undefined, zero density", event.identifier)
            return Posterior(np.nan, np.nan, np.nan)
        return Posterior(*(t / total for t in terms))

    def posterior_sums(self, f_gal: float) -> Posterior:
        """Expected number of background, galactic and extragalactic
        events in the catalog"""
        posteriors = np.array(
            [self.per_event_posterior(e, f_gal) for e in self.catalog], dtype=float
        ).reshape(-1, 3)
        return Posterior(*(float(s) for s in np.nansum(posteriors, axis=0)))


class Analysis:
    """
    Fit f_gal and derive likelihood-ratio confidence intervals.

    The fit runs a bounded Brent search, derivative free since the
    models need not be smooth, and then checks the result against a
    uniform grid including both boundaries, so boundary maxima are found
    as well.

    Args:
        llh (LLH): the likelihood
        xtol (float, optional): tolerance on f_gal. Defaults to 1e-7
        maxiter (int, optional): iteration limit of every search. Defaults to 500
        n_grid (int, optional): number of steps of the check grid. Defaults to 100
    """

    def __init__(
        self, llh: LLH, xtol: float = 1e-7, maxiter: int = 500, n_grid: int = 100
    ) -> None:
        if xtol <= 0 or maxiter <= 0 or n_grid <= 0:
            raise InvalidParameter("xtol, maxiter and n_grid must be positive")
        self.llh = llh
        self.xtol = xtol
        self.maxiter = maxiter
        self.n_grid = n_grid

    def _finite_llh(self, f_gal: float) -> float:
        return max(self.llh.log_likelihood(f_gal), _LOG_FLOOR)

    def _brent(self, low: float, high: float) -> float:
        result = minimize_scalar(
            lambda f: -self._finite_llh(f),
            bounds=(low, high),
            method="bounded",
            options={"xatol": self.xtol, "maxiter": self.maxiter},
        )
        if not result.success:
            logger.warning("bounded search in [%g, %g]: %s", low, high, result.message)
        return float(result.x)

    def scan(
        self, n_steps: int = 1000, f_min: float = 0.0, f_max: float = 1.0
    ) -> npt.NDArray:
        """logL on a uniform grid.

        Args:
            n_steps (int, optional): number of steps, giving n_steps + 1 points.
                Defaults to 1000
            f_min (float, optional): first grid point. Defaults to 0
            f_max (float, optional): last grid point. Defaults to 1

        Returns:
            numpy array: shape (n_steps + 1, 2), columns (f_gal, logL)
        """
        if n_steps <= 0:
            raise InvalidParameter("n_steps must be positive")
        check_fraction(f_min)
        check_fraction(f_max)
        if f_min >= f_max:
            raise InvalidParameter("need f_min < f_max")
        f_gal = f_min + np.arange(n_steps + 1) * (f_max - f_min) / n_steps
        f_gal[-1] = f_max
        return np.column_stack([f_gal, [self.llh.log_likelihood(f) for f in f_gal]])

    def maximize(self) -> float:
        """Best-fit f_gal in [0, 1]. Boundary values are valid results."""
        best_f = self._brent(0.0, 1.0)
        best_llh = self.llh.log_likelihood(best_f)

        grid = self.scan(self.n_grid)
        i_max = int(np.argmax(grid[:, 1]))
        if grid[i_max, 1] > best_llh:
            # the search missed the global maximum, refine around the grid point
            step = 1.0 / self.n_grid
            low, high = max(0.0, grid[i_max, 0] - step), min(1.0, grid[i_max, 0] + step)
            best_f, best_llh = grid[i_max, 0], grid[i_max, 1]
            refined = self._brent(low, high)
            if self.llh.log_likelihood(refined) > best_llh:
                best_f = refined
        logger.debug("best-fit f_gal = %.6f", best_f)
        return float(best_f)

    def confidence_interval(
        self, sigma: float, f_hat: Optional[float] = None
    ) -> Tuple[float, float]:
        """Likelihood-ratio interval of f_gal at a sigma-equivalent significance.

        The interval holds the f_gal with logL >= logL_max - sigma^2 / 2
        (Wilks with one degree of freedom). The crossings are searched
        outward from the best fit. If the best fit is f_gal = 0 there is
        no lower bound and NO_LOWER_BOUND is returned in its place.

        Args:
            sigma (float): significance in Gaussian sigmas
            f_hat (float, optional): best-fit f_gal if already known

        Returns:
            (float, float): (lower, upper), lower may be NO_LOWER_BOUND
        """
        if not np.isfinite(sigma) or sigma <= 0:
            raise InvalidParameter("sigma must be positive")
        if f_hat is None:
            f_hat = self.maximize()
        target = self.llh.log_likelihood(f_hat) - 0.5 * sigma**2

        def excess(f: float) -> float:
            return self._finite_llh(f) - target

        if excess(1.0) >= 0:
            upper = 1.0
        else:
            upper = brentq(excess, f_hat, 1.0, xtol=self.xtol, maxiter=self.maxiter)

        if f_hat <= self.xtol:
            lower = NO_LOWER_BOUND
        elif excess(0.0) >= 0:
            lower = 0.0
        else:
            lower = brentq(excess, 0.0, f_hat, xtol=self.xtol, maxiter=self.maxiter)

        return float(lower), float(upper)
