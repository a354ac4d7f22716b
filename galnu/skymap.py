"""
Monte Carlo sky maps on an equirectangular (theta, phi) grid.

Directions are histogrammed in galactic coordinates, either smeared
around the cataloged events or drawn from the galactic population model.
The final map is the log of the density per unit solid angle,

    log(count / sin(theta_center) / n_trials),

the sin(theta) undoing the shrinking solid angle of the cells towards
the poles. Empty cells give -inf and are kept as such.
"""

import logging
from typing import Callable, Iterable, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .coordinates import azimuthal_wrap, equatorial_to_galactic
from .errors import InvalidParameter
from .events import Event
from .galaxy import MilkyWayDisks
from .sampler import DirectionalSampler, Seed

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class HistogramGrid:
    """
    Counts on an (n_theta, n_phi) grid covering theta in [0, pi]
    and phi in [0, 2pi]. Bins are half-open, [low, high), except for
    the last one in each direction, which also takes the upper edge.

    Args:
        n_theta (int): number of polar angle bins
        n_phi (int): number of azimuthal bins
    """

    def __init__(self, n_theta: int, n_phi: int) -> None:
        if int(n_theta) != n_theta or int(n_phi) != n_phi or n_theta <= 0 or n_phi <= 0:
            raise InvalidParameter("grid dimensions must be positive integers")
        self.n_theta = int(n_theta)
        self.n_phi = int(n_phi)
        self.counts = np.zeros((self.n_theta, self.n_phi), dtype=np.int64)

        self.theta_centers = np.pi * (np.arange(self.n_theta) + 0.5) / self.n_theta
        if np.any(np.sin(self.theta_centers) <= 0):
            raise InvalidParameter("theta bin centers must lie strictly inside (0, pi)")

    @property
    def shape(self) -> Tuple[int, int]:
        return self.n_theta, self.n_phi

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    def bin_indices(
        self, theta: npt.ArrayLike, phi: npt.ArrayLike
    ) -> Tuple[npt.NDArray, npt.NDArray]:
        """Validated (theta, phi) bin indices of the given angles"""
        theta = np.atleast_1d(np.asarray(theta, dtype=float))
        phi = np.atleast_1d(np.asarray(phi, dtype=float))
        if theta.shape != phi.shape:
            raise InvalidParameter("theta and phi must have the same shape")
        if not np.all((theta >= 0) & (theta <= np.pi)):
            raise InvalidParameter("theta outside [0, pi]")
        if not np.all((phi >= 0) & (phi <= 2 * np.pi)):
            raise InvalidParameter("phi outside [0, 2pi]")

        i_theta = np.minimum((self.n_theta * theta / np.pi).astype(np.int64), self.n_theta - 1)
        i_phi = np.minimum((self.n_phi * phi / (2 * np.pi)).astype(np.int64), self.n_phi - 1)
        return i_theta, i_phi

    def fill(self, theta: npt.ArrayLike, phi: npt.ArrayLike) -> None:
        """Add one count per (theta, phi) pair"""
        i_theta, i_phi = self.bin_indices(theta, phi)
        flat = np.bincount(i_theta * self.n_phi + i_phi, minlength=self.n_theta * self.n_phi)
        self.counts += flat.reshape(self.shape)

    def merge(self, other: "HistogramGrid") -> None:
        """Add the counts of another grid of the same shape,
        eg. one filled by an independent run"""
        if other.shape != self.shape:
            raise InvalidParameter("cannot merge grids of different shape")
        self.counts += other.counts

    def log_density(self, n_trials: int) -> npt.NDArray:
        """Read-only log density per unit solid angle.

        Args:
            n_trials (int): number of trials the counts are normalised to

        Returns:
            numpy array: shape (n_theta, n_phi), -inf for empty cells
        """
        density = np.full(self.shape, -np.inf)
        filled = self.counts > 0
        if n_trials > 0 and np.any(filled):
            sin_theta = np.broadcast_to(np.sin(self.theta_centers)[:, None], self.shape)
            density[filled] = (
                np.log(self.counts[filled]) - np.log(sin_theta[filled]) - np.log(n_trials)
            )
        density.setflags(write=False)
        return density


class SkyMapAccumulator:
    """
    Fills a HistogramGrid with galactic directions, n_trials at a time.

    Directions are smeared around cataloged events (accumulate_event)
    or drawn from the galactic source model (accumulate_population).
    Before binning, phi is shifted by phi_offset, by default pi, which
    puts the galactic centre (l = 0) in the middle of the map.

    Args:
        n_theta (int, optional): polar angle bins. Defaults to 500
        n_phi (int, optional): azimuthal bins. Defaults to 500
        phi_offset (float, optional): shift applied to phi (in rad). Defaults to pi
        sampler (DirectionalSampler, optional): smearing of event directions
        galaxy (MilkyWayDisks, optional): galactic population model,
            only needed for accumulate_population
        batch_size (int, optional): directions drawn per pass. Defaults to 10^6
        seed (None | int | numpy Generator, optional): seeds the default sampler
    """

    def __init__(
        self,
        n_theta: int = 500,
        n_phi: int = 500,
        phi_offset: float = np.pi,
        sampler: Optional[DirectionalSampler] = None,
        galaxy: Optional[MilkyWayDisks] = None,
        batch_size: int = 1_000_000,
        seed: Seed = None,
    ) -> None:
        if batch_size <= 0:
            raise InvalidParameter("batch_size must be positive")
        self.grid = HistogramGrid(n_theta, n_phi)
        self.phi_offset = phi_offset
        self.sampler = sampler if sampler is not None else DirectionalSampler(seed)
        self.galaxy = galaxy
        self.batch_size = batch_size
        self.n_trials_total = 0

    def _batches(self, n_trials: int) -> Iterable[int]:
        if int(n_trials) != n_trials or n_trials <= 0:
            raise InvalidParameter("n_trials must be a positive integer")
        n_trials = int(n_trials)
        for start in range(0, n_trials, self.batch_size):
            yield min(self.batch_size, n_trials - start)

    def _fill(self, theta: npt.NDArray, phi: npt.NDArray) -> None:
        self.grid.fill(theta, azimuthal_wrap(phi, self.phi_offset))
        self.n_trials_total += np.size(theta)

    def accumulate_event(
        self,
        event: Event,
        n_trials: int,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Histogram n_trials directions smeared around one event.

        Args:
            event (Event): the event, its uncertainty sets the vMF concentration
            n_trials (int): number of smeared directions
            progress (callable, optional): called with the completed
                fraction after every batch
        """
        kappa = self.sampler.concentration_from_containment(event.uncertainty)
        direction = equatorial_to_galactic(event.direction)
        done = 0
        for m in self._batches(n_trials):
            smeared = self.sampler.smear(direction, kappa, m)
            self._fill(smeared.theta, smeared.phi)
            done += m
            if progress is not None:
                progress(done / n_trials)

    def accumulate_catalog(
        self,
        events: Iterable[Event],
        n_trials: int,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """accumulate_event for every event, n_trials each"""
        events = list(events)
        for i, event in enumerate(events):
            if progress is None:
                self.accumulate_event(event, n_trials)
            else:
                self.accumulate_event(
                    event, n_trials, lambda frac, i=i: progress((i + frac) / len(events))
                )

    def accumulate_population(
        self, n_trials: int, progress: Optional[ProgressCallback] = None
    ) -> None:
        """Histogram n_trials directions drawn from the galactic model"""
        if self.galaxy is None:
            raise InvalidParameter("population sampling needs a galactic model")
        done = 0
        for m in self._batches(n_trials):
            sample = self.galaxy.sample_directions(m)
            self._fill(sample.theta, sample.phi)
            done += m
            if progress is not None:
                progress(done / n_trials)

    def finalize(self) -> npt.NDArray:
        """Log density per steradian of every cell, normalised to
        the total number of trials, shape (n_theta, n_phi)"""
        logger.debug(
            "finalizing sky map %s with %d trials", self.grid.shape, self.n_trials_total
        )
        return self.grid.log_density(self.n_trials_total)
