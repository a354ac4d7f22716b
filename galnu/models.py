"""
Per-event intensity models entering the galactic fraction likelihood.

Background (atmospheric muons and neutrinos) and astrophysical
events are told apart by their energy spectra, normalised as pdfs on
the energy range of the event selection. The astrophysical flux is
split between a galactic part following the Milky Way disks and an
isotropic extragalactic part:

    L_bkg(e)       = N_bkg * Phi_bkg(E) / 4pi
    L_astro(e)     = N_astro * Phi_astro(E)
    L_gal(e, f)    = f * rho_gal(e)
    L_exgal(f)     = (1 - f) / 4pi

where rho_gal(e) is the galactic sky density averaged over the
directional uncertainty of the event.
"""

import logging
from typing import Dict, Optional, Union

import numpy as np
import numpy.typing as npt

from .coordinates import equatorial_to_galactic
from .errors import InvalidParameter
from .events import Event
from .galaxy import MilkyWayDisks
from .sampler import DirectionalSampler, Seed

logger = logging.getLogger(__name__)

FOUR_PI = 4.0 * np.pi

# spectral indices of the atmospheric background and the astrophysical flux
GAMMA_ATMOSPHERICS = 3.7
GAMMA_ASTRO = 2.58


def check_fraction(f_gal: float) -> None:
    if not np.isfinite(f_gal) or not 0.0 <= f_gal <= 1.0:
        raise InvalidParameter(f"f_gal must lie in [0, 1], got {f_gal}")


def _powerlaw_integral(index: float, e_low: float, e_high: float) -> float:
    """int_{e_low}^{e_high} E^-index dE"""
    if index == 1.0:
        return np.log(e_high / e_low)
    g1 = 1.0 - index
    return (e_high**g1 - e_low**g1) / g1


class PowerLaw:
    """
    Unbroken power-law energy pdf, proportional to E^-index on [e_min, e_max].

    Args:
        index (float): spectral index (positive for a falling spectrum)
        e_min (float, optional): lower energy bound (in TeV). Defaults to 60
        e_max (float, optional): upper energy bound (in TeV). Defaults to 10^4
    """

    def __init__(self, index: float, e_min: float = 60.0, e_max: float = 1e4) -> None:
        if not 0 < e_min < e_max:
            raise InvalidParameter("need 0 < e_min < e_max")
        self.index = index
        self.e_min = e_min
        self.e_max = e_max
        self.norm = 1.0 / _powerlaw_integral(index, e_min, e_max)

    def __call__(self, energy: Union[float, npt.NDArray]) -> Union[float, npt.NDArray]:
        energy = np.asarray(energy, dtype=float)
        inside = (energy >= self.e_min) & (energy <= self.e_max)
        pdf = np.where(inside, self.norm * energy ** -self.index, 0.0)
        return float(pdf) if pdf.ndim == 0 else pdf


class BrokenPowerLaw:
    """
    Energy pdf with index index_low below e_break and index_high above it,
    continuous at the break and normalised on [e_min, e_max].

    Args:
        index_low (float): spectral index below the break
        index_high (float): spectral index above the break
        e_break (float): break energy (in TeV)
        e_min (float, optional): lower energy bound (in TeV). Defaults to 60
        e_max (float, optional): upper energy bound (in TeV). Defaults to 10^4
    """

    def __init__(
        self,
        index_low: float = 2.0,
        index_high: float = 2.9,
        e_break: float = 200.0,
        e_min: float = 60.0,
        e_max: float = 1e4,
    ) -> None:
        if not 0 < e_min < e_break < e_max:
            raise InvalidParameter("need 0 < e_min < e_break < e_max")
        self.index_low = index_low
        self.index_high = index_high
        self.e_break = e_break
        self.e_min = e_min
        self.e_max = e_max

        # E^-index_high is rescaled to meet E^-index_low at the break
        self.high_scale = e_break ** (index_high - index_low)
        total = _powerlaw_integral(index_low, e_min, e_break) + self.high_scale * _powerlaw_integral(
            index_high, e_break, e_max
        )
        self.norm = 1.0 / total

    def __call__(self, energy: Union[float, npt.NDArray]) -> Union[float, npt.NDArray]:
        energy = np.asarray(energy, dtype=float)
        inside = (energy >= self.e_min) & (energy <= self.e_max)
        shape = np.where(
            energy < self.e_break,
            energy ** -self.index_low,
            self.high_scale * energy ** -self.index_high,
        )
        pdf = np.where(inside, self.norm * shape, 0.0)
        return float(pdf) if pdf.ndim == 0 else pdf


class IntensityModels:
    """
    Likelihood terms of a single event under each population.

    The galactic term depends on the event direction through the
    galactic sky density, averaged over the event's directional
    uncertainty by smearing n_smear directions around it.
    This average does not depend on f_gal and is cached per event,
    keyed on the whole event so that a changed direction or
    uncertainty under the same identifier is recomputed.

    Args:
        galaxy (MilkyWayDisks, optional): galactic spatial model.
            Defaults to MilkyWayDisks()
        n_bkg (float, optional): expected number of background events. Defaults to 21.6
        n_astro (float, optional): expected number of astrophysical events. Defaults to 32.4
        bkg_spectrum (PowerLaw, optional): background energy pdf.
            Defaults to an E^-3.7 power law
        astro_spectrum (PowerLaw | BrokenPowerLaw, optional): astrophysical
            energy pdf. Defaults to an E^-2.58 power law
        n_smear (int, optional): directions drawn per event to average the
            galactic density. Defaults to 10^4
        seed (None | int | numpy Generator, optional): source of randomness
    """

    def __init__(
        self,
        galaxy: Optional[MilkyWayDisks] = None,
        n_bkg: float = 21.6,
        n_astro: float = 32.4,
        bkg_spectrum: Optional[PowerLaw] = None,
        astro_spectrum: Union[PowerLaw, BrokenPowerLaw, None] = None,
        n_smear: int = 10_000,
        seed: Seed = None,
    ) -> None:
        if n_bkg < 0 or n_astro < 0:
            raise InvalidParameter("expected event numbers must be non-negative")
        if n_smear <= 0:
            raise InvalidParameter("n_smear must be positive")

        self.galaxy = galaxy if galaxy is not None else MilkyWayDisks(seed=seed)
        self.expected_bkg = n_bkg
        self.expected_astro = n_astro
        self.bkg_spectrum = bkg_spectrum if bkg_spectrum is not None else PowerLaw(GAMMA_ATMOSPHERICS)
        self.astro_spectrum = astro_spectrum if astro_spectrum is not None else PowerLaw(GAMMA_ASTRO)
        self.n_smear = n_smear
        self.sampler = DirectionalSampler(seed)

        self._galactic_density: Dict[Event, float] = {}

    def n_bkg(self, event: Event) -> float:
        return self.expected_bkg

    def n_astro(self, event: Event) -> float:
        return self.expected_astro

    def phi_bkg(self, event: Event) -> float:
        return self.bkg_spectrum(event.energy)

    def phi_astro(self, event: Event) -> float:
        return self.astro_spectrum(event.energy)

    def l_bkg(self, event: Event) -> float:
        # the background is taken as isotropic
        return self.n_bkg(event) * self.phi_bkg(event) / FOUR_PI

    def l_astro(self, event: Event) -> float:
        return self.n_astro(event) * self.phi_astro(event)

    def galactic_density(self, event: Event) -> float:
        """Galactic sky density (in 1/sr) averaged over the vMF
        smearing of the event direction"""
        if event not in self._galactic_density:
            kappa = self.sampler.concentration_from_containment(event.uncertainty)
            direction = equatorial_to_galactic(event.direction)
            smeared = self.sampler.smear(direction, kappa, self.n_smear)
            density = float(np.mean(self.galaxy.intensity(smeared)))
            logger.debug("event %s: galactic density %.4g /sr", event.identifier, density)
            self._galactic_density[event] = density
        return self._galactic_density[event]

    def l_gal(self, event: Event, f_gal: float) -> float:
        check_fraction(f_gal)
        return f_gal * self.galactic_density(event)

    def l_exgal(self, f_gal: float) -> float:
        check_fraction(f_gal)
        return (1.0 - f_gal) / FOUR_PI
