"""
Spatial model of the galactic neutrino source population.

The sources follow the Milky Way stellar disks: a thin and a thick
disk, each with a density exponential in galactocentric radius R and
height |z|,

    rho(R, z) = sum_k w_k * exp(-R / L_k - |z| / h_k).

Two kinds of samples are drawn from it. Positions follow the volume
density. Directions seen from the Sun follow the flux each volume
element sends us, which falls off as 1/r^2 and cancels the r^2 of the
volume element, so the sky intensity is the line-of-sight integral of rho.
"""

import logging
from typing import NamedTuple, Optional, Sequence, Tuple

import healpy as hp
import numpy as np
import numpy.typing as npt
from scipy.integrate import trapezoid

from .coordinates import (
    R_SUN_KPC,
    CartesianCoordinate,
    SphericalCoordinate,
    azimuthal_wrap,
    cartesian_to_spherical,
)
from .errors import InvalidParameter
from .sampler import Seed

logger = logging.getLogger(__name__)


class Disk(NamedTuple):
    """One exponential disk component.

    Args:
        scale_length (float): radial scale length L (in kpc)
        scale_height (float): vertical scale height h (in kpc)
        weight (float): central density relative to the other components
    """

    scale_length: float
    scale_height: float
    weight: float


THIN_DISK = Disk(scale_length=2.6, scale_height=0.3, weight=1.0)
THICK_DISK = Disk(scale_length=3.6, scale_height=0.9, weight=0.12)


class MilkyWayDisks:
    """
    Sampler and sky density of the galactic source population.

    Args:
        disks (Sequence[Disk], optional): the disk components.
            Defaults to a thin and a thick disk
        r_sun (float, optional): galactocentric radius of the Sun (in kpc).
            Defaults to 8.5
        r_max (float, optional): distance from the Sun (in kpc) up to which
            the line-of-sight integral and the direction sampling extend.
            Defaults to 40
        nside (int, optional): HEALPix resolution of the cached intensity map.
            Defaults to 64 (~0.9 deg pixels)
        n_los (int, optional): number of steps along each line of sight
            for the intensity map. Defaults to 800
        batch_size (int, optional): proposals drawn per rejection-sampling pass.
            Defaults to 10^6
        seed (None | int | numpy Generator, optional): source of randomness
    """

    def __init__(
        self,
        disks: Sequence[Disk] = (THIN_DISK, THICK_DISK),
        r_sun: float = R_SUN_KPC,
        r_max: float = 40.0,
        nside: int = 64,
        n_los: int = 800,
        batch_size: int = 1_000_000,
        seed: Seed = None,
    ) -> None:
        if len(disks) == 0:
            raise InvalidParameter("at least one disk component is needed")
        for disk in disks:
            if min(disk) <= 0:
                raise InvalidParameter(f"disk parameters must be positive: {disk}")
        if r_max <= 0 or r_sun < 0:
            raise InvalidParameter("r_max must be positive and r_sun non-negative")

        self.disks = tuple(disks)
        self.r_sun = r_sun
        self.r_max = r_max
        self.nside = nside
        self.n_los = n_los
        self.batch_size = batch_size
        self.rng = np.random.default_rng(seed)

        self.rho_max = sum(d.weight for d in self.disks)
        # mass of each component, int rho dV = w * 2pi L^2 * 2h
        masses = np.array([d.weight * 4 * np.pi * d.scale_length**2 * d.scale_height for d in self.disks])
        self.mass_fractions = masses / masses.sum()

        self._template: Optional[npt.NDArray] = None

    def density(
        self, x: npt.ArrayLike, y: npt.ArrayLike, z: npt.ArrayLike
    ) -> npt.NDArray:
        """Source density at galactocentric Cartesian (x, y, z) in kpc,
        in units of the density at the galactic centre"""
        radius = np.hypot(x, y)
        height = np.abs(z)
        rho = sum(
            d.weight * np.exp(-radius / d.scale_length - height / d.scale_height)
            for d in self.disks
        )
        return rho / self.rho_max

    def _heliocentric_density(
        self, distance: npt.NDArray, direction: SphericalCoordinate
    ) -> npt.NDArray:
        sin_theta = np.sin(direction.theta)
        x = distance * sin_theta * np.cos(direction.phi) - self.r_sun
        y = distance * sin_theta * np.sin(direction.phi)
        z = distance * np.cos(direction.theta)
        return self.density(x, y, z)

    def sample_positions(self, n: int) -> Tuple[SphericalCoordinate, npt.NDArray]:
        """Draw source positions from the volume density.

        Each source picks a component according to its mass, then
        R ~ Gamma(2, L) (surface density exp(-R/L) times R dR),
        a uniform galactocentric azimuth and z ~ Laplace(0, h).

        Args:
            n (int): number of sources

        Returns:
            (SphericalCoordinate, numpy array): heliocentric galactic
                direction of each source and its distance from the Sun (in kpc)
        """
        if n < 0:
            raise InvalidParameter("n must be non-negative")
        component = self.rng.choice(len(self.disks), size=n, p=self.mass_fractions)
        lengths = np.array([d.scale_length for d in self.disks])[component]
        heights = np.array([d.scale_height for d in self.disks])[component]

        radius = self.rng.gamma(2.0, lengths)
        azimuth = self.rng.uniform(0.0, 2.0 * np.pi, n)
        z = self.rng.laplace(0.0, heights)

        # galactocentric -> heliocentric, x pointing to the galactic centre
        x = radius * np.cos(azimuth) + self.r_sun
        y = radius * np.sin(azimuth)
        distance = np.sqrt(x**2 + y**2 + z**2)
        return cartesian_to_spherical(CartesianCoordinate(x, y, z)), distance

    def sample_directions(
        self, n: int, flux_weighted: bool = True
    ) -> SphericalCoordinate:
        """Draw galactic directions of neutrinos from the population.

        Flux-weighted directions are drawn by rejection: propose a
        uniform direction and a uniform distance in [0, r_max] and
        accept with probability rho / rho_max. The accepted directions
        then follow the line-of-sight integral of rho.

        Args:
            n (int): number of directions
            flux_weighted (bool, optional): weight the sources by 1/r^2.
                If False, return the directions of volume-sampled sources.
                Defaults to True

        Returns:
            SphericalCoordinate: galactic (theta, phi) of each draw
        """
        if not flux_weighted:
            return self.sample_positions(n)[0]
        if n < 0:
            raise InvalidParameter("n must be non-negative")

        thetas, phis = [], []
        n_found = 0
        while n_found < n:
            m = self.batch_size
            direction = SphericalCoordinate(
                np.arccos(self.rng.uniform(-1.0, 1.0, m)),
                self.rng.uniform(0.0, 2.0 * np.pi, m),
            )
            distance = self.rng.uniform(0.0, self.r_max, m)
            accept = self.rng.random(m) < self._heliocentric_density(distance, direction)
            thetas.append(direction.theta[accept])
            phis.append(direction.phi[accept])
            n_found += accept.sum()

        theta = np.concatenate(thetas)[:n]
        phi = np.concatenate(phis)[:n]
        return SphericalCoordinate(theta, phi)

    def _line_of_sight(self, direction: SphericalCoordinate) -> npt.NDArray:
        distance = np.linspace(0.0, self.r_max, self.n_los)
        rho = self._heliocentric_density(
            distance[:, None],
            SphericalCoordinate(
                np.asarray(direction.theta)[None, :], np.asarray(direction.phi)[None, :]
            ),
        )
        return trapezoid(rho, distance, axis=0)

    @property
    def template(self) -> npt.NDArray:
        """HEALPix map (RING ordering) of the normalised sky intensity,
        built on first use"""
        if self._template is None:
            logger.debug("building galactic intensity map, nside=%d", self.nside)
            npix = hp.nside2npix(self.nside)
            los = np.empty(npix)
            # in chunks, the full (n_los, npix) grid is too large at high nside
            for start in range(0, npix, 4096):
                pix = np.arange(start, min(start + 4096, npix))
                theta, phi = hp.pix2ang(self.nside, pix)
                los[pix] = self._line_of_sight(SphericalCoordinate(theta, phi))
            self._template = los / (los.sum() * hp.nside2pixarea(self.nside))
        return self._template

    def intensity(self, coord: SphericalCoordinate) -> npt.NDArray:
        """Sky density of the galactic neutrinos per steradian,
        normalised to 1 over the full sphere.

        Args:
            coord (SphericalCoordinate): galactic direction(s)

        Returns:
            numpy array: density at each direction (in 1/sr)
        """
        theta = np.asarray(coord.theta, dtype=float)
        if np.any(theta < 0) or np.any(theta > np.pi):
            raise InvalidParameter("theta must lie in [0, pi]")
        phi = azimuthal_wrap(coord.phi)
        return hp.get_interp_val(self.template, theta, phi)
