"""
Directional smearing with the von Mises-Fisher (vMF) distribution on the sphere.

The vMF density around a mean direction mu is proportional to
exp(kappa * cos(theta)), theta being the angle to mu, so that the
cumulative probability of a deviation smaller than alpha is

    P(theta < alpha) = (1 - exp(-kappa * (1 - cos(alpha)))) / (1 - exp(-2 * kappa))

which is inverted both to sample cos(theta) and to translate a
containment half-angle into a concentration kappa.
"""

import logging
from typing import Optional, Union

import numpy as np
import numpy.typing as npt
from scipy.optimize import brentq

from .coordinates import (
    CartesianCoordinate,
    SphericalCoordinate,
    cartesian_to_spherical,
    spherical_to_cartesian,
)
from .errors import InvalidParameter

logger = logging.getLogger(__name__)

Seed = Union[None, int, np.random.Generator]


def _one_minus_cos(angle: float) -> float:
    # 2 sin^2(a/2) keeps its precision for small angles
    return 2.0 * np.sin(0.5 * angle) ** 2


def containment_probability(kappa: float, half_angle: float) -> float:
    """Probability of a vMF deviation smaller than half_angle.

    Written with expm1 so that it stays accurate for tiny and huge kappa.
    Reduces to the uniform cap fraction (1 - cos(half_angle)) / 2 at kappa = 0.
    """
    one_minus_cos = _one_minus_cos(half_angle)
    if kappa == 0:
        return 0.5 * one_minus_cos
    return np.expm1(-kappa * one_minus_cos) / np.expm1(-2.0 * kappa)


class DirectionalSampler:
    """
    Draws smeared directions around a true direction.

    Args:
        seed (None | int | numpy Generator, optional): source of randomness.
            Pass a Generator to share one stream between several objects.
            Defaults to None (fresh entropy)
    """

    def __init__(self, seed: Seed = None) -> None:
        self.rng = np.random.default_rng(seed)

    @staticmethod
    def concentration_from_containment(
        half_angle: float, containment: float = 0.5
    ) -> float:
        """Find kappa such that a fraction `containment` of the smeared
        directions lies within half_angle of the true direction.

        The containment grows monotonically with kappa, from the
        uniform cap fraction at kappa = 0, so the root is bracketed
        between 0 and twice the small-angle solution -ln(1 - c) / (1 - cos(alpha)).
        The small-angle solution itself is the root to rounding for
        alpha up to ~30 deg, so it cannot serve as the upper end.
        Half-angles that the uniform distribution already contains
        (ie. alpha >= pi/2 for 50%) give kappa = 0.

        Args:
            half_angle (float): containment half-angle (in rad), in (0, pi)
            containment (float, optional): contained fraction. Defaults to 0.5

        Returns:
            float: the concentration kappa >= 0
        """
        if not np.isfinite(half_angle) or not 0 < half_angle < np.pi:
            raise InvalidParameter("half_angle must lie in (0, pi)")
        if not 0 < containment < 1:
            raise InvalidParameter("containment must lie in (0, 1)")

        if containment_probability(0.0, half_angle) >= containment:
            logger.warning(
                "half-angle %.3g rad already contains %.0f%% of a uniform sphere, "
                "using kappa = 0",
                half_angle,
                100 * containment,
            )
            return 0.0

        kappa_max = -2.0 * np.log1p(-containment) / _one_minus_cos(half_angle)
        return brentq(
            lambda k: containment_probability(k, half_angle) - containment,
            0.0,
            kappa_max,
            xtol=1e-14,
            maxiter=500,
        )

    def sample_deviation_cosine(
        self, kappa: float, size: Optional[int] = None
    ) -> Union[float, npt.NDArray]:
        """Draw cos(theta) of the angle between smeared and true direction.

        Inverse CDF: with v uniform in [0, 1),
        cos(theta) = 1 + log(1 + v * (exp(-2 kappa) - 1)) / kappa,
        and cos(theta) = 1 - 2v for kappa = 0 (uniform on the sphere).

        Args:
            kappa (float): concentration, >= 0
            size (int, optional): number of draws. Defaults to a single float

        Returns:
            float | numpy array: cos(theta) in [-1, 1]
        """
        if not np.isfinite(kappa) or kappa < 0:
            raise InvalidParameter("kappa must be a non-negative number")
        v = self.rng.random(size)
        if kappa == 0:
            cos_theta = 1.0 - 2.0 * v
        else:
            cos_theta = 1.0 + np.log1p(v * np.expm1(-2.0 * kappa)) / kappa
        return np.clip(cos_theta, -1.0, 1.0)

    def smear(
        self,
        true_direction: SphericalCoordinate,
        kappa: float,
        size: Optional[int] = None,
    ) -> SphericalCoordinate:
        """Draw smeared directions around true_direction.

        The deviation angle comes from sample_deviation_cosine and the
        azimuth around the true direction is uniform. Both are laid out
        in an orthonormal frame (e1, e2, mu) built around the true
        direction and then expressed in the frame of true_direction.

        Args:
            true_direction (SphericalCoordinate): mean direction (scalar theta, phi)
            kappa (float): concentration, >= 0
            size (int, optional): number of draws. Defaults to a single direction

        Returns:
            SphericalCoordinate: smeared direction(s), in the same frame
        """
        mu = np.array(spherical_to_cartesian(true_direction), dtype=float)
        if mu.shape != (3,):
            raise InvalidParameter("smear takes a single true direction")

        cos_theta = self.sample_deviation_cosine(kappa, size)
        sin_theta = np.sqrt(np.clip(1.0 - cos_theta**2, 0.0, None))
        psi = self.rng.uniform(0.0, 2.0 * np.pi, size)

        # any axis not parallel to mu gives a valid frame
        helper = np.array([1.0, 0.0, 0.0]) if abs(mu[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        e1 = np.cross(helper, mu)
        e1 /= np.linalg.norm(e1)
        e2 = np.cross(mu, e1)

        vec = (
            np.multiply.outer(cos_theta, mu)
            + np.multiply.outer(sin_theta * np.cos(psi), e1)
            + np.multiply.outer(sin_theta * np.sin(psi), e2)
        )
        vec = np.moveaxis(vec, -1, 0)
        return cartesian_to_spherical(CartesianCoordinate(*vec))
