"""
Conversions between the equatorial (J2000) and galactic frames,
and between spherical and Cartesian galactic coordinates.

Spherical coordinates are (theta, phi) with theta the polar angle
measured from the frame's north pole, ie. theta = pi/2 - DEC for the
equatorial frame and theta = pi/2 - b for the galactic frame, while phi
is RA or galactic longitude l respectively. All angles are in rad.
Every function accepts scalars or numpy arrays of equal shape.
"""

from typing import NamedTuple, Union

import numpy as np
import numpy.typing as npt

from .errors import InvalidParameter

ArrayOrFloat = Union[float, npt.NDArray]

TWO_PI = 2.0 * np.pi

# J2000 position of the north galactic pole and the galactic longitude
# of the north celestial pole, in deg
NGP_RA_DEG = 192.85948
NGP_DEC_DEG = 27.12825
NCP_GAL_LON_DEG = 122.93192

# galactocentric radius of the Sun, in kpc
R_SUN_KPC = 8.5


class SphericalCoordinate(NamedTuple):
    theta: ArrayOrFloat
    phi: ArrayOrFloat


class CartesianCoordinate(NamedTuple):
    x: ArrayOrFloat
    y: ArrayOrFloat
    z: ArrayOrFloat


def _rot_z(angle: float) -> npt.NDArray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]])


def _rot_y(angle: float) -> npt.NDArray:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, -s], [0.0, 1.0, 0.0], [s, 0.0, c]])


def _equatorial_to_galactic_matrix() -> npt.NDArray:
    """Build the frame rotation from the pole constants.

    Rotate the NGP onto the z-axis, then turn about it
    until the NCP sits at galactic longitude NCP_GAL_LON_DEG.
    """
    ra_gp = np.deg2rad(NGP_RA_DEG)
    dec_gp = np.deg2rad(NGP_DEC_DEG)
    l_ncp = np.deg2rad(NCP_GAL_LON_DEG)
    return _rot_z(np.pi - l_ncp) @ _rot_y(np.pi / 2.0 - dec_gp) @ _rot_z(ra_gp)


R_EQ_TO_GAL = _equatorial_to_galactic_matrix()
R_GAL_TO_EQ = R_EQ_TO_GAL.T


def azimuthal_wrap(phi: ArrayOrFloat, offset: float = 0.0) -> ArrayOrFloat:
    """Add offset to phi and map the result onto [0, 2pi).

    np.mod can return exactly 2pi for tiny negative inputs,
    so those are folded back onto 0.

    Args:
        phi (float | numpy array): azimuthal angle(s) in rad
        offset (float, optional): shift added before wrapping. Defaults to 0

    Returns:
        float | numpy array: wrapped angle(s) in [0, 2pi)
    """
    wrapped = np.mod(np.asarray(phi, dtype=float) + offset, TWO_PI)
    wrapped = np.where(wrapped >= TWO_PI, 0.0, wrapped)
    if wrapped.ndim == 0:
        return float(wrapped)
    return wrapped


def _check_theta(theta: ArrayOrFloat) -> None:
    theta = np.asarray(theta, dtype=float)
    if np.any(~np.isfinite(theta)) or np.any(theta < 0.0) or np.any(theta > np.pi):
        raise InvalidParameter("theta must lie in [0, pi]")


def from_ra_dec(ra: ArrayOrFloat, dec: ArrayOrFloat) -> SphericalCoordinate:
    """Equatorial (RA, DEC) in rad to a SphericalCoordinate"""
    dec = np.asarray(dec, dtype=float)
    if np.any(np.abs(dec) > np.pi / 2.0):
        raise InvalidParameter("DEC must lie in [-pi/2, pi/2]")
    theta = np.pi / 2.0 - dec
    if theta.ndim == 0:
        theta = float(theta)
    return SphericalCoordinate(theta, azimuthal_wrap(ra))


def spherical_to_cartesian(
    coord: SphericalCoordinate, distance: ArrayOrFloat = 1.0
) -> CartesianCoordinate:
    """Convert (theta, phi) into a Cartesian vector.

    Args:
        coord (SphericalCoordinate): direction
        distance (float | numpy array, optional): length of the vector,
            eg. the distance to a sampled source. Defaults to 1 (unit sphere)

    Returns:
        CartesianCoordinate: (x, y, z)
    """
    _check_theta(coord.theta)
    sin_theta = np.sin(coord.theta)
    return CartesianCoordinate(
        distance * sin_theta * np.cos(coord.phi),
        distance * sin_theta * np.sin(coord.phi),
        distance * np.cos(coord.theta),
    )


def cartesian_to_spherical(cart: CartesianCoordinate) -> SphericalCoordinate:
    """Direction of a Cartesian vector (of any non-zero length)"""
    x, y, z = (np.asarray(c, dtype=float) for c in cart)
    # arctan2 keeps full precision close to the poles, unlike arccos
    theta = np.arctan2(np.hypot(x, y), z)
    phi = azimuthal_wrap(np.arctan2(y, x))
    if theta.ndim == 0:
        theta = float(theta)
    return SphericalCoordinate(theta, phi)


def _rotate(coord: SphericalCoordinate, matrix: npt.NDArray) -> SphericalCoordinate:
    vec = np.stack(np.broadcast_arrays(*spherical_to_cartesian(coord)))
    rotated = np.tensordot(matrix, vec, axes=1)
    return cartesian_to_spherical(CartesianCoordinate(*rotated))


def equatorial_to_galactic(coord: SphericalCoordinate) -> SphericalCoordinate:
    """Rotate an equatorial direction into the galactic frame"""
    return _rotate(coord, R_EQ_TO_GAL)


def galactic_to_equatorial(coord: SphericalCoordinate) -> SphericalCoordinate:
    """Rotate a galactic direction into the equatorial frame"""
    return _rotate(coord, R_GAL_TO_EQ)


def heliocentric_to_galactocentric(
    cart: CartesianCoordinate, r_sun: float = R_SUN_KPC
) -> CartesianCoordinate:
    """Shift heliocentric galactic Cartesian coordinates (x towards the
    galactic centre) so that the galactic centre is the origin.
    The Sun ends up at (-r_sun, 0, 0).
    """
    return CartesianCoordinate(np.asarray(cart.x) - r_sun, cart.y, cart.z)
