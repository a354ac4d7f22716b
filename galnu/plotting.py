"""Figures of the likelihood scan and of the sky maps."""

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt

from .errors import NO_LOWER_BOUND

logger = logging.getLogger(__name__)


def plot_scan(
    scan: npt.NDArray,
    path: str,
    interval: Optional[tuple] = None,
    label: str = r"$1\sigma$",
) -> None:
    """Plot -2 Delta logL against f_gal, optionally shading an interval.

    Args:
        scan (npt.NDArray): (f_gal, logL) rows as returned by Analysis.scan
        path (str): output image file
        interval (tuple, optional): (lower, upper) to shade
        label (str, optional): legend entry of the interval
    """
    f_gal, llh = scan[:, 0], scan[:, 1]
    ts = -2.0 * (llh - np.max(llh))

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.plot(f_gal, ts, "k-")
    if interval is not None:
        lower, upper = interval
        if lower == NO_LOWER_BOUND:
            lower = 0.0
        ax.axvspan(lower, upper, color="C0", alpha=0.3, label=label)
        ax.legend()
    ax.set_xlabel(r"$f_{\rm gal}$")
    ax.set_ylabel(r"$-2\Delta\log L$")
    ax.set_xlim(f_gal[0], f_gal[-1])
    ax.set_ylim(bottom=0)
    ax.grid(True)
    fig.savefig(path, bbox_inches="tight")
    plt.close(fig)
    logger.info("saved plot %s", path)


def plot_skymap(
    log_density: npt.NDArray,
    path: str,
    title: str = "",
) -> None:
    """Mollweide view of a galactic sky map.

    The middle column (phi = pi) is drawn at the centre of the plot,
    which is the galactic centre for maps filled with the default
    phi_offset of SkyMapAccumulator. Empty cells (-inf) are left blank.

    Args:
        log_density (npt.NDArray): (n_theta, n_phi) log density per sr
        path (str): output image file
        title (str, optional): figure title
    """
    n_theta, n_phi = log_density.shape
    theta_edges = np.linspace(0.0, np.pi, n_theta + 1)
    phi_edges = np.linspace(0.0, 2.0 * np.pi, n_phi + 1)
    # mollweide axes expect longitude in [-pi, pi] and latitude in [-pi/2, pi/2]
    lon = phi_edges - np.pi
    lat = np.pi / 2.0 - theta_edges

    fig = plt.figure(figsize=(10, 5))
    ax = fig.add_subplot(111, projection="mollweide")
    mesh = ax.pcolormesh(lon, lat, np.ma.masked_invalid(log_density), cmap="viridis", shading="flat")
    fig.colorbar(mesh, ax=ax, orientation="horizontal", pad=0.05, label=r"$\log(dP/d\Omega)$")
    ax.set_title(title)
    ax.grid(True)
    fig.savefig(path, bbox_inches="tight")
    plt.close(fig)
    logger.info("saved plot %s", path)
