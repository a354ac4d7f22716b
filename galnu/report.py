"""
Tables written from the fit, the likelihood scan and the sky maps.

Numeric products are flat whitespace separated text for plotting,
per-event and interval tables are LaTeX rows ready for a tabular.
"""

import logging
import math
import os
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
import pandas as pd

from .coordinates import CartesianCoordinate
from .errors import NO_LOWER_BOUND
from .likelihood import LLH, Analysis

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

# (sigma, label) rows of the interval table, a None label means "<sigma>\sigma"
DEFAULT_CL_ROWS: Tuple[Tuple[float, Optional[str]], ...] = (
    (1, None),
    (1.6449, "90\\%"),
    (2, None),
    (3, None),
    (4, None),
    (5, None),
)


def p_to_tex(p: float) -> str:
    """Probability as LaTeX, small values in scientific notation,
    eg. 0.25 -> $0.25$, 3.1e-5 -> $3.1\\e{-5}$"""
    if math.isnan(p):
        return "$-$"
    if p > 1e-3:
        return f"${p:.2g}$"
    if p == 0:
        return "$0$"
    power = math.floor(math.log10(p))
    return f"${p / 10**power:.2g}\\e{{{power}}}$"


def energy_to_tex(energy: float) -> str:
    return f"${int(energy)}$"


def interval_row(lower: float, upper: float, label: str) -> str:
    """LaTeX row of a confidence interval, an upper limit if
    there is no lower bound"""
    if lower == NO_LOWER_BOUND:
        return f"${label}$ & $<{upper:.2g}$\\\\"
    return f"${label}$ & $[{lower:.2g},{upper:.2g}]$\\\\"


def sigma_interval_row(lower: float, upper: float, sigma: float) -> str:
    """interval_row labelled with the significance, eg. 2\\sigma"""
    return interval_row(lower, upper, f"{sigma:g}\\sigma")


def posterior_frame(llh: LLH, f_gal: float) -> pd.DataFrame:
    """Per-event posteriors at f_gal, most energetic event first"""
    rows = []
    for event in llh.catalog:
        post = llh.per_event_posterior(event, f_gal)
        rows.append(
            {
                "id": event.identifier,
                "energy": event.energy,
                "p_gal": post.p_gal,
                "p_exgal": post.p_exgal,
                "p_bkg": post.p_bkg,
            }
        )
    frame = pd.DataFrame(rows, columns=["id", "energy", "p_gal", "p_exgal", "p_bkg"])
    return frame.sort_values("energy", ascending=False, kind="stable").reset_index(drop=True)


def likelihood_table(llh: LLH, f_hat: float) -> str:
    """Best fit, one LaTeX row per event and the summed posteriors"""
    frame = posterior_frame(llh, f_hat)
    lines = [f"{f_hat:.10g}"]
    for row in frame.itertuples(index=False):
        lines.append(
            " & ".join(
                [
                    energy_to_tex(row.energy),
                    str(row.id),
                    p_to_tex(row.p_gal),
                    p_to_tex(row.p_exgal),
                    p_to_tex(row.p_bkg),
                ]
            )
            + "\\\\"
        )
    sums = llh.posterior_sums(f_hat)
    lines.append(f"{sums.p_gal:.5g} {sums.p_exgal:.5g} {sums.p_bkg:.5g}")
    return "\n".join(lines) + "\n"


def confidence_table(
    analysis: Analysis,
    rows: Sequence[Tuple[float, Optional[str]]] = DEFAULT_CL_ROWS,
    f_hat: Optional[float] = None,
) -> str:
    """One interval row per (sigma, label)"""
    if f_hat is None:
        f_hat = analysis.maximize()
    lines = []
    for sigma, label in rows:
        lower, upper = analysis.confidence_interval(sigma, f_hat=f_hat)
        if label is None:
            lines.append(sigma_interval_row(lower, upper, sigma))
        else:
            lines.append(interval_row(lower, upper, label))
    return "\n".join(lines) + "\n"


def write_text(path: PathLike, text: str) -> None:
    with open(path, "w") as f:
        f.write(text)
    logger.info("wrote %s", path)


def write_scan(path: PathLike, scan: npt.NDArray) -> None:
    """Two columns, f_gal and logL"""
    np.savetxt(path, scan, fmt="%.10g")
    logger.info("wrote %s", path)


def write_skymap(path: PathLike, log_density: npt.NDArray, n_trials: int) -> None:
    """Header line "n_theta n_phi n_trials", then one value per cell, theta-major"""
    n_theta, n_phi = log_density.shape
    np.savetxt(
        path,
        np.ravel(log_density, order="C"),
        fmt="%.10g",
        header=f"{n_theta} {n_phi} {n_trials}",
        comments="",
    )
    logger.info("wrote %s", path)


def read_skymap(path: PathLike) -> Tuple[npt.NDArray, int]:
    """Inverse of write_skymap, returns (log_density, n_trials)"""
    with open(path) as f:
        n_theta, n_phi, n_trials = (int(v) for v in f.readline().split())
        values = np.loadtxt(f, ndmin=1)
    return values.reshape(n_theta, n_phi), n_trials


def write_positions(path: PathLike, positions: CartesianCoordinate) -> None:
    """x y z per line"""
    np.savetxt(path, np.column_stack(positions), fmt="%.6g")
    logger.info("wrote %s", path)


def write_vmf_test(
    path: PathLike, half_angle: float, kappa: float, cos_theta: Iterable[float]
) -> None:
    """Header "half_angle kappa", then the sampled cosines"""
    np.savetxt(
        path,
        np.asarray(list(cos_theta)),
        fmt="%.10g",
        header=f"{half_angle:.10g} {kappa:.10g}",
        comments="",
    )
    logger.info("wrote %s", path)
