#!/usr/bin/env python

"""
Command line for the galactic fraction analysis.

Every product of the analysis is a sub-command writing one file
into -save_path:

    scan              logL on a uniform f_gal grid        Likelihood.txt
    table             best fit + per-event posteriors     Likelihood_Table.txt
    cls               confidence intervals 1-5 sigma      Likelihood_CLs_Table.txt
    ic-skymap         sky map of the smeared events       IC_SkyMap.txt
    mw-skymap         sky map of the galactic model       MW_SkyMap.txt
    mw-visualization  galactocentric source positions     MW_Visualization.txt
    vmf-test          check of the vMF containment        vMF_test.txt

The likelihood commands need an event catalog (-catalog), a csv file
with columns id, energy_tev, ra_deg, dec_deg, ang_err_deg.
"""

import argparse
import ast
import logging
import os
from typing import Callable, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from . import plotting, report
from .coordinates import heliocentric_to_galactocentric, spherical_to_cartesian
from .events import EventCatalog
from .galaxy import MilkyWayDisks
from .likelihood import LLH, Analysis
from .models import GAMMA_ASTRO, GAMMA_ATMOSPHERICS, BrokenPowerLaw, IntensityModels, PowerLaw
from .sampler import DirectionalSampler
from .skymap import SkyMapAccumulator

logger = logging.getLogger(__name__)


def _progress_bar(total: int, desc: str) -> Tuple[tqdm, Callable[[float], None]]:
    bar = tqdm(total=total, desc=desc, unit="trials", unit_scale=True)

    def update(fraction: float) -> None:
        bar.update(int(round(fraction * total)) - bar.n)

    return bar, update


def build_models(args: argparse.Namespace, rng: np.random.Generator) -> IntensityModels:
    if args.spectrum == "broken":
        astro = BrokenPowerLaw(
            index_low=args.gamma_astro,
            index_high=args.gamma_high,
            e_break=args.e_break,
            e_min=args.e_min,
            e_max=args.e_max,
        )
    else:
        astro = PowerLaw(args.gamma_astro, e_min=args.e_min, e_max=args.e_max)
    return IntensityModels(
        galaxy=MilkyWayDisks(nside=args.nside, seed=rng),
        n_bkg=args.n_bkg,
        n_astro=args.n_astro,
        bkg_spectrum=PowerLaw(args.gamma_atm, e_min=args.e_min, e_max=args.e_max),
        astro_spectrum=astro,
        n_smear=args.n_smear,
        seed=rng,
    )


def run_scan(args: argparse.Namespace, analysis: Analysis) -> None:
    scan = analysis.scan(args.n_steps)
    report.write_scan(os.path.join(args.save_path, "Likelihood" + args.sfx + ".txt"), scan)
    if args.plot:
        interval = analysis.confidence_interval(1.0)
        plotting.plot_scan(
            scan, os.path.join(args.save_path, "Likelihood" + args.sfx + ".png"), interval
        )


def run_table(args: argparse.Namespace, analysis: Analysis) -> None:
    f_hat = analysis.maximize()
    logger.info("best-fit f_gal = %.4f", f_hat)
    report.write_text(
        os.path.join(args.save_path, "Likelihood_Table" + args.sfx + ".txt"),
        report.likelihood_table(analysis.llh, f_hat),
    )


def run_cls(args: argparse.Namespace, analysis: Analysis) -> None:
    report.write_text(
        os.path.join(args.save_path, "Likelihood_CLs_Table" + args.sfx + ".txt"),
        report.confidence_table(analysis),
    )


def run_ic_skymap(args: argparse.Namespace, rng: np.random.Generator) -> None:
    catalog = EventCatalog.from_csv(args.catalog)
    acc = SkyMapAccumulator(
        args.n_theta, args.n_phi, sampler=DirectionalSampler(rng), batch_size=args.batch_size
    )
    logger.info("generating IC sky map, %d events x %d trials", len(catalog), args.n_trials)
    bar, progress = _progress_bar(len(catalog) * args.n_trials, "IC sky map")
    with bar:
        acc.accumulate_catalog(catalog, args.n_trials, progress)
    _write_skymap(args, acc, "IC_SkyMap")


def run_mw_skymap(args: argparse.Namespace, rng: np.random.Generator) -> None:
    acc = SkyMapAccumulator(
        args.n_theta,
        args.n_phi,
        galaxy=MilkyWayDisks(seed=rng),
        batch_size=args.batch_size,
    )
    logger.info("generating MW sky map, %d trials", args.n_trials)
    bar, progress = _progress_bar(args.n_trials, "MW sky map")
    with bar:
        acc.accumulate_population(args.n_trials, progress)
    _write_skymap(args, acc, "MW_SkyMap")


def _write_skymap(args: argparse.Namespace, acc: SkyMapAccumulator, name: str) -> None:
    log_density = acc.finalize()
    report.write_skymap(
        os.path.join(args.save_path, name + args.sfx + ".txt"), log_density, acc.n_trials_total
    )
    if args.plot:
        plotting.plot_skymap(
            log_density, os.path.join(args.save_path, name + args.sfx + ".png"), title=name
        )


def run_mw_visualization(args: argparse.Namespace, rng: np.random.Generator) -> None:
    galaxy = MilkyWayDisks(seed=rng)
    direction, distance = galaxy.sample_positions(args.n_trials)
    positions = heliocentric_to_galactocentric(
        spherical_to_cartesian(direction, distance), r_sun=galaxy.r_sun
    )
    report.write_positions(
        os.path.join(args.save_path, "MW_Visualization" + args.sfx + ".txt"), positions
    )


def run_vmf_test(args: argparse.Namespace, rng: np.random.Generator) -> None:
    sampler = DirectionalSampler(rng)
    half_angle = np.deg2rad(args.alpha50)
    kappa = sampler.concentration_from_containment(half_angle)
    cos_theta = sampler.sample_deviation_cosine(kappa, args.n_trials)
    fraction = np.mean(np.arccos(cos_theta) < half_angle)
    logger.info("kappa = %.6g, contained fraction = %.4f (should be 0.5)", kappa, fraction)
    report.write_vmf_test(
        os.path.join(args.save_path, "vMF_test" + args.sfx + ".txt"), half_angle, kappa, cos_theta
    )


LIKELIHOOD_COMMANDS = {"scan": run_scan, "table": run_table, "cls": run_cls}
SAMPLING_COMMANDS = {
    "ic-skymap": run_ic_skymap,
    "mw-skymap": run_mw_skymap,
    "mw-visualization": run_mw_visualization,
    "vmf-test": run_vmf_test,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Galactic fraction of high-energy neutrinos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "command",
        choices=sorted(list(LIKELIHOOD_COMMANDS) + list(SAMPLING_COMMANDS)),
        help="Product to compute",
    )
    parser.add_argument(
        "-catalog",
        type=str,
        default=os.path.join("data", "example_events.csv"),
        help="Event catalog (csv). Default is data/example_events.csv",
    )
    parser.add_argument(
        "-save_path",
        type=str,
        default=".",
        help="Path where you want to save the results",
    )
    parser.add_argument(
        "-sfx",
        type=str,
        help="Suffix for the results file names",
    )
    parser.add_argument(
        "-seed", type=int, default=None, help="Seed of the random number generator"
    )
    parser.add_argument(
        "-plot",
        type=ast.literal_eval,
        default=False,
        help="Do you also want a figure of the result?",
    )
    parser.add_argument(
        "-verbose",
        type=ast.literal_eval,
        default=False,
        help="Do you want debug output?",
    )

    # intensity models
    parser.add_argument(
        "-n_bkg",
        type=float,
        default=21.6,
        help="Expected number of background events. Default is 21.6",
    )
    parser.add_argument(
        "-n_astro",
        type=float,
        default=32.4,
        help="Expected number of astrophysical events. Default is 32.4",
    )
    parser.add_argument(
        "-gamma_atm",
        type=float,
        default=GAMMA_ATMOSPHERICS,
        help=f"Spectral index of the atmospheric background. Default is {GAMMA_ATMOSPHERICS}",
    )
    parser.add_argument(
        "-gamma_astro",
        type=float,
        default=GAMMA_ASTRO,
        help=f"Astrophysical spectral index (below the break for -spectrum broken). Default is {GAMMA_ASTRO}",
    )
    parser.add_argument(
        "-spectrum",
        choices=["powerlaw", "broken"],
        default="powerlaw",
        help="Shape of the astrophysical spectrum. Default is an unbroken power law",
    )
    parser.add_argument(
        "-gamma_high",
        type=float,
        default=2.9,
        help="Astrophysical spectral index above the break. Default is 2.9",
    )
    parser.add_argument(
        "-e_break",
        type=float,
        default=200.0,
        help="Break energy (in TeV) of the broken power law. Default is 200",
    )
    parser.add_argument(
        "-e_min", type=float, default=60.0, help="Minimum energy (in TeV). Default is 60"
    )
    parser.add_argument(
        "-e_max", type=float, default=1e4, help="Maximum energy (in TeV). Default is 10^4"
    )
    parser.add_argument(
        "-nside",
        type=int,
        default=64,
        help="HEALPix resolution of the galactic intensity map. Default is 64",
    )
    parser.add_argument(
        "-n_smear",
        type=int,
        default=10_000,
        help="Directions per event to average the galactic density. Default is 10^4",
    )

    # likelihood
    parser.add_argument(
        "-n_steps",
        type=int,
        default=1000,
        help="Number of f_gal steps of the likelihood scan. Default is 1000",
    )

    # sampling
    parser.add_argument(
        "-n_trials",
        type=int,
        default=10**7,
        help="Number of Monte Carlo trials (per event for ic-skymap). Default is 10^7",
    )
    parser.add_argument(
        "-n_theta", type=int, default=500, help="Polar angle bins of the sky maps. Default is 500"
    )
    parser.add_argument(
        "-n_phi", type=int, default=500, help="Azimuthal bins of the sky maps. Default is 500"
    )
    parser.add_argument(
        "-batch_size",
        type=int,
        default=10**6,
        help="Directions drawn per pass. Default is 10^6",
    )
    parser.add_argument(
        "-alpha50",
        type=float,
        default=15.0,
        help="50%% containment half-angle (in deg) for vmf-test. Default is 15",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    if args.save_path == ".":
        args.save_path = os.getcwd()
    os.makedirs(args.save_path, exist_ok=True)
    args.sfx = "_" + args.sfx if args.sfx is not None else ""

    rng = np.random.default_rng(args.seed)

    if args.command in LIKELIHOOD_COMMANDS:
        catalog = EventCatalog.from_csv(args.catalog)
        analysis = Analysis(LLH(catalog, build_models(args, rng)))
        LIKELIHOOD_COMMANDS[args.command](args, analysis)
    else:
        SAMPLING_COMMANDS[args.command](args, rng)

    logger.info("done.")


if __name__ == "__main__":
    main()
