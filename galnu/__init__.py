"""
galnu
=====

Galactic contribution to the astrophysical high-energy neutrino flux.

A likelihood analysis of a catalog of detected events, fitting the
fraction f_gal of the astrophysical flux that comes from sources
distributed like the Milky Way disks, the rest being isotropic
(extragalactic). Sky maps of the events and of the galactic model
are built by Monte Carlo under the directional uncertainty.

Requirements
------------

* numpy
* scipy
* healpy
* pandas
* matplotlib
* tqdm (command line only)

Contents
--------

events
    Event and the read-only EventCatalog

coordinates
    Equatorial/galactic frame rotation, spherical/Cartesian conversion

sampler
    von Mises-Fisher smearing of directions

galaxy
    Milky Way disk model of the galactic sources

models
    Energy spectra and per-event likelihood terms

likelihood
    Profile likelihood of f_gal, best fit and confidence intervals

skymap
    Histogram grid and Monte Carlo sky map accumulation

report, plotting
    Output tables and figures

cli
    Command line
"""

from .errors import NO_LOWER_BOUND, InvalidParameter
from .events import Event, EventCatalog, make_event
from .likelihood import LLH, Analysis, Posterior
from .models import IntensityModels
from .sampler import DirectionalSampler
from .skymap import HistogramGrid, SkyMapAccumulator

__version__ = "0.1.0"

__all__ = [
    "NO_LOWER_BOUND",
    "InvalidParameter",
    "Event",
    "EventCatalog",
    "make_event",
    "LLH",
    "Analysis",
    "Posterior",
    "IntensityModels",
    "DirectionalSampler",
    "HistogramGrid",
    "SkyMapAccumulator",
]
