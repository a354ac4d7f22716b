"""
Detected neutrino events and the read-only catalog that holds them.
"""

import logging
import os
from typing import Iterable, Iterator, NamedTuple, Tuple, Union

import numpy as np
import numpy.typing as npt
import pandas as pd

from .coordinates import SphericalCoordinate, from_ra_dec
from .errors import InvalidParameter

logger = logging.getLogger(__name__)

# columns expected in a catalog file
CATALOG_COLUMNS = ("id", "energy_tev", "ra_deg", "dec_deg", "ang_err_deg")


class Event(NamedTuple):
    """A single detected event.

    Args:
        identifier (str): event name/number
        energy (float): deposited energy (in TeV)
        direction (SphericalCoordinate): reconstructed equatorial direction,
            theta = pi/2 - DEC and phi = RA (in rad)
        uncertainty (float): 50% containment half-angle of the
            reconstructed direction (in rad)
    """

    identifier: str
    energy: float
    direction: SphericalCoordinate
    uncertainty: float


def make_event(
    identifier: str, energy: float, ra: float, dec: float, uncertainty: float
) -> Event:
    """Validate the inputs and build an Event. All angles in rad."""
    if not np.isfinite(energy) or energy <= 0:
        raise InvalidParameter(f"event {identifier}: energy must be positive")
    if not np.isfinite(uncertainty) or not 0 < uncertainty < np.pi:
        raise InvalidParameter(
            f"event {identifier}: angular uncertainty must lie in (0, pi)"
        )
    return Event(
        str(identifier), float(energy), from_ra_dec(ra, dec), float(uncertainty)
    )


class EventCatalog:
    """
    Immutable, ordered collection of events.
    Passed by reference into the likelihood and sky map code,
    nothing in the package modifies it.

    Args:
        events (Iterable[Event]): the events, in catalog order
    """

    def __init__(self, events: Iterable[Event]) -> None:
        self._events: Tuple[Event, ...] = tuple(events)
        ids = [e.identifier for e in self._events]
        if len(set(ids)) != len(ids):
            raise InvalidParameter("event identifiers must be unique")

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __getitem__(self, index: int) -> Event:
        return self._events[index]

    def __repr__(self) -> str:
        return f"EventCatalog({len(self)} events)"

    @property
    def energies(self) -> npt.NDArray:
        return np.array([e.energy for e in self._events])

    def sorted_by_energy(self) -> "EventCatalog":
        """New catalog with the most energetic event first"""
        return EventCatalog(sorted(self._events, key=lambda e: e.energy, reverse=True))

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "EventCatalog":
        """Build a catalog from a DataFrame with the CATALOG_COLUMNS
        (energy in TeV, angles in deg)"""
        missing = [c for c in CATALOG_COLUMNS if c not in frame.columns]
        if missing:
            raise InvalidParameter(f"catalog is missing columns {missing}")
        events = [
            make_event(
                row.id,
                row.energy_tev,
                np.deg2rad(row.ra_deg),
                np.deg2rad(row.dec_deg),
                np.deg2rad(row.ang_err_deg),
            )
            for row in frame.itertuples(index=False)
        ]
        return cls(events)

    @classmethod
    def from_csv(cls, path: Union[str, os.PathLike]) -> "EventCatalog":
        """Load a catalog from a csv file, one event per row.

        Args:
            path (str): path to the csv file

        Returns:
            EventCatalog: the loaded events
        """
        frame = pd.read_csv(path, skipinitialspace=True, dtype={"id": str})
        frame.columns = [c.strip() for c in frame.columns]
        try:
            catalog = cls.from_frame(frame)
        except InvalidParameter as err:
            raise InvalidParameter(f"{path}: {err}") from err
        logger.info("loaded %d events from %s", len(catalog), path)
        return catalog
