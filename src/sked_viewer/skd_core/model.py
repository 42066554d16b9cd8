"""
model.py
========
Data models shared by the schedule parser, the validator and the simulator.

Angles are in degrees throughout. ``phi`` values are co-latitude-like
(``90 - latitude`` for stations, ``90 - declination`` for sources), which is
the convention of the schedule viewer's sphere coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .keyed_store import KeyedStore


# =============================================================================
# Exceptions
# =============================================================================


class ScheduleParseError(ValueError):
    """
    Raised when a schedule cannot be loaded at all: the file is missing or
    unreadable, or a required section marker is absent.

    Individual malformed lines never raise; they are reported through
    ``Schedule.warnings``.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class ReferenceKind(Enum):
    # Scan source label resolves to no SourceQuasar.
    SOURCE = "source"
    # Antenna code in a scan has no antenna-code entry.
    ANTENNA = "antenna"
    # Antenna code maps to a station id without a position record.
    STATION = "station"


class ScheduleReferenceError(ValueError):
    """Raised by the validator on the first unresolved scan reference."""

    def __init__(self, scan_index: int, kind: ReferenceKind, key: str) -> None:
        self.scan_index = scan_index
        self.kind = kind
        self.key = key
        super().__init__(
            f"Scan {scan_index}: unresolved {kind.value} reference {key!r}"
        )


# =============================================================================
# Records
# =============================================================================


# A ground station (antenna) position.
@dataclass(frozen=True)
class Station:
    # Station name, at most 8 characters.
    name: str
    # Longitude-like angle in degrees.
    lam: float
    # 90 - geodetic latitude, in degrees.
    phi: float


# A celestial radio source.
@dataclass(frozen=True)
class SourceQuasar:
    # Common name, empty if the schedule gives none.
    name: str
    # Right ascension in degrees (hours * 15).
    alf: float
    # 90 - declination, in degrees.
    phi: float


@dataclass(frozen=True, order=True)
class Timestamp:
    """
    Calendar instant as written in schedules: year, day-of-year and time.

    ``day`` is 1-based (1 = January 1st). Ordering compares fields in
    declaration order, which is chronological for normalized values.
    """

    year: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    def __str__(self) -> str:
        return (
            f"{self.year:04d}-{self.day:03d} "
            f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        )


@dataclass(frozen=True)
class Scan:
    """
    One scheduled observation.

    Attributes
    ----------
    source : str
        IAU id or common name, as written in the ``$SKED`` line.
    timestamp : Timestamp
        Scan start.
    cal_duration : int
        Calibration duration in seconds.
    obs_duration : int
        Observation duration in seconds.
    antennas : tuple of str
        Participating single-character antenna codes.
    offsets : tuple of int
        Per-antenna start offsets in seconds, relative to ``timestamp``.
        Same length as ``antennas``.
    """

    source: str
    timestamp: Timestamp
    cal_duration: int
    obs_duration: int
    antennas: Tuple[str, ...]
    offsets: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not self.offsets:
            object.__setattr__(self, "offsets", (0,) * len(self.antennas))
        if len(self.offsets) != len(self.antennas):
            raise ValueError("offsets must have one entry per antenna")
        if self.cal_duration < 0 or self.obs_duration < 0:
            raise ValueError("scan durations must be >= 0")

    @property
    def ids(self) -> str:
        """Antenna codes joined into one string, e.g. ``"KVY"``."""
        return "".join(self.antennas)


@dataclass
class Schedule:
    """
    Parsed schedule: the four cross-reference stores plus the scan list.

    Built once by the parser and read-only afterwards.
    """

    stations_ant: KeyedStore[str] = field(
        default_factory=lambda: KeyedStore("antenna codes", str)
    )
    stations_pos: KeyedStore[Station] = field(
        default_factory=lambda: KeyedStore("station positions", Station)
    )
    sources: KeyedStore[SourceQuasar] = field(
        default_factory=lambda: KeyedStore("sources", SourceQuasar)
    )
    sources_alias: KeyedStore[str] = field(
        default_factory=lambda: KeyedStore("source aliases", str)
    )
    scans: List[Scan] = field(default_factory=list)
    # Diagnostics for lines skipped during parsing.
    warnings: List[str] = field(default_factory=list)
    path: Optional[str] = None

    @property
    def scan_count(self) -> int:
        return len(self.scans)

    def get_scan(self, index: int) -> Optional[Scan]:
        if 0 <= index < len(self.scans):
            return self.scans[index]
        return None

    def resolve_source(self, label: str) -> Tuple[str, Optional[SourceQuasar]]:
        """
        Resolve a scan source label to ``(iau_id, SourceQuasar or None)``.

        The alias store is consulted first; if the label is not a common name
        it is used directly as an IAU id.
        """
        iau = self.sources_alias.get(label)
        if iau is None:
            iau = label
        return iau, self.sources.get(iau)

    def resolve_antenna(
        self, code: str
    ) -> Tuple[Optional[str], Optional[Station]]:
        """Resolve an antenna code to ``(station_id, Station)``, either may be None."""
        station_id = self.stations_ant.get(code)
        if station_id is None:
            return None, None
        return station_id, self.stations_pos.get(station_id)


__all__ = [
    "ScheduleParseError",
    "ReferenceKind",
    "ScheduleReferenceError",
    "Station",
    "SourceQuasar",
    "Timestamp",
    "Scan",
    "Schedule",
]
