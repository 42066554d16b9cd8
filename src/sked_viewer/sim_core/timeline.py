"""
timeline.py
===========

Start/final event sequence derived from a schedule's scans.

Each scan contributes a START event at its start Julian Date and a FINAL
event ``obs_duration`` seconds later. Events are sorted by Julian Date with a
stable sort over the emission order ``[S0, F0, S1, F1, ...]``, so ties are
deterministic and a scan's START always precedes its FINAL.

``max_concurrent`` is the peak of the running ``+1 / -1`` sweep over the
sorted sequence. The simulator sizes its active-slot array with it and never
needs to grow it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from sked_viewer.skd_core.model import Schedule
from sked_viewer.skd_core.time_convert import SECONDS_PER_DAY, to_julian_date

__all__ = ["EventKind", "Event", "Timeline", "build_timeline"]


class EventKind(Enum):
    START = "start"
    FINAL = "final"


@dataclass(frozen=True)
class Event:
    scan_index: int
    julian_date: float
    kind: EventKind


@dataclass(frozen=True)
class Timeline:
    events: Tuple[Event, ...]
    max_concurrent: int

    def __len__(self) -> int:
        return len(self.events)

    def first_start_julian_date(self) -> Optional[float]:
        for ev in self.events:
            if ev.kind is EventKind.START:
                return ev.julian_date
        return None

    def last_final_julian_date(self) -> Optional[float]:
        """Julian Date at which the last scan ends (None for an empty timeline)."""
        for ev in reversed(self.events):
            if ev.kind is EventKind.FINAL:
                return ev.julian_date
        return None


def build_timeline(skd: Schedule, backend: str = "meeus") -> Timeline:
    n = len(skd.scans)
    if n == 0:
        return Timeline(events=(), max_concurrent=0)

    jds = np.empty(2 * n, dtype=float)
    deltas = np.empty(2 * n, dtype=np.int64)
    for i, scan in enumerate(skd.scans):
        start = to_julian_date(scan.timestamp, backend)
        jds[2 * i] = start
        jds[2 * i + 1] = start + scan.obs_duration / SECONDS_PER_DAY
        deltas[2 * i] = 1
        deltas[2 * i + 1] = -1

    order = np.argsort(jds, kind="stable")
    events = tuple(
        Event(
            scan_index=int(k // 2),
            julian_date=float(jds[k]),
            kind=EventKind.START if k % 2 == 0 else EventKind.FINAL,
        )
        for k in order
    )
    running = np.cumsum(deltas[order])
    return Timeline(events=events, max_concurrent=int(running.max()))
