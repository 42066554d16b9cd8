"""
simulator.py
============

Event-driven playback of a validated schedule.

The simulator keeps a simulated Julian Date that advances by the real time
elapsed between frames, scaled by ``2**clock_speed``. Every START/FINAL event
whose Julian Date has been reached is applied in timeline order to a fixed
array of active-scan slots sized by ``Timeline.max_concurrent``.

States
------
    READY    -- after construction or ``reset()``; paused, never started
    RUNNING  -- unpaused, simulated time advances with ``advance()``
    PAUSED   -- ``advance()`` is a no-op
    FINISHED -- simulated time went past the end of the last scan

Slot rules
----------
- START fills the first empty slot. A START for a scan already held is
  ignored; a START with every slot taken is dropped and counted in
  ``dropped_starts``.
- FINAL clears the slot holding that scan, and is a no-op otherwise.

The simulator is single-threaded: one owner calls ``advance()`` and the
query methods, and every query observes the full effect of the last call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from sked_viewer.skd_core.model import Schedule, Timestamp
from sked_viewer.skd_core.time_convert import (
    MS_PER_DAY,
    SECONDS_PER_DAY,
    TIME_BACKENDS,
    julian_date_to_gmst,
    julian_date_to_timestamp,
    to_julian_date,
)
from .timeline import Event, EventKind, Timeline, build_timeline

__all__ = [
    "MAX_CLOCK_SPEED",
    "Command",
    "SimulationState",
    "SimulationConfig",
    "ActiveScan",
    "ScanSimulator",
]

# Upper bound of the speed exponent: 2**11 = 2048x real time.
MAX_CLOCK_SPEED = 11


class Command(Enum):
    FASTER = "faster"
    SLOWER = "slower"
    PAUSE_TOGGLE = "pause_toggle"
    RESET = "reset"


class SimulationState(Enum):
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass(frozen=True)
class SimulationConfig:
    """
    Typed run configuration.

    Attributes
    ----------
    year_pivot : int
        Two-digit years above the pivot are 19yy, others 20yy.
    backend : str
        Time backend name, one of ``TIME_BACKENDS``.
    clock_speed : int
        Initial speed exponent in ``[0, MAX_CLOCK_SPEED]``.
    start_paused : bool
        When False the simulator is unpaused right after construction.
    frame_ms : float
        Wall-clock milliseconds per frame in the headless loop.
    max_frames : int
        Frame cap for the headless loop.
    report_every : int
        Print a status line every N frames; 0 prints only on change.
    """

    year_pivot: int = 78
    backend: str = "meeus"
    clock_speed: int = 0
    start_paused: bool = True
    frame_ms: float = 16.0
    max_frames: int = 100000
    report_every: int = 0


@dataclass(frozen=True)
class ActiveScan:
    scan_index: int
    # Source label as written in the schedule (IAU id or common name).
    source_label: str
    station_ids: Tuple[str, ...]
    # True for each antenna whose data-start offset has been reached.
    antenna_mask: Tuple[bool, ...]


def _clamp_speed(speed: int) -> int:
    return min(max(int(speed), 0), MAX_CLOCK_SPEED)


class ScanSimulator:
    """
    Playback controller over a validated ``Schedule``.

    Parameters
    ----------
    skd : Schedule
        Parsed and validated schedule. It is never modified.
    timeline : Timeline, optional
        Precomputed event timeline; built from ``skd`` when omitted.
    backend : str
        Time backend used for Julian Dates and sidereal time.
    clock_speed : int
        Initial speed exponent, clamped to ``[0, MAX_CLOCK_SPEED]``.

    Raises
    ------
    ValueError
        If the schedule has no scans or the backend is unknown.
    """

    def __init__(
        self,
        skd: Schedule,
        *,
        timeline: Optional[Timeline] = None,
        backend: str = "meeus",
        clock_speed: int = 0,
    ) -> None:
        be = str(backend).lower()
        if be not in TIME_BACKENDS:
            raise ValueError(f"Unsupported time backend: {backend}")
        if not skd.scans:
            raise ValueError("Schedule contains no scans to simulate")

        self._skd = skd
        self._backend = be
        self._timeline = build_timeline(skd, be) if timeline is None else timeline
        if len(self._timeline) == 0:
            raise ValueError("Timeline contains no events")

        self._jd_start = self._timeline.first_start_julian_date()
        self._jd_max = self._timeline.last_final_julian_date()
        self._scan_start_jds = np.array(
            [to_julian_date(s.timestamp, be) for s in skd.scans], dtype=float
        )

        # Positions are fixed for the lifetime of the simulator.
        stations = []
        for _code, station_id in skd.stations_ant.items():
            st = skd.stations_pos.get(station_id)
            if st is not None:
                stations.append((st.lam, st.phi))
        self._station_positions = np.array(stations, dtype=float).reshape(-1, 2)
        self._source_positions = np.array(
            [(q.alf, q.phi) for _iau, q in skd.sources.items()], dtype=float
        ).reshape(-1, 2)

        self._slots: List[Optional[int]] = [None] * self._timeline.max_concurrent
        self.clock_speed = _clamp_speed(clock_speed)
        self.reset()

    @classmethod
    def from_config(
        cls,
        skd: Schedule,
        cfg: SimulationConfig,
        timeline: Optional[Timeline] = None,
    ) -> "ScanSimulator":
        sim = cls(skd, timeline=timeline, backend=cfg.backend, clock_speed=cfg.clock_speed)
        if not cfg.start_paused:
            sim.toggle_pause()
        return sim

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Rewind to the first scan start, clear slots and counters, and pause."""
        self._cursor = 0
        for i in range(len(self._slots)):
            self._slots[i] = None
        # simulated ms since the first scan start; jd = jd_start + elapsed / MS_PER_DAY
        self._elapsed_ms = 0.0
        self._jd = float(self._jd_start)
        self._paused = True
        self._never_started = True
        self._finished = False
        self.dropped_starts = 0

    def toggle_pause(self) -> None:
        self._paused = not self._paused
        self._never_started = False

    def set_speed(self, faster: bool) -> None:
        step = 1 if faster else -1
        self.clock_speed = _clamp_speed(self.clock_speed + step)

    def handle(self, command: Command) -> None:
        if command is Command.FASTER:
            self.set_speed(True)
        elif command is Command.SLOWER:
            self.set_speed(False)
        elif command is Command.PAUSE_TOGGLE:
            self.toggle_pause()
        elif command is Command.RESET:
            self.reset()
        else:
            raise ValueError(f"Unknown command: {command!r}")

    def advance(self, real_elapsed_ms: float) -> None:
        """
        Advance simulated time by ``real_elapsed_ms * 2**clock_speed``
        milliseconds and apply every event reached.

        No-op while paused or finished.
        """
        if real_elapsed_ms < 0:
            raise ValueError("real_elapsed_ms must be >= 0")
        if self._paused or self._finished:
            return

        elapsed_ms = self._elapsed_ms + real_elapsed_ms * (2 ** self.clock_speed)
        horizon = self._jd_start + elapsed_ms / MS_PER_DAY
        events = self._timeline.events
        while self._cursor < len(events) and events[self._cursor].julian_date <= horizon:
            self._apply(events[self._cursor])
            self._cursor += 1

        self._elapsed_ms = elapsed_ms
        self._jd = horizon
        if self._jd > self._jd_max:
            self._finished = True

    def _apply(self, ev: Event) -> None:
        if ev.kind is EventKind.START:
            if ev.scan_index in self._slots:
                return
            try:
                free = self._slots.index(None)
            except ValueError:
                self.dropped_starts += 1
                return
            self._slots[free] = ev.scan_index
        else:
            try:
                held = self._slots.index(ev.scan_index)
            except ValueError:
                return
            self._slots[held] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> SimulationState:
        if self._finished:
            return SimulationState.FINISHED
        if self._never_started:
            return SimulationState.READY
        if self._paused:
            return SimulationState.PAUSED
        return SimulationState.RUNNING

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def timeline(self) -> Timeline:
        return self._timeline

    @property
    def end_julian_date(self) -> float:
        return float(self._jd_max)

    def active_scan_ids(self) -> List[int]:
        """Scan indices held in the slots, in slot order."""
        return [i for i in self._slots if i is not None]

    def per_antenna_mask(self, scan_index: int) -> Tuple[bool, ...]:
        if not 0 <= scan_index < len(self._skd.scans):
            raise IndexError(f"scan index out of range: {scan_index}")
        scan = self._skd.scans[scan_index]
        start = self._scan_start_jds[scan_index]
        return tuple(
            bool(self._jd >= start + off / SECONDS_PER_DAY) for off in scan.offsets
        )

    def get_active_scans(self) -> List[ActiveScan]:
        out: List[ActiveScan] = []
        for idx in self.active_scan_ids():
            scan = self._skd.scans[idx]
            station_ids = tuple(
                self._skd.stations_ant.get(code) or "" for code in scan.antennas
            )
            out.append(
                ActiveScan(
                    scan_index=idx,
                    source_label=scan.source,
                    station_ids=station_ids,
                    antenna_mask=self.per_antenna_mask(idx),
                )
            )
        return out

    def get_station_positions(self) -> np.ndarray:
        """Array of shape (N, 2) with (lam, phi) per resolvable antenna code."""
        return self._station_positions

    def get_source_positions(self) -> np.ndarray:
        """Array of shape (M, 2) with (alf, phi) per source."""
        return self._source_positions

    def get_simulated_julian_date(self) -> float:
        return self._jd

    def get_sidereal_angle(self) -> float:
        """Greenwich mean sidereal angle, in degrees, at the simulated time."""
        return julian_date_to_gmst(self._jd, self._backend)

    def simulated_timestamp(self) -> Timestamp:
        return julian_date_to_timestamp(self._jd)
