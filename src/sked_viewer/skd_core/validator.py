"""
validator.py
============

Referential-integrity check run between parsing and simulation.

For every scan, in order:
  1) the source label resolves through the alias store (falling back to the
     label itself as an IAU id) to a ``SourceQuasar``;
  2) every antenna code resolves through the antenna-code store to a station
     id, and that station id has a ``Station`` in the position store.

The first failure raises ``ScheduleReferenceError``. The simulator must never
run over a schedule that did not pass.
"""

from __future__ import annotations

from .model import ReferenceKind, Schedule, ScheduleReferenceError

__all__ = ["validate_schedule"]


def validate_schedule(skd: Schedule) -> None:
    for i, scan in enumerate(skd.scans):
        _iau, quasar = skd.resolve_source(scan.source)
        if quasar is None:
            raise ScheduleReferenceError(i, ReferenceKind.SOURCE, scan.source)
        for code in scan.antennas:
            station_id = skd.stations_ant.get(code)
            if station_id is None:
                raise ScheduleReferenceError(i, ReferenceKind.ANTENNA, code)
            if station_id not in skd.stations_pos:
                raise ScheduleReferenceError(i, ReferenceKind.STATION, station_id)
