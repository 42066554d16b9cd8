"""
parser.py
=========

Reader for sked ``.skd`` schedule files.

Only three sections are used; everything else in the file is ignored:

    $STATIONS
    A <ant> <name> <axis> <10 numeric fields> <2-char id> ...
    P <2-char id> <name> <x> <y> <z> <int> <lon> <lat> ...
    $SOURCES
    <IAU> <name|$> <ra_h> <ra_m> <ra_s> <dec_d> <dec_m> <dec_s> ...
    $SKED
    <source> <cal> <SX> PREOB <yydddhhmmss> <dur> MIDOB <n> POSTOB <wrap> ...

A section starts on the line after its marker and ends at the next line that
begins with ``$`` (or at end of file).

Error policy
------------
- Unreadable file or a missing section marker: ``ScheduleParseError``.
- A malformed data line is skipped and a message is appended to
  ``Schedule.warnings``; parsing continues.
- Antenna codes whose station has no valid ``P`` line are kept and reported.
  The validator rejects any scan that uses them.

Scan lines
----------
The cable-wrap token (field 9) packs one antenna code and one wrap indicator
per station, e.g. ``K-V-Y-`` -> antennas ``K``, ``V``, ``Y``. When the line
ends with ``2n`` integer fields (``n`` antennas), the first ``n`` are the
per-antenna data-start offsets in seconds and the last ``n`` the per-antenna
durations; otherwise all offsets are zero.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .model import Schedule, ScheduleParseError, Scan, SourceQuasar, Station
from .time_convert import parse_compact_timestamp

__all__ = [
    "SECTION_STATIONS",
    "SECTION_SOURCES",
    "SECTION_SKED",
    "parse_schedule",
    "parse_schedule_text",
]

SECTION_STATIONS = "$STATIONS"
SECTION_SOURCES = "$SOURCES"
SECTION_SKED = "$SKED"

TIMESTAMP_FORMAT = "y2d3h2m2s2"
NO_COMMON_NAME = "$"

# (1-based line number, line text)
_Line = Tuple[int, str]


class _MalformedLine(ValueError):
    pass


# =============================================================================
# Public API
# =============================================================================


def parse_schedule(path: str, *, year_pivot: int = 78) -> Schedule:
    """
    Parse the schedule file at ``path``.

    Raises
    ------
    ScheduleParseError
        If the file cannot be read or a required section is missing.
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as e:
        raise ScheduleParseError(
            f"Schedule couldn't be opened: {path} ({e.strerror or e})", path=path
        ) from e
    return parse_schedule_text(text, source=path, year_pivot=year_pivot)


def parse_schedule_text(
    text: str, *, source: str = "<string>", year_pivot: int = 78
) -> Schedule:
    """Parse schedule text. ``source`` is only used in messages."""
    lines = text.splitlines()
    sections = {}
    for marker in (SECTION_STATIONS, SECTION_SOURCES, SECTION_SKED):
        section = _find_section(lines, marker)
        if section is None:
            raise ScheduleParseError(
                f"Schedule contains no {marker} section: {source}", path=source
            )
        sections[marker] = section

    skd = Schedule(path=source)
    _parse_stations(skd, sections[SECTION_STATIONS], source)
    _parse_sources(skd, sections[SECTION_SOURCES], source)
    _report_duplicates(skd, source)
    _parse_scans(skd, sections[SECTION_SKED], source, year_pivot)
    return skd


# =============================================================================
# Sections
# =============================================================================


def _find_section(lines: List[str], marker: str) -> Optional[List[_Line]]:
    start = None
    for i, line in enumerate(lines):
        if line.startswith(marker):
            start = i + 1
            break
    if start is None:
        return None
    out: List[_Line] = []
    for i in range(start, len(lines)):
        if lines[i].startswith("$"):
            break
        out.append((i + 1, lines[i]))
    return out


def _warn(skd: Schedule, source: str, lineno: int, msg: str) -> None:
    skd.warnings.append(f"{source}:{lineno}: {msg}")


def _report_duplicates(skd: Schedule, source: str) -> None:
    for store in (skd.stations_ant, skd.stations_pos, skd.sources, skd.sources_alias):
        for key, n in sorted(store.duplicates.items()):
            skd.warnings.append(
                f"{source}: duplicate key {key!r} in {store.name} "
                f"({n} entries, first one used)"
            )


# -----------------------------------------------------------------------------
# $STATIONS
# -----------------------------------------------------------------------------


def _parse_antenna_line(fields: List[str]) -> Tuple[str, str]:
    if len(fields) < 15 or len(fields[1]) != 1:
        raise _MalformedLine("wrong field count")
    try:
        for tok in fields[4:14]:
            float(tok)
    except ValueError:
        raise _MalformedLine("non-numeric antenna parameters")
    station_id = fields[14][:2]
    if len(station_id) != 2:
        raise _MalformedLine(f"invalid station id {fields[14]!r}")
    return fields[1], station_id


def _parse_position_line(fields: List[str]) -> Tuple[str, Station]:
    if len(fields) < 9 or len(fields[1]) < 2:
        raise _MalformedLine("wrong field count")
    try:
        for tok in fields[3:6]:
            float(tok)
        int(fields[6])
        lon = float(fields[7])
        lat = float(fields[8])
    except ValueError:
        raise _MalformedLine("non-numeric position fields")
    return fields[1][:2], Station(name=fields[2][:8], lam=lon, phi=90.0 - lat)


def _parse_stations(skd: Schedule, section: List[_Line], source: str) -> None:
    for lineno, line in section:
        fields = line.split()
        if not fields:
            continue
        kind = fields[0]
        try:
            if kind == "A":
                key, station_id = _parse_antenna_line(fields)
                skd.stations_ant.insert(key, station_id)
            elif kind == "P":
                station_id, station = _parse_position_line(fields)
                skd.stations_pos.insert(station_id, station)
        except _MalformedLine as e:
            label = "antenna" if kind == "A" else "station position"
            _warn(skd, source, lineno, f"Failed to parse {label} line ({e}). Skipping.")

    for key, station_id in skd.stations_ant.items():
        if station_id not in skd.stations_pos:
            skd.warnings.append(
                f"{source}: antenna {key!r} refers to station {station_id!r} "
                "without a position entry"
            )


# -----------------------------------------------------------------------------
# $SOURCES
# -----------------------------------------------------------------------------


def _sexagesimal(head: str, minutes: str, seconds: str) -> float:
    """Combine d/m/s (or h/m/s) tokens; the sign comes from ``head`` so that
    ``-00 30 00`` is -0.5."""
    value = abs(int(head)) + int(minutes) / 60.0 + float(seconds) / 3600.0
    return -value if head.strip().startswith("-") else value


def _parse_source_line(fields: List[str]) -> Tuple[str, SourceQuasar]:
    if len(fields) < 8:
        raise _MalformedLine("wrong field count")
    iau, name = fields[0], fields[1]
    try:
        ra_hours = _sexagesimal(fields[2], fields[3], fields[4])
        dec_deg = _sexagesimal(fields[5], fields[6], fields[7])
    except ValueError:
        raise _MalformedLine("non-numeric coordinates")
    if name == NO_COMMON_NAME:
        name = ""
    return iau, SourceQuasar(name=name, alf=ra_hours * 15.0, phi=90.0 - dec_deg)


def _parse_sources(skd: Schedule, section: List[_Line], source: str) -> None:
    for lineno, line in section:
        fields = line.split()
        if not fields:
            continue
        try:
            iau, quasar = _parse_source_line(fields)
        except _MalformedLine as e:
            _warn(skd, source, lineno, f"Failed to parse source ({e}). Skipping.")
            continue
        if quasar.name:
            skd.sources_alias.insert(quasar.name, iau)
        skd.sources.insert(iau, quasar)


# -----------------------------------------------------------------------------
# $SKED
# -----------------------------------------------------------------------------


def _trailing_offsets(tail: List[str], n: int) -> Tuple[int, ...]:
    if n == 0 or len(tail) < 2 * n:
        return ()
    try:
        values = [int(tok) for tok in tail[-2 * n:]]
    except ValueError:
        return ()
    offsets = values[:n]
    if any(v < 0 for v in offsets):
        return ()
    return tuple(offsets)


def _parse_scan_line(fields: List[str], year_pivot: int) -> Scan:
    if len(fields) < 10:
        raise _MalformedLine("wrong field count")
    try:
        cal_duration = int(fields[1])
        obs_duration = int(fields[5])
    except ValueError:
        raise _MalformedLine("non-numeric duration")
    if cal_duration < 0 or obs_duration < 0:
        raise _MalformedLine("negative duration")
    try:
        timestamp = parse_compact_timestamp(fields[4], TIMESTAMP_FORMAT, year_pivot)
    except ValueError:
        raise _MalformedLine("failed to parse observation timestamp")
    wrap = fields[9]
    if len(wrap) % 2 != 0:
        raise _MalformedLine(f"invalid cable wrap string {wrap!r}")
    antennas = tuple(wrap[0::2])
    return Scan(
        source=fields[0],
        timestamp=timestamp,
        cal_duration=cal_duration,
        obs_duration=obs_duration,
        antennas=antennas,
        offsets=_trailing_offsets(fields[10:], len(antennas)),
    )


def _parse_scans(
    skd: Schedule, section: List[_Line], source: str, year_pivot: int
) -> None:
    for lineno, line in section:
        fields = line.split()
        if not fields:
            continue
        try:
            skd.scans.append(_parse_scan_line(fields, year_pivot))
        except _MalformedLine as e:
            _warn(skd, source, lineno, f"Failed to parse observation ({e}). Skipping.")
