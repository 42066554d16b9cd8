"""
time_convert.py
===============

Calendar, Julian Date and sidereal-time conversions for schedule timestamps.

Schedules write instants as year + day-of-year + time of day with whole-second
resolution, so every conversion here only needs to agree to about a second.

Backends
--------
Two interchangeable backends are provided and selected by name:

- ``"meeus"`` (default): closed-form Julian Date from Meeus, *Astronomical
  Algorithms* ch. 7, and the Meeus GMST polynomial (eq. 12.4). Pure Python,
  cheap enough to evaluate every frame.
- ``"astropy"``: ``astropy.time.Time`` with the ``yday`` format for dates and
  the IAU1982 mean sidereal time model. The input Julian Date is taken as UT1,
  so no Earth-orientation tables are needed.

Both agree to well under one second of time for schedule epochs.
"""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Tuple

from astropy.time import Time

from .model import Timestamp

__all__ = [
    "TIME_BACKENDS",
    "MS_PER_DAY",
    "SECONDS_PER_DAY",
    "is_leap_year",
    "days_in_year",
    "expand_year",
    "parse_compact_timestamp",
    "add_seconds",
    "to_julian_date",
    "julian_date_to_gmst",
    "julian_date_to_timestamp",
]

TIME_BACKENDS = ("meeus", "astropy")

SECONDS_PER_DAY = 86_400
MS_PER_DAY = 86_400_000

# Julian Date of the J2000.0 epoch (2000-01-01 12:00 TT).
JD_J2000 = 2451545.0
# date.toordinal() + _ORDINAL_TO_JD is the Julian Date at 00:00 of that date.
_ORDINAL_TO_JD = 1721424.5

_FMT_RE = re.compile(r"([ydhms])(\d+)")


def _check_backend(backend: str) -> str:
    be = (backend or "meeus").lower()
    if be not in TIME_BACKENDS:
        raise ValueError(f"Unsupported time backend: {backend}")
    return be


def _wrap0_360(a: float) -> float:
    """Wrap angle in degrees to [0, 360)."""
    x = a % 360.0
    # a tiny negative input can round up to exactly 360.0
    return x - 360.0 if x >= 360.0 else x


# -----------------------------------------------------------------------------
# Calendar helpers
# -----------------------------------------------------------------------------


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365


def expand_year(yy: int, pivot: int = 78) -> int:
    """
    Expand a two-digit schedule year: ``yy > pivot`` -> 19yy, else 20yy.

    Years that already have more than two digits are returned unchanged.
    The pivot is a convention of the schedule format (sked files started in
    the late 1970s), not a general rule.
    """
    if yy >= 100:
        return yy
    return 1900 + yy if yy > pivot else 2000 + yy


def parse_compact_timestamp(
    raw: str, fmt: str = "y2d3h2m2s2", year_pivot: int = 78
) -> Timestamp:
    """
    Parse a packed-digit timestamp using a field-width format string.

    The format is a sequence of ``<field><width>`` pairs where field is one of
    ``y`` (year), ``d`` (day of year), ``h``, ``m``, ``s``. The default
    ``"y2d3h2m2s2"`` reads e.g. ``"24086173000"`` as 2024, day 86, 17:30:00.

    Raises
    ------
    ValueError
        If ``raw`` is not all digits, has the wrong length, or any field is
        out of range.
    """
    spec = [(f, int(w)) for f, w in _FMT_RE.findall(fmt)]
    if not spec or "".join(f"{f}{w}" for f, w in spec) != fmt:
        raise ValueError(f"Invalid timestamp format string: {fmt!r}")
    width = sum(w for _, w in spec)
    if len(raw) != width or not raw.isdigit():
        raise ValueError(f"Timestamp {raw!r} does not match format {fmt!r}")

    values = {"y": 0, "d": 1, "h": 0, "m": 0, "s": 0}
    pos = 0
    for f, w in spec:
        values[f] = int(raw[pos:pos + w])
        pos += w

    year = expand_year(values["y"], year_pivot)
    day, hour, minute, second = values["d"], values["h"], values["m"], values["s"]
    if not 1 <= day <= days_in_year(year):
        raise ValueError(f"Day of year out of range in {raw!r}")
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Time of day out of range in {raw!r}")
    return Timestamp(year, day, hour, minute, second)


def add_seconds(ts: Timestamp, seconds: int) -> Timestamp:
    """
    Add a non-negative number of seconds with carry through
    seconds -> minutes -> hours -> day of year -> year.

    A day carry that reaches the year's day count (365, or 366 in leap years)
    rolls over into day 1 of the next year, matching the schedule viewer's
    reference arithmetic:

    >>> add_seconds(Timestamp(2024, 365, 23, 59, 59), 2)
    Timestamp(year=2025, day=1, hour=0, minute=0, second=1)

    The last day of a year is therefore never produced by a carry: in a
    common year day 364 rolls over to day 1 of the next year, and starting
    from day 366 of a leap year (which the parser accepts) one day of carry
    gives day 2 of the next year. Without a day carry the day is left as is.

    >>> add_seconds(Timestamp(2023, 364, 23, 59, 59), 1)
    Timestamp(year=2024, day=1, hour=0, minute=0, second=0)
    >>> add_seconds(Timestamp(2024, 366, 23, 59, 59), 1)
    Timestamp(year=2025, day=2, hour=0, minute=0, second=0)

    Timeline arithmetic is done on Julian Dates instead, so this rule never
    affects event times.
    """
    seconds = int(seconds)
    if seconds < 0:
        raise ValueError("seconds must be >= 0")

    carry, second = divmod(ts.second + seconds, 60)
    carry, minute = divmod(ts.minute + carry, 60)
    carry, hour = divmod(ts.hour + carry, 24)
    year, day = ts.year, ts.day + carry
    if carry:
        while day >= days_in_year(year):
            day -= days_in_year(year) - 1
            year += 1
    return Timestamp(year, day, hour, minute, second)


# -----------------------------------------------------------------------------
# Julian Date / sidereal time
# -----------------------------------------------------------------------------


def _seconds_of_day(ts: Timestamp) -> int:
    return ts.hour * 3600 + ts.minute * 60 + ts.second


def _jd_jan0_meeus(year: int) -> float:
    """Julian Date of January 1st, 00:00, of ``year`` (Gregorian), Meeus 7.1."""
    # January is treated as month 13 of the previous year.
    y, m = year - 1, 13
    a = y // 100
    b = 2 - a + a // 4
    return math.floor(365.25 * (y + 4716)) + math.floor(30.6001 * (m + 1)) + 1 + b - 1524.5


def to_julian_date(ts: Timestamp, backend: str = "meeus") -> float:
    """Convert a schedule timestamp to a Julian Date (days)."""
    be = _check_backend(backend)
    if be == "astropy":
        t = Time(
            f"{ts.year:04d}:{ts.day:03d}:{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}",
            format="yday",
            scale="utc",
        )
        return float(t.jd)
    return _jd_jan0_meeus(ts.year) + (ts.day - 1) + _seconds_of_day(ts) / SECONDS_PER_DAY


def julian_date_to_gmst(jd: float, backend: str = "meeus") -> float:
    """
    Greenwich Mean Sidereal Time, in degrees within [0, 360), for a Julian Date.
    """
    be = _check_backend(backend)
    if be == "astropy":
        t = Time(jd, format="jd", scale="ut1")
        gst = t.sidereal_time("mean", "greenwich", model="IAU1982")
        return _wrap0_360(float(gst.deg))
    d = jd - JD_J2000
    t = d / 36525.0
    gmst = (
        280.46061837
        + 360.98564736629 * d
        + 0.000387933 * t * t
        - t * t * t / 38710000.0
    )
    return _wrap0_360(gmst)


def _split_jd(jd: float) -> Tuple[int, int]:
    """Return (proleptic Gregorian ordinal, whole seconds into that day)."""
    x = jd - _ORDINAL_TO_JD
    ordinal = math.floor(x)
    secs = int(round((x - ordinal) * SECONDS_PER_DAY))
    if secs >= SECONDS_PER_DAY:
        ordinal += 1
        secs -= SECONDS_PER_DAY
    return int(ordinal), secs


def julian_date_to_timestamp(jd: float) -> Timestamp:
    """Round a Julian Date to the nearest whole second as a schedule timestamp."""
    ordinal, secs = _split_jd(jd)
    d = date.fromordinal(ordinal)
    hour, rem = divmod(secs, 3600)
    minute, second = divmod(rem, 60)
    return Timestamp(d.year, d.timetuple().tm_yday, hour, minute, second)
