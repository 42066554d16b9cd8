from __future__ import annotations
from pathlib import Path
import pytest

from sked_viewer.skd_core.parser import parse_schedule_text

# ---------- Sample schedule ----------

# Two antennas (K -> Kk, V -> Vl), three sources, two overlapping scans:
#   scan 0: 0059+581, 2024-086 17:30:00, 60 s, antennas K V, V starts 10 s late
#   scan 1: DA193 (alias of 0552+398), 2024-086 17:30:30, 60 s, antenna V
SAMPLE_SKD = """\
$EXPER R1999
$PARAM
DESCRIPTION Sample two scan session
SCHEDULING_SOFTWARE SKED
$SOURCES
0059+581 $        01 02 45.762383  58 24 11.136605 2000.0 0.0
0552+398 DA193    05 55 30.805611  39 48 49.165025 2000.0 0.0
1921-293 OV-236   19 24 51.055955 -29 14 30.121150 2000.0 0.0
$STATIONS
A  K KOKEE    AZEL .0000   120.0 0    270.0  810.0  120.0 0.0   2.0  88.0  -1.0 Kk 20 KOKEE
A  V VLBA     AZEL .0000    90.0 0    270.0  810.0   90.0 0.0   2.0  88.0  -1.0 Vl 20 VLBA
P Kk KOKEE   -5543837.6  -2054566.4   2387852.2 00000  -159.66   22.13 -1 KOKEE
P Vl VLBA    -1324009.3  -5332181.9   3231962.4 00000  -104.00   30.00 -1 VLBA
$SKED
0059+581  10 SX PREOB 24086173000  60 MIDOB 0 POSTOB K-V- 1F000000 1F000000 YNNN 0 10 60 50
DA193     10 SX PREOB 24086173030  60 MIDOB 0 POSTOB V- 1F000000 YN 0 60
$HEAD
"""


@pytest.fixture
def sample_skd_text() -> str:
    """Provide the text of a small, fully consistent schedule."""
    return SAMPLE_SKD


@pytest.fixture
def sample_skd_path(tmp_path: Path) -> Path:
    """Write the sample schedule to a temporary .skd file."""
    p = tmp_path / "r1999.skd"
    p.write_text(SAMPLE_SKD, encoding="utf-8")
    return p


@pytest.fixture
def sample_schedule():
    """Provide the parsed sample schedule."""
    return parse_schedule_text(SAMPLE_SKD, source="r1999.skd")


@pytest.fixture
def make_skd_text():
    """Return a builder that assembles schedule text from section bodies."""

    def _build(stations: list[str], sources: list[str], sked: list[str]) -> str:
        parts = ["$STATIONS", *stations, "$SOURCES", *sources, "$SKED", *sked, ""]
        return "\n".join(parts)

    return _build
