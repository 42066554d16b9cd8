"""
summary.py
==========
Tabular views of a parsed schedule, for inspection and the CLI ``--summary``.

Each function returns a ``pandas.DataFrame``; nothing here mutates the
schedule.
"""

from __future__ import annotations

import pandas as pd

from .model import Schedule
from .time_convert import to_julian_date

__all__ = ["station_table", "source_table", "schedule_table"]


def station_table(skd: Schedule) -> pd.DataFrame:
    """One row per antenna code: code, station id, name, lam, phi."""
    rows = []
    for code, station_id in skd.stations_ant.items():
        st = skd.stations_pos.get(station_id)
        rows.append(
            {
                "antenna": code,
                "station_id": station_id,
                "name": st.name if st else None,
                "lam": st.lam if st else float("nan"),
                "phi": st.phi if st else float("nan"),
            }
        )
    return pd.DataFrame(rows, columns=["antenna", "station_id", "name", "lam", "phi"])


def source_table(skd: Schedule) -> pd.DataFrame:
    """One row per IAU source: iau, common name, alf, phi."""
    rows = [
        {"iau": iau, "name": q.name, "alf": q.alf, "phi": q.phi}
        for iau, q in skd.sources.items()
    ]
    return pd.DataFrame(rows, columns=["iau", "name", "alf", "phi"])


def schedule_table(skd: Schedule, backend: str = "meeus") -> pd.DataFrame:
    """
    One row per scan, in schedule order.

    Columns: source (as written), iau, name (common name), start (timestamp
    string), start_jd, cal_duration, obs_duration, antennas (codes joined),
    stations (resolved station ids joined with ``-``, ``?`` when unresolved).
    """
    cols = [
        "source", "iau", "name", "start", "start_jd",
        "cal_duration", "obs_duration", "antennas", "stations",
    ]
    rows = []
    for scan in skd.scans:
        iau, quasar = skd.resolve_source(scan.source)
        station_ids = []
        for code in scan.antennas:
            sid = skd.stations_ant.get(code)
            station_ids.append(sid if sid is not None else "?")
        rows.append(
            {
                "source": scan.source,
                "iau": iau,
                "name": quasar.name if quasar else None,
                "start": str(scan.timestamp),
                "start_jd": to_julian_date(scan.timestamp, backend),
                "cal_duration": scan.cal_duration,
                "obs_duration": scan.obs_duration,
                "antennas": scan.ids,
                "stations": "-".join(station_ids),
            }
        )
    df = pd.DataFrame(rows, columns=cols)
    df.index.name = "scan"
    return df
