import math

import pytest

from sked_viewer.skd_core.parser import parse_schedule_text
from sked_viewer.skd_core.summary import schedule_table, source_table, station_table


def test_station_table(sample_schedule):
    df = station_table(sample_schedule)
    assert list(df.columns) == ["antenna", "station_id", "name", "lam", "phi"]
    assert df["antenna"].tolist() == ["K", "V"]
    assert df["station_id"].tolist() == ["Kk", "Vl"]
    assert df.loc[0, "name"] == "KOKEE"
    assert df.loc[1, "phi"] == pytest.approx(60.0)


def test_station_table_dangling_code(make_skd_text):
    a_y = "A  Y YEBES    AZEL .0000 120.0 0 270.0 810.0 120.0 0.0 2.0 88.0 -1.0 Ys 20 YEBES"
    skd = parse_schedule_text(make_skd_text([a_y], [], []))
    df = station_table(skd)
    assert df.loc[0, "name"] is None
    assert math.isnan(df.loc[0, "lam"])


def test_source_table(sample_schedule):
    df = source_table(sample_schedule)
    assert df["iau"].tolist() == ["0059+581", "0552+398", "1921-293"]
    assert df["name"].tolist() == ["", "DA193", "OV-236"]


def test_schedule_table(sample_schedule):
    df = schedule_table(sample_schedule)
    assert df.index.name == "scan"
    assert len(df) == 2
    row = df.loc[1]
    assert row["source"] == "DA193"
    assert row["iau"] == "0552+398"
    assert row["name"] == "DA193"
    assert row["start"] == "2024-086 17:30:30"
    assert row["antennas"] == "V"
    assert row["stations"] == "Vl"
    assert df.loc[0, "stations"] == "Kk-Vl"
    gap = (df.loc[1, "start_jd"] - df.loc[0, "start_jd"]) * 86400
    assert gap == pytest.approx(30.0, abs=1e-3)


def test_schedule_table_empty(make_skd_text):
    df = schedule_table(parse_schedule_text(make_skd_text([], [], [])))
    assert df.empty
    assert "start_jd" in df.columns
