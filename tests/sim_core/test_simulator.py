from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from sked_viewer.skd_core.model import Scan, Schedule, SourceQuasar, Station, Timestamp
from sked_viewer.skd_core.parser import parse_schedule_text
from sked_viewer.skd_core.time_convert import (
    add_seconds,
    julian_date_to_gmst,
    to_julian_date,
)
from sked_viewer.sim_core.simulator import (
    MAX_CLOCK_SPEED,
    ActiveScan,
    Command,
    ScanSimulator,
    SimulationConfig,
    SimulationState,
)
from sked_viewer.sim_core.timeline import Event, EventKind, Timeline, build_timeline

S = 1000.0  # one second of wall clock, in ms


def _running(skd, **kw) -> ScanSimulator:
    sim = ScanSimulator(skd, **kw)
    sim.toggle_pause()
    return sim


def _elapsed_s(sim: ScanSimulator, jd0: float) -> float:
    return (sim.get_simulated_julian_date() - jd0) * 86400


def test_two_scan_scenario(sample_schedule):
    jd0 = to_julian_date(sample_schedule.scans[0].timestamp)
    sim = _running(sample_schedule)

    sim.advance(45 * S)
    assert _elapsed_s(sim, jd0) == pytest.approx(45.0, abs=1e-3)
    assert sim.active_scan_ids() == [0, 1]

    sim.advance(30 * S)
    assert sim.active_scan_ids() == [1]
    assert sim.state is SimulationState.RUNNING

    sim.advance(20 * S)
    assert sim.active_scan_ids() == []
    assert sim.state is SimulationState.FINISHED


def test_starts_ready_and_paused(sample_schedule):
    sim = ScanSimulator(sample_schedule)
    assert sim.state is SimulationState.READY
    jd = sim.get_simulated_julian_date()
    sim.advance(10 * S)
    assert sim.get_simulated_julian_date() == jd
    assert sim.active_scan_ids() == []


def test_pause_stops_time(sample_schedule):
    sim = _running(sample_schedule)
    sim.advance(10 * S)
    sim.toggle_pause()
    assert sim.state is SimulationState.PAUSED
    jd = sim.get_simulated_julian_date()
    sim.advance(100 * S)
    assert sim.get_simulated_julian_date() == jd
    assert sim.active_scan_ids() == [0]


def test_reset_is_idempotent(sample_schedule):
    jd0 = to_julian_date(sample_schedule.scans[0].timestamp)
    sim = _running(sample_schedule)
    sim.advance(45 * S)
    sim.reset()
    once = (sim.get_simulated_julian_date(), sim.active_scan_ids(), sim.state)
    sim.reset()
    twice = (sim.get_simulated_julian_date(), sim.active_scan_ids(), sim.state)
    assert once == twice
    assert once[0] == pytest.approx(jd0)
    assert once[1] == []
    assert once[2] is SimulationState.READY


def test_reset_after_finish_replays(sample_schedule):
    sim = _running(sample_schedule)
    sim.advance(200 * S)
    assert sim.state is SimulationState.FINISHED
    sim.reset()
    sim.toggle_pause()
    sim.advance(45 * S)
    assert sim.active_scan_ids() == [0, 1]


def test_finished_is_terminal_until_reset(sample_schedule):
    sim = _running(sample_schedule)
    sim.advance(200 * S)
    jd = sim.get_simulated_julian_date()
    sim.toggle_pause()
    sim.toggle_pause()
    sim.advance(10 * S)
    assert sim.state is SimulationState.FINISHED
    assert sim.get_simulated_julian_date() == jd


def test_clock_speed_scales_time(sample_schedule):
    jd0 = to_julian_date(sample_schedule.scans[0].timestamp)
    sim = _running(sample_schedule, clock_speed=3)
    sim.advance(5 * S)
    assert _elapsed_s(sim, jd0) == pytest.approx(40.0, abs=1e-3)
    assert sim.active_scan_ids() == [0, 1]


def test_speed_is_clamped(sample_schedule):
    sim = ScanSimulator(sample_schedule, clock_speed=99)
    assert sim.clock_speed == MAX_CLOCK_SPEED
    sim.set_speed(True)
    assert sim.clock_speed == MAX_CLOCK_SPEED
    for _ in range(20):
        sim.set_speed(False)
    assert sim.clock_speed == 0
    sim.set_speed(True)
    assert sim.clock_speed == 1


def test_handle_commands(sample_schedule):
    sim = ScanSimulator(sample_schedule)
    sim.handle(Command.FASTER)
    sim.handle(Command.FASTER)
    sim.handle(Command.SLOWER)
    assert sim.clock_speed == 1
    sim.handle(Command.PAUSE_TOGGLE)
    assert sim.state is SimulationState.RUNNING
    sim.advance(10 * S)
    sim.handle(Command.RESET)
    assert sim.state is SimulationState.READY
    # reset keeps the playback speed
    assert sim.clock_speed == 1


def test_per_antenna_mask_follows_offsets(sample_schedule):
    sim = _running(sample_schedule)
    sim.advance(5 * S)
    assert sim.per_antenna_mask(0) == (True, False)
    sim.advance(10 * S)
    assert sim.per_antenna_mask(0) == (True, True)


def test_per_antenna_mask_rejects_out_of_range_index(sample_schedule):
    sim = ScanSimulator(sample_schedule)
    with pytest.raises(IndexError):
        sim.per_antenna_mask(-1)
    with pytest.raises(IndexError):
        sim.per_antenna_mask(2)


def test_clock_does_not_drift_over_many_small_frames(sample_schedule):
    skd = sample_schedule
    jd0 = to_julian_date(skd.scans[0].timestamp)
    # two-hour scan so the run is not cut short by FINISHED
    first = skd.scans[0]
    long_scan = Scan(first.source, first.timestamp, 0, 7200, first.antennas)
    long_skd = Schedule(
        stations_ant=skd.stations_ant,
        stations_pos=skd.stations_pos,
        sources=skd.sources,
        sources_alias=skd.sources_alias,
        scans=[long_scan],
    )
    sim = _running(long_skd)
    for _ in range(225_000):
        sim.advance(16.0)
    assert _elapsed_s(sim, jd0) == pytest.approx(3600.0, abs=1e-3)
    assert sim.simulated_timestamp() == Timestamp(2024, 86, 18, 30, 0)


def test_reset_clears_dropped_starts(sample_schedule):
    full = build_timeline(sample_schedule)
    sim = _running(sample_schedule, timeline=Timeline(full.events, max_concurrent=1))
    sim.advance(45 * S)
    assert sim.dropped_starts == 1
    sim.reset()
    assert sim.dropped_starts == 0
    sim.toggle_pause()
    sim.advance(45 * S)
    assert sim.dropped_starts == 1


def test_get_active_scans(sample_schedule):
    sim = _running(sample_schedule)
    sim.advance(45 * S)
    assert sim.get_active_scans() == [
        ActiveScan(0, "0059+581", ("Kk", "Vl"), (True, True)),
        ActiveScan(1, "DA193", ("Vl",), (True,)),
    ]


def test_positions(sample_schedule):
    sim = ScanSimulator(sample_schedule)
    st_pos = sim.get_station_positions()
    assert st_pos.shape == (2, 2)
    np.testing.assert_allclose(st_pos, [[-159.66, 90.0 - 22.13], [-104.0, 60.0]])
    src_pos = sim.get_source_positions()
    assert src_pos.shape == (3, 2)
    q = sample_schedule.sources.get("0552+398")
    np.testing.assert_allclose(src_pos[1], [q.alf, q.phi])


def test_sidereal_angle_and_timestamp(sample_schedule):
    sim = ScanSimulator(sample_schedule)
    jd0 = to_julian_date(sample_schedule.scans[0].timestamp)
    assert sim.get_sidereal_angle() == pytest.approx(julian_date_to_gmst(jd0))
    assert 0.0 <= sim.get_sidereal_angle() < 360.0
    assert sim.simulated_timestamp() == Timestamp(2024, 86, 17, 30, 0)


def test_astropy_backend(sample_schedule):
    sim = _running(sample_schedule, backend="astropy")
    sim.advance(45 * S)
    assert sim.active_scan_ids() == [0, 1]


def test_start_without_free_slot_is_dropped(sample_schedule):
    full = build_timeline(sample_schedule)
    sim = _running(sample_schedule, timeline=Timeline(full.events, max_concurrent=1))
    sim.advance(45 * S)
    assert sim.active_scan_ids() == [0]
    assert sim.dropped_starts == 1
    # FINAL of the dropped scan is a no-op
    sim.advance(50 * S)
    assert sim.active_scan_ids() == []
    assert sim.state is SimulationState.FINISHED


def test_repeated_start_is_idempotent(sample_schedule):
    jd0 = to_julian_date(sample_schedule.scans[0].timestamp)
    events = (
        Event(0, jd0, EventKind.START),
        Event(0, jd0, EventKind.START),
        Event(0, jd0 + 60 / 86400, EventKind.FINAL),
    )
    sim = _running(sample_schedule, timeline=Timeline(events, max_concurrent=2))
    sim.advance(10 * S)
    assert sim.active_scan_ids() == [0]
    assert sim.dropped_starts == 0


def test_from_config(sample_schedule):
    cfg = SimulationConfig(clock_speed=2, start_paused=False)
    sim = ScanSimulator.from_config(sample_schedule, cfg)
    assert sim.state is SimulationState.RUNNING
    assert sim.clock_speed == 2


def test_empty_schedule_rejected(make_skd_text):
    with pytest.raises(ValueError):
        ScanSimulator(Schedule())
    with pytest.raises(ValueError):
        ScanSimulator(parse_schedule_text(make_skd_text([], [], [])))


def test_unknown_backend_rejected(sample_schedule):
    with pytest.raises(ValueError):
        ScanSimulator(sample_schedule, backend="skyfield")


def test_negative_elapsed_rejected(sample_schedule):
    sim = _running(sample_schedule)
    with pytest.raises(ValueError):
        sim.advance(-1.0)


# --- Determinism ---

def _three_scan_schedule() -> Schedule:
    skd = Schedule()
    skd.stations_ant.insert("K", "Kk")
    skd.stations_ant.insert("V", "Vl")
    skd.stations_pos.insert("Kk", Station("KOKEE", -159.66, 67.87))
    skd.stations_pos.insert("Vl", Station("VLBA", -104.0, 60.0))
    skd.sources.insert("0552+398", SourceQuasar("DA193", 88.88, 50.19))
    t0 = Timestamp(2024, 86, 17, 30, 0)
    skd.scans.append(Scan("0552+398", t0, 10, 60, ("K", "V"), (0, 10)))
    skd.scans.append(Scan("0552+398", add_seconds(t0, 30), 10, 60, ("V",)))
    skd.scans.append(Scan("0552+398", add_seconds(t0, 40), 10, 5, ("K",)))
    return skd


# Built once; @given tests should not use function-scoped fixtures.
_SKD = _three_scan_schedule()


@settings(max_examples=50, deadline=None)
@given(
    steps=st.lists(st.floats(min_value=0.0, max_value=20_000.0), min_size=1, max_size=40),
    speed=st.integers(min_value=0, max_value=3),
)
def test_same_inputs_same_trace(steps, speed):
    skd = _SKD

    def trace():
        sim = _running(skd, clock_speed=speed)
        out = []
        for dt in steps:
            sim.advance(dt)
            out.append((tuple(sim.active_scan_ids()), sim.state))
        return out

    assert trace() == trace()
