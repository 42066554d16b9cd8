from __future__ import annotations

import argparse
import os
from typing import Dict, Any, Callable, Optional, Tuple
from datetime import datetime, timezone

from sked_viewer.sim_core.config_loader import (
    load_run_config,
    dump_effective_config,
    build_simulation_config,
)
from sked_viewer.sim_core.simulator import (
    ScanSimulator,
    SimulationConfig,
    SimulationState,
)
from sked_viewer.skd_core.model import (
    Schedule,
    ScheduleParseError,
    ScheduleReferenceError,
)
from sked_viewer.skd_core.parser import parse_schedule
from sked_viewer.skd_core.summary import schedule_table, source_table, station_table
from sked_viewer.skd_core.validator import validate_schedule


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sked_sim_cli",
        description="Parse, validate and play back a sked .skd schedule.",
    )
    p.add_argument("schedule", help="Path to the .skd schedule file")
    p.add_argument("--config", help="Run configuration file (TOML)")
    p.add_argument(
        "--set",
        action="append",
        default=[],
        help="Override config key=value (repeatable).",
    )
    p.add_argument(
        "--dump-effective-config",
        action="store_true",
        help="Print final merged config and exit.",
    )
    p.add_argument(
        "--summary",
        action="store_true",
        help="Print station, source and scan tables.",
    )
    p.add_argument("--run", action="store_true", help="Run the headless playback loop.")
    p.add_argument("--frames", type=int, help="Override run.max_frames")
    p.add_argument("--frame-ms", type=float, help="Override run.frame_ms")
    p.add_argument("--speed", type=int, help="Override simulation.clock_speed")
    p.add_argument(
        "--log-dir",
        default="logs",
        help="Directory where the run log will be created.",
    )
    return p


def _init_logger(project_root: str, log_dir: str) -> Tuple[str, Any]:
    os.makedirs(os.path.join(project_root, log_dir), exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")
    path = os.path.join(project_root, log_dir, f"run_{stamp}.log")

    def _log(msg: str) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(msg.rstrip() + "\n")

    return path, _log


def _log_header(log, project_root: str, schedule_path: str, paths: Dict[str, Any], cfg: Dict[str, Any]):
    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    log(f"[{now}] Run started")
    log(f"Project root: {project_root}")
    log(f"Schedule: {schedule_path}")
    if paths.get("config_path"):
        rel = os.path.relpath(paths["config_path"], project_root)
        log(f"Run config: {rel}")
    log("")
    log("----- Effective configuration -----")
    log(dump_effective_config(cfg).rstrip())
    log("-----------------------------------")
    log("")


def _apply_cli_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    # Dedicated flags win over --set
    if args.speed is not None:
        cfg.setdefault("simulation", {})["clock_speed"] = args.speed
    if args.frame_ms is not None:
        cfg.setdefault("run", {})["frame_ms"] = args.frame_ms
    if args.frames is not None:
        cfg.setdefault("run", {})["max_frames"] = args.frames
    return cfg


def _status_line(sim: ScanSimulator, skd: Schedule) -> str:
    parts = []
    for act in sim.get_active_scans():
        scan = skd.scans[act.scan_index]
        # antennas still waiting for their data-start offset show as '.'
        codes = "".join(
            c if on else "." for c, on in zip(scan.antennas, act.antenna_mask)
        )
        parts.append(f"{act.source_label} [{codes}]")
    body = ", ".join(parts) if parts else "(idle)"
    return (
        f"{sim.get_simulated_julian_date():13.6f} "
        f"({sim.get_sidereal_angle():7.3f}): {body}"
    )


def _run_headless(
    sim: ScanSimulator,
    skd: Schedule,
    cfg: SimulationConfig,
    emit: Callable[[str], None],
) -> int:
    if sim.paused:
        sim.toggle_pause()
    last: Optional[Tuple[int, ...]] = None
    frames = 0
    while sim.state is not SimulationState.FINISHED and frames < cfg.max_frames:
        sim.advance(cfg.frame_ms)
        frames += 1
        active = tuple(sim.active_scan_ids())
        periodic = cfg.report_every > 0 and frames % cfg.report_every == 0
        if active != last or periodic:
            emit(_status_line(sim, skd))
            last = active

    if sim.state is SimulationState.FINISHED:
        emit(f"[OK] Schedule finished after {frames} frames at {sim.simulated_timestamp()}")
    else:
        emit(f"[WARN] Stopped after {frames} frames before the end of the schedule")
    if sim.dropped_starts:
        emit(f"[WARN] {sim.dropped_starts} scan start(s) dropped: no free slot")
    return frames


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    project_root = os.getcwd()
    try:
        cfg, paths = load_run_config(args.config, args.set)
        cfg = _apply_cli_overrides(cfg, args)
        sim_cfg = build_simulation_config(cfg)
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERROR] {e}")
        return 1

    if args.dump_effective_config:
        print(dump_effective_config(cfg).rstrip())
        return 0

    log_path, log = _init_logger(project_root, args.log_dir)
    _log_header(log, project_root, args.schedule, paths, cfg)
    print(f"[INFO] Log file: {os.path.relpath(log_path, project_root)}")

    def emit(msg: str) -> None:
        print(msg); log(msg)

    try:
        skd = parse_schedule(args.schedule, year_pivot=sim_cfg.year_pivot)
    except ScheduleParseError as e:
        emit(f"[ERROR] {e}")
        return 1

    for w in skd.warnings:
        emit(f"[WARN] {w}")
    emit(
        f"[INFO] Parsed {skd.scan_count} scans, {len(skd.stations_ant)} antennas, "
        f"{len(skd.stations_pos)} stations, {len(skd.sources)} sources"
    )

    try:
        validate_schedule(skd)
    except ScheduleReferenceError as e:
        emit(f"[ERROR] {e}")
        return 1
    emit("[OK] Schedule references resolved")

    if args.summary:
        for title, df in (
            ("Stations", station_table(skd)),
            ("Sources", source_table(skd)),
            ("Scans", schedule_table(skd, backend=sim_cfg.backend)),
        ):
            emit(f"----- {title} -----")
            emit(df.to_string())

    try:
        sim = ScanSimulator.from_config(skd, sim_cfg)
    except ValueError as e:
        emit(f"[ERROR] {e}")
        return 1
    emit(
        f"[INFO] Timeline: {len(sim.timeline)} events, "
        f"up to {sim.timeline.max_concurrent} concurrent scans"
    )

    if args.run:
        _run_headless(sim, skd, sim_cfg, emit)

    emit("Done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
