from __future__ import annotations

import copy
import math
import os
import tomllib
from typing import Dict, Any, Iterable, Tuple

import tomli_w

from .simulator import MAX_CLOCK_SPEED, SimulationConfig
from sked_viewer.skd_core.time_convert import TIME_BACKENDS

DEFAULT_CONFIG: Dict[str, Any] = {
    "parser": {"year_pivot": 78},
    "time": {"backend": "meeus"},
    "simulation": {"clock_speed": 0, "start_paused": True},
    "run": {"frame_ms": 16.0, "max_frames": 100000, "report_every": 0},
}


def load_toml(path: str) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_dicts(out[k], v)
        else:
            out[k] = v
    return out


def apply_sets(cfg: Dict[str, Any], sets: Iterable[str]) -> Dict[str, Any]:
    for item in sets:
        if "=" not in item:
            raise ValueError(f"--set requires key=value, got: {item}")
        key, val = item.split("=", 1)
        path = key.strip().split(".")
        cursor = cfg
        for p in path[:-1]:
            if p not in cursor or not isinstance(cursor[p], dict):
                cursor[p] = {}
            cursor = cursor[p]
        # parse bool, int, float, or keep string
        cursor[path[-1]] = parse_scalar(val.strip())
    return cfg


def parse_scalar(s: str):
    sl = s.lower()
    if sl in ("true", "false"):
        return sl == "true"
    try:
        if "." in s:
            return float(s)
        return int(s)
    except ValueError:
        return s


def load_run_config(
    config_path: str | None,
    set_overrides: Iterable[str] = (),
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Compose defaults and an optional TOML file, then apply --set.
    Returns (effective_cfg, summary_paths).
    summary_paths contains the key config_path (None when no file was given).
    """
    summary: Dict[str, Any] = {"config_path": None}
    file_cfg: Dict[str, Any] = {}

    if config_path:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")
        try:
            file_cfg = load_toml(config_path)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML config: {config_path}\n{e}") from e
        summary["config_path"] = os.path.abspath(config_path)

    # Merge order: defaults -> file -> --set
    cfg = merge_dicts(copy.deepcopy(DEFAULT_CONFIG), file_cfg)
    cfg = apply_sets(cfg, set_overrides)
    return cfg, summary


def dump_effective_config(cfg: Dict[str, Any]) -> str:
    return tomli_w.dumps(cfg)


def build_simulation_config(cfg: Dict[str, Any]) -> SimulationConfig:
    """Typed view of the effective configuration used by the simulator and CLI."""
    backend = str(cfg.get("time", {}).get("backend", "meeus")).lower()
    if backend not in TIME_BACKENDS:
        raise ValueError(
            f"Unsupported time backend: {backend} (expected one of {TIME_BACKENDS})"
        )
    sim = cfg.get("simulation", {})
    run = cfg.get("run", {})
    speed = int(sim.get("clock_speed", 0))
    frame_ms = float(run.get("frame_ms", 16.0))
    if not math.isfinite(frame_ms) or frame_ms < 0:
        raise ValueError(f"run.frame_ms must be a finite value >= 0, got: {frame_ms}")
    max_frames = int(run.get("max_frames", 100000))
    report_every = int(run.get("report_every", 0))
    if max_frames < 0 or report_every < 0:
        raise ValueError("run.max_frames and run.report_every must be >= 0")
    return SimulationConfig(
        year_pivot=int(cfg.get("parser", {}).get("year_pivot", 78)),
        backend=backend,
        clock_speed=min(max(speed, 0), MAX_CLOCK_SPEED),
        start_paused=bool(sim.get("start_paused", True)),
        frame_ms=frame_ms,
        max_frames=max_frames,
        report_every=report_every,
    )
