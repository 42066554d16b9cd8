import os
import sys
import subprocess
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CLI = PROJECT_ROOT / "scripts" / "sked_sim_cli.py"


def run_cli(args, cwd):
    # Ensure package is importable: add src/ to PYTHONPATH
    env = os.environ.copy()
    src_dir = PROJECT_ROOT / "src"
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [env.get("PYTHONPATH", ""), str(src_dir)]))
    cmd = [sys.executable, str(CLI), *args]
    return subprocess.run(cmd, env=env, cwd=cwd, capture_output=True, text=True)


def test_headless_run(sample_skd_path, tmp_path):
    proc = run_cli(
        [str(sample_skd_path), "--run", "--frame-ms", "5000", "--log-dir", "logs"],
        cwd=tmp_path,
    )
    assert proc.returncode == 0, proc.stderr
    out = proc.stdout
    assert "[OK] Schedule references resolved" in out
    assert "0059+581 [K.]" in out
    assert "0059+581 [KV], DA193 [V]" in out
    assert "[OK] Schedule finished" in out

    logs = list((tmp_path / "logs").glob("run_*.log"))
    assert len(logs) == 1
    text = logs[0].read_text()
    assert "----- Effective configuration -----" in text
    assert "[OK] Schedule finished" in text


def test_summary(sample_skd_path, tmp_path):
    proc = run_cli([str(sample_skd_path), "--summary"], cwd=tmp_path)
    assert proc.returncode == 0, proc.stderr
    assert "----- Scans -----" in proc.stdout
    assert "2024-086 17:30:30" in proc.stdout
    assert "Kk-Vl" in proc.stdout


def test_dump_effective_config(sample_skd_path, tmp_path):
    proc = run_cli(
        [str(sample_skd_path), "--dump-effective-config", "--set", "time.backend=astropy"],
        cwd=tmp_path,
    )
    assert proc.returncode == 0, proc.stderr
    assert 'backend = "astropy"' in proc.stdout
    assert not (tmp_path / "logs").exists()


def test_missing_schedule_fails(tmp_path):
    proc = run_cli([str(tmp_path / "missing.skd")], cwd=tmp_path)
    assert proc.returncode == 1
    assert "[ERROR]" in proc.stdout


def test_unresolved_reference_fails(sample_skd_text, tmp_path):
    p = tmp_path / "bad.skd"
    p.write_text(sample_skd_text.replace("POSTOB V- ", "POSTOB X- "), encoding="utf-8")
    proc = run_cli([str(p)], cwd=tmp_path)
    assert proc.returncode == 1
    assert "unresolved antenna reference 'X'" in proc.stdout


def test_warnings_are_printed(sample_skd_text, tmp_path):
    p = tmp_path / "warn.skd"
    p.write_text(sample_skd_text.replace("$HEAD", "garbage line\n$HEAD"), encoding="utf-8")
    proc = run_cli([str(p)], cwd=tmp_path)
    assert proc.returncode == 0, proc.stderr
    assert "[WARN]" in proc.stdout


def test_usage_errors(tmp_path):
    assert run_cli([], cwd=tmp_path).returncode == 2
    assert run_cli(["a.skd", "b.skd"], cwd=tmp_path).returncode == 2


def test_negative_frame_ms_is_a_config_error(sample_skd_path, tmp_path):
    proc = run_cli([str(sample_skd_path), "--run", "--frame-ms=-5"], cwd=tmp_path)
    assert proc.returncode == 1
    assert "[ERROR] run.frame_ms" in proc.stdout
    assert "Traceback" not in proc.stderr
