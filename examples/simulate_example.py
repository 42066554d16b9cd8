"""
simulate_example.py
===================

Purpose
-------
Minimal end-to-end use of the ``sked_viewer`` library: parse a ``.skd``
schedule, check its cross references, and play it back headless while
printing which scans are active.

What this example does
----------------------
1. Parses ``r1999.skd`` (next to this script) with ``parse_schedule``.
   Malformed lines do not stop parsing; they are collected in
   ``skd.warnings``.
2. Runs ``validate_schedule``, which raises ``ScheduleReferenceError`` if a
   scan names an unknown source or antenna.
3. Prints the scan table built with ``schedule_table`` (a pandas DataFrame).
4. Creates a ``ScanSimulator`` at 2**5 = 32x real time, unpauses it, and
   advances it by one simulated "frame" of 500 ms at a time until the
   schedule is finished, printing the simulated time, the Greenwich sidereal
   angle and the active scans whenever they change.

How to run
----------
From the repository root, with the package installed (``pip install -e .``):

    python examples/simulate_example.py
"""

from pathlib import Path

from sked_viewer.skd_core.parser import parse_schedule
from sked_viewer.skd_core.summary import schedule_table
from sked_viewer.skd_core.validator import validate_schedule
from sked_viewer.sim_core.simulator import Command, ScanSimulator, SimulationState

skd = parse_schedule(str(Path(__file__).with_name("r1999.skd")))
for w in skd.warnings:
    print(f"[WARN] {w}")
validate_schedule(skd)

print(schedule_table(skd).to_string())
print()

sim = ScanSimulator(skd, clock_speed=5)
sim.handle(Command.PAUSE_TOGGLE)  # READY -> RUNNING

last = None
while sim.state is not SimulationState.FINISHED:
    sim.advance(500.0)
    active = sim.active_scan_ids()
    if active != last:
        names = ", ".join(f"{a.source_label} {'-'.join(a.station_ids)}" for a in sim.get_active_scans())
        print(f"{sim.simulated_timestamp()}  gmst={sim.get_sidereal_angle():7.3f}  {names or '(idle)'}")
        last = active
