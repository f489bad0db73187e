"""
dry_run.py — Safe Weekly Schedule Validation (No Visit-Store Push)

Full orchestration:
  1. Load patients, staff, stored visits
  2. Validate inputs (roster structure, assignments, frequencies)
  3. Run the weekly engine (RN → HOPE → LVN → NP per patient)
  4. Repair unstaffed placeholder visits
  5. Check constraints (hard + soft) and compute alerts
  6. Export CSV, Excel, compliance report, decision log
  7. Print summary to console

Usage:
  python -m hospice_scheduler.dry_run --week 2026-03-02
  python -m hospice_scheduler.dry_run --week 2026-03-02 --today 2026-02-27 --weeks 2
"""

import argparse
import json
import logging
import sys
from collections import Counter
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Optional

from hospice_scheduler.alerts import generate_alerts
from hospice_scheduler.clock import Clock, FixedClock, SystemClock
from hospice_scheduler.config import (
    PROJECT_ROOT,
    load_patients,
    load_staff,
    load_visits,
    save_visits,
)
from hospice_scheduler.constraints import ConstraintChecker
from hospice_scheduler.dates import week_dates
from hospice_scheduler.engine import schedule_weeks
from hospice_scheduler.exporter import export_compliance_report, export_to_csv, export_to_excel
from hospice_scheduler.repair import run_repair_loop

logger = logging.getLogger(__name__)

OUTPUTS_DIR = PROJECT_ROOT / "outputs"


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_dry_run(
    week_start: date,
    clock: Optional[Clock] = None,
    weeks: int = 1,
    output_dir: Path = OUTPUTS_DIR,
    patients_path: Optional[Path] = None,
    staff_path: Optional[Path] = None,
    visits_path: Optional[Path] = None,
    save_path: Optional[Path] = None,
) -> Dict:
    """
    Generate the weekly visit schedule in dry-run mode (never pushes to the
    visit store).

    Args:
        week_start:    Any date in the first week to schedule
        clock:         Source of "today" (default: system date)
        weeks:         Number of consecutive weeks to schedule
        output_dir:    Directory for output files
        patients_path / staff_path / visits_path: Override config/ inputs
        save_path:     If given, write the final visit list there as JSON

    Returns:
        Dict with visits, plans, violations, alerts, repair report, output paths
    """
    clock = clock or SystemClock()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    first_week = week_dates(week_start)
    last_week = week_dates(week_start, offset_weeks=weeks - 1)
    prefix = f"dry_run_{first_week[0]}_{last_week[-1]}"
    sep = "=" * 70

    print(f"\n{sep}")
    print("  DRY RUN MODE — No data pushed to the visit store")
    print(f"  Weeks: {first_week[0]} → {last_week[-1]}  (today = {clock.today()})")
    print(f"{sep}\n")

    # ── 1. Load data ───────────────────────────────────────────────────────
    print("Step 1/6: Loading data...")
    patients = load_patients(patients_path)
    staff = load_staff(staff_path)
    stored = load_visits(visits_path)
    print(f"  ✓ {len(patients)} patients | {len(staff)} staff | {len(stored)} stored visits")

    # ── 2. Validate inputs ─────────────────────────────────────────────────
    print("\nStep 2/6: Validating inputs...")
    checker = ConstraintChecker(patients, staff)
    roster_errors, roster_warnings = checker.validate_roster()

    for err in roster_errors:
        print(f"  ✗ ROSTER ERROR: {err}")
    for w in roster_warnings:
        print(f"  ⚠ WARNING: {w}")

    if roster_errors:
        print("\n  ✗ Cannot proceed — fix roster errors above.")
        sys.exit(1)

    if not roster_warnings:
        print("  ✓ Roster valid")

    # ── 3. Weekly engine ───────────────────────────────────────────────────
    print("\nStep 3/6: Running weekly scheduler...")
    print("  Generator order: RN → HOPE → LVN → NP")
    plans = schedule_weeks(patients, stored, week_start, clock, weeks=weeks, staff=staff)
    visits = plans[-1].visits
    decisions = [d for plan in plans for d in plan.decisions]
    proposals = sum(len(plan.proposals) for plan in plans)
    errors = [d for d in decisions if d.action == "error"]
    print(f"  ✓ {proposals} visits proposed across {len(plans)} week(s); {len(visits)} visits on file")
    for d in errors:
        print(f"  ✗ {d}")

    # ── 4. Repair loop ─────────────────────────────────────────────────────
    print("\nStep 4/6: Repairing unstaffed visits...")
    repair_reports = []
    for plan in plans:
        visits, report = run_repair_loop(
            visits, staff, checker, plan.week_dates,
            output_dir=output_dir, prefix=prefix,
        )
        repair_reports.append(report)

    # ── 5. Constraint checking + alerts ────────────────────────────────────
    print("\nStep 5/6: Checking constraints...")
    scheduled_days = [d for plan in plans for d in plan.week_dates]
    hard_violations, soft_violations = checker.check_all(visits, week_dates=scheduled_days)
    alerts = generate_alerts(patients, visits, clock)

    h_count = len(hard_violations)
    s_count = len(soft_violations)
    status = "✓" if h_count == 0 else "✗"
    print(f"  {status} Hard violations: {h_count}")
    print(f"    Soft violations: {s_count}")
    print(f"    Alerts:          {len(alerts)}")

    # ── 6. Export ──────────────────────────────────────────────────────────
    print("\nStep 6/6: Exporting outputs...")
    day_set = set(scheduled_days)
    scheduled = [v for v in visits if v.date in day_set]

    csv_path = output_dir / f"{prefix}_visits.csv"
    xlsx_path = output_dir / f"{prefix}_schedule.xlsx"
    report_path = output_dir / f"{prefix}_compliance_report.txt"
    decisions_path = output_dir / f"{prefix}_decisions.json"

    export_to_csv(scheduled, csv_path)
    export_to_excel(scheduled, xlsx_path, pivot=True, staff_order=[s.name for s in staff])
    export_compliance_report(
        patients, visits, clock, report_path,
        alerts=alerts, hard=hard_violations, soft=soft_violations,
    )
    with open(decisions_path, "w") as f:
        json.dump([
            {
                "patient_id": d.patient_id,
                "discipline": d.discipline,
                "action": d.action,
                "reason": d.reason,
                "visit_id": d.visit_id,
            }
            for d in decisions
        ], f, indent=2)

    print(f"  ✓ CSV:       {csv_path.name}")
    print(f"  ✓ Excel:     {xlsx_path.name}")
    print(f"  ✓ Report:    {report_path.name}")
    print(f"  ✓ Decisions: {decisions_path.name}")

    if save_path:
        save_visits(visits, Path(save_path))
        print(f"  ✓ Visits saved: {save_path}")

    # ── Summary ────────────────────────────────────────────────────────────
    per_staff = Counter(v.staff or "Unassigned" for v in scheduled if not v.completed)
    per_discipline = Counter(v.discipline.value for v in scheduled)

    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Weeks:             {first_week[0]} → {last_week[-1]}")
    print(f"  Visits scheduled:  {len(scheduled)}")
    print(f"  Patient errors:    {len(errors)}")
    print(f"  Hard violations:   {h_count}  {status}")
    print(f"  Soft violations:   {s_count}")
    print(f"  Alerts:            {len(alerts)}")

    print("\n  Visits by discipline:")
    for discipline, count in sorted(per_discipline.items()):
        print(f"    {discipline:<12} {count}")
    print("\n  Open visits by staff:")
    for name, count in per_staff.most_common():
        print(f"    {name:<24} {count}")

    print(f"\n{sep}\n")

    return {
        "visits":          visits,
        "plans":           plans,
        "decisions":       decisions,
        "hard_violations": hard_violations,
        "soft_violations": soft_violations,
        "alerts":          alerts,
        "repair":          repair_reports,
        "outputs": {
            "csv":       csv_path,
            "excel":     xlsx_path,
            "report":    report_path,
            "decisions": decisions_path,
        },
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Dry-run weekly visit scheduling (no visit-store push)"
    )
    parser.add_argument("--week",       required=True, help="Any date in the first week, YYYY-MM-DD")
    parser.add_argument("--today",      default=None,  help="Pin 'today' to YYYY-MM-DD (default: system date)")
    parser.add_argument("--weeks",      type=int, default=1, help="Number of consecutive weeks (default: 1)")
    parser.add_argument("--output-dir", default=None,  help="Output directory (default: outputs/)")
    parser.add_argument("--patients",   default=None,  help="Patients CSV (default: config/patients.csv)")
    parser.add_argument("--staff",      default=None,  help="Staff CSV (default: config/staff.csv)")
    parser.add_argument("--visits",     default=None,  help="Visits CSV/JSON (default: config/visits.csv)")
    parser.add_argument("--save",       default=None,  help="Write the resulting visit list to this JSON file")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        week = datetime.strptime(args.week, "%Y-%m-%d").date()
        today = datetime.strptime(args.today, "%Y-%m-%d").date() if args.today else None
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    if args.weeks < 1:
        print("Error: --weeks must be at least 1")
        sys.exit(1)

    out_dir = Path(args.output_dir) if args.output_dir else OUTPUTS_DIR
    run_dry_run(
        week,
        clock=FixedClock(today) if today else SystemClock(),
        weeks=args.weeks,
        output_dir=out_dir,
        patients_path=Path(args.patients) if args.patients else None,
        staff_path=Path(args.staff) if args.staff else None,
        visits_path=Path(args.visits) if args.visits else None,
        save_path=Path(args.save) if args.save else None,
    )


if __name__ == "__main__":
    main()
