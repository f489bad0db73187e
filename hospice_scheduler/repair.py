"""
repair.py — Automated repair loop for unstaffed visits.

When a week's plan contains placeholder visits (no clinician, left for
manual placement), this module attempts to staff them with the same day
selection the engine uses (slots.best_day_for_distribution), then
validates each candidate with ConstraintChecker.check_all.

Only suggested RN / LVN / NP visits are repaired. UNASSIGNED-discipline
visits need a care-team decision and are reported, never filled.
"""

import dataclasses
import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hospice_scheduler.constraints import ConstraintChecker
from hospice_scheduler.models import Discipline, Staff, Visit, VisitStatus
from hospice_scheduler.slots import best_day_for_distribution, daily_visit_count
from hospice_scheduler.schedule_config import DAILY_VISIT_CAP

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants (configurable at top of module)
# ---------------------------------------------------------------------------
MAX_REPAIR_ITERATIONS = 3
REPAIR_LOG_FILENAME = "dry_run_repair_log.json"
REASON_NO_CLINICIAN = "no_active_clinician_of_role"
REASON_EXHAUSTED_ALL_CANDIDATES = "exhausted_all_candidates"
REASON_NEEDS_TEAM_ASSIGNMENT = "needs_team_assignment"


def _is_repairable(v: Visit) -> bool:
    return (
        v.is_unstaffed
        and not v.completed
        and v.status is VisitStatus.SUGGESTED
        and v.discipline is not Discipline.UNASSIGNED
    )


def collect_unstaffed(visits: Sequence[Visit], week: Sequence[date]) -> List[Visit]:
    """Repairable placeholder visits in the week, sorted by date ascending."""
    week_set = set(week)
    unstaffed = sorted(
        (v for v in visits if v.date in week_set and _is_repairable(v)),
        key=lambda v: (v.date, v.patient_id, v.discipline.value),
    )
    if unstaffed:
        logger.info(f"Repair loop initiated — {len(unstaffed)} unstaffed visits found")
    return unstaffed


def get_pool_for_visit(staff: Sequence[Staff], visit: Visit) -> List[Staff]:
    """Active staff whose role matches the visit discipline."""
    return [s for s in staff if s.active and s.role.value == visit.discipline.value]


def _week_counts(visits: Sequence[Visit], week: Sequence[date]) -> Dict[str, int]:
    week_set = set(week)
    counts: Dict[str, int] = {}
    for v in visits:
        if v.date in week_set and not v.is_unstaffed:
            counts[v.staff] = counts.get(v.staff, 0) + 1
    return counts


def tier_order_candidates(
    pool: Sequence[Staff],
    visit: Visit,
    checker: ConstraintChecker,
    visits: Sequence[Visit],
    week: Sequence[date],
) -> List[Tuple[int, Staff]]:
    """
    Order candidates: Tier 1 = the patient's assigned clinician for this
    discipline, Tier 2 = everyone else. Within a tier, lowest weekly load.
    """
    counts = _week_counts(visits, week)
    patient = next((p for p in checker.patients if p.id == visit.patient_id), None)
    preferred = patient.assignment_for(visit.discipline) if patient else None

    def tier(s: Staff) -> int:
        return 1 if preferred and s.name == preferred else 2

    ranked = sorted(pool, key=lambda s: (tier(s), counts.get(s.name, 0), s.name))
    return [(tier(s), s) for s in ranked]


def _pending(visits: Sequence[Visit]) -> List[Visit]:
    return [v for v in visits if v.status is VisitStatus.SUGGESTED]


def candidate_day(
    staff_name: str,
    visit: Visit,
    visits: Sequence[Visit],
    week: Sequence[date],
) -> Optional[date]:
    """
    Keep the visit's own day when the clinician is under the cap there;
    otherwise the least-loaded weekday without another visit of the same
    discipline for the patient.
    """
    pending = _pending(visits)
    taken = {
        v.date for v in visits
        if v.patient_id == visit.patient_id and v.discipline is visit.discipline and v.id != visit.id
    }
    if (
        visit.date.weekday() < 5
        and visit.date not in taken
        and daily_visit_count(staff_name, visit.date, visits, pending) < DAILY_VISIT_CAP
    ):
        return visit.date
    return best_day_for_distribution(staff_name, week, visits, visit.discipline, pending=pending, exclude=taken)


def try_repair_visit(
    visits: Sequence[Visit],
    visit: Visit,
    staff_name: str,
    day: date,
    checker: ConstraintChecker,
    week: Sequence[date],
) -> Optional[List[Visit]]:
    """
    Clone the visit list with `visit` staffed by staff_name on day and run
    check_all. Returns the new list if the repaired visit raises no hard
    violation, else None.
    """
    repaired = dataclasses.replace(
        visit,
        staff=staff_name,
        date=day,
        reason=f"{visit.reason}; staffed by repair loop".lstrip("; "),
    )
    candidate = [repaired if v.id == visit.id else v for v in visits]
    hard, _soft = checker.check_all(candidate, week_dates=week)
    if any(h.visit_id == visit.id or h.details.get("first_visit") == visit.id for h in hard):
        return None
    return candidate


def _print_summary(report: Dict[str, Any], iteration_used: int) -> None:
    sep = "━" * 38
    print(f"\n{sep}")
    print(f"  REPAIR LOOP SUMMARY  (iteration {iteration_used} of max {MAX_REPAIR_ITERATIONS})")
    print(sep)
    print(f"  Unstaffed before repair : {report['unstaffed_before']}")
    print(f"  Successfully repaired   : {report['repaired_count']}")
    print(f"  Still unstaffed         : {report['still_unstaffed_count']}")
    print()
    if report["repaired"]:
        print("  REPAIRED:")
        for r in report["repaired"]:
            print(f"  {r['date']}  {r['discipline']}  {r['patient_id']}  →  {r['staff']}  [tier {r['tier']}]")
    if report["still_unstaffed"]:
        print("  STILL UNSTAFFED:")
        for s in report["still_unstaffed"]:
            print(f"  {s['date']}  {s['discipline']}  {s['patient_id']}  →  REPAIR_FAILED  Reason: {s['reason']}")
    if report["needs_team_assignment"]:
        print("  NEEDS TEAM ASSIGNMENT:")
        for s in report["needs_team_assignment"]:
            print(f"  {s['date']}  {s['patient_id']}")
    print(sep + "\n")


def _append_log(output_dir: Path, entry: Dict[str, Any]) -> None:
    log_path = output_dir / REPAIR_LOG_FILENAME
    try:
        existing: List[Dict[str, Any]] = []
        if log_path.exists():
            with open(log_path) as f:
                data = json.load(f)
                existing = data if isinstance(data, list) else [data]
        existing.append(entry)
        with open(log_path, "w") as f:
            json.dump(existing, f, indent=2)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not write repair log: {e}")


def run_repair_loop(
    visits: Sequence[Visit],
    staff: Sequence[Staff],
    checker: ConstraintChecker,
    week_dates: Sequence[date],
    output_dir: Optional[Path] = None,
    prefix: str = "",
) -> Tuple[List[Visit], Dict[str, Any]]:
    """
    Run up to MAX_REPAIR_ITERATIONS passes over unstaffed visits; for each
    visit try tier-ordered candidates and accept the first that passes
    check_all. The input list is not modified.

    Prints a summary and, when output_dir is given, appends to
    dry_run_repair_log.json there.

    Returns:
        (new_visits, { "unstaffed_before", "repaired_count", "repaired",
                       "still_unstaffed_count", "still_unstaffed",
                       "needs_team_assignment" })
    """
    week = list(week_dates)
    current = list(visits)
    unstaffed_before = len(collect_unstaffed(current, week))
    repaired: List[Dict[str, Any]] = []
    iteration_used = 0

    for iteration in range(MAX_REPAIR_ITERATIONS):
        pending = collect_unstaffed(current, week)
        if not pending:
            break
        iteration_used = iteration + 1
        repaired_this_pass = 0

        for visit in pending:
            pool = get_pool_for_visit(staff, visit)
            for tier, member in tier_order_candidates(pool, visit, checker, current, week):
                day = candidate_day(member.name, visit, current, week)
                if day is None:
                    continue
                result = try_repair_visit(current, visit, member.name, day, checker, week)
                if result is None:
                    continue
                current = result
                repaired.append({
                    "visit_id": visit.id,
                    "patient_id": visit.patient_id,
                    "discipline": visit.discipline.value,
                    "date": day.isoformat(),
                    "staff": member.name,
                    "tier": tier,
                })
                repaired_this_pass += 1
                break

        if repaired_this_pass == 0:
            break

    still_unstaffed = []
    for v in collect_unstaffed(current, week):
        reason = REASON_EXHAUSTED_ALL_CANDIDATES if get_pool_for_visit(staff, v) else REASON_NO_CLINICIAN
        still_unstaffed.append({
            "visit_id": v.id,
            "patient_id": v.patient_id,
            "discipline": v.discipline.value,
            "date": v.date.isoformat(),
            "reason": reason,
        })
    week_set = set(week)
    needs_team = [
        {"visit_id": v.id, "patient_id": v.patient_id, "date": v.date.isoformat(), "reason": REASON_NEEDS_TEAM_ASSIGNMENT}
        for v in current
        if v.date in week_set and v.discipline is Discipline.UNASSIGNED and not v.completed
    ]

    report = {
        "unstaffed_before": unstaffed_before,
        "repaired_count": len(repaired),
        "still_unstaffed_count": len(still_unstaffed),
        "repaired": repaired,
        "still_unstaffed": still_unstaffed,
        "needs_team_assignment": needs_team,
    }
    _print_summary(report, iteration_used)

    if output_dir is not None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "prefix": prefix,
            "week_start": week[0].isoformat() if week else None,
            **report,
        }
        _append_log(Path(output_dir), entry)

    return current, report
