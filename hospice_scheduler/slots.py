"""
slots.py — Day selection for a staff member within a week

Algorithm (best_day_for_distribution):
  candidates = weekdays (Mon–Fri) of the week, minus excluded days
  load(day)  = confirmed visits for the staff member that day
               (+ proposals already made this pass, per policy)
  order      = ascending load, earliest day on ties
  pick       = first day with load < DAILY_VISIT_CAP, else None

When every candidate is full the caller still places the visit, on
least_loaded_day(), and tags it over-limit.

LVN days (best_lvn_day) add patient-level preferences on top:
  2x/week  → preferred weekdays first, then the day farthest from the
             patient's already-placed RN/LVN visits (Mon+Fri, not Mon+Tue)
  3x+/week → preferred weekdays first, then distribution order
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

from hospice_scheduler.dates import day_name, weekday_dates
from hospice_scheduler.models import Discipline, Patient, Visit, VisitStatus, VisitTag
from hospice_scheduler.schedule_config import (
    COUNT_OVER_LIMIT_IN_LOAD,
    COUNT_PENDING_PROPOSALS_IN_LOAD,
    DAILY_VISIT_CAP,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Load counting
# ---------------------------------------------------------------------------

def _counts_toward_pending_load(v: Visit) -> bool:
    if not COUNT_PENDING_PROPOSALS_IN_LOAD:
        return False
    if VisitTag.OVER_LIMIT in v.tags and not COUNT_OVER_LIMIT_IN_LOAD:
        return False
    return True


def daily_visit_count(
    staff_name: str,
    day: date,
    visits: Iterable[Visit],
    pending: Iterable[Visit] = (),
) -> int:
    """
    Visits charged to staff_name on day.

    visits:  existing visits; only CONFIRMED ones count.
    pending: proposals made earlier in the current pass.
    """
    confirmed = sum(
        1 for v in visits
        if v.staff == staff_name and v.date == day and v.status is VisitStatus.CONFIRMED
    )
    proposed = sum(
        1 for v in pending
        if v.staff == staff_name and v.date == day and _counts_toward_pending_load(v)
    )
    return confirmed + proposed


def has_reached_daily_limit(
    staff_name: str,
    day: date,
    visits: Iterable[Visit],
    pending: Iterable[Visit] = (),
) -> bool:
    return daily_visit_count(staff_name, day, visits, pending) >= DAILY_VISIT_CAP


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------

def _ranked_days(
    staff_name: str,
    week: Sequence[date],
    visits: Sequence[Visit],
    pending: Sequence[Visit],
    exclude: Iterable[date],
) -> List[tuple]:
    excluded = set(exclude)
    candidates = [d for d in weekday_dates(week) if d not in excluded]
    loads = [(daily_visit_count(staff_name, d, visits, pending), d) for d in candidates]
    # (load, date) sorts by load, then earliest date
    return sorted(loads)


def best_day_for_distribution(
    staff_name: str,
    week: Sequence[date],
    visits: Iterable[Visit],
    discipline: Discipline,
    pending: Iterable[Visit] = (),
    exclude: Iterable[date] = (),
) -> Optional[date]:
    """
    Least-loaded weekday for staff_name that is still under the daily cap.

    Returns None when every candidate weekday is at or over the cap (or
    there is no candidate weekday at all).
    """
    visits = list(visits)
    pending = list(pending)
    for load, day in _ranked_days(staff_name, week, visits, pending, exclude):
        if load < DAILY_VISIT_CAP:
            return day
    logger.debug(f"{discipline.value} {staff_name}: no weekday under cap in week of {week[0] if week else '?'}")
    return None


def least_loaded_day(
    staff_name: str,
    week: Sequence[date],
    visits: Iterable[Visit],
    pending: Iterable[Visit] = (),
    exclude: Iterable[date] = (),
) -> Optional[date]:
    """Least-loaded candidate weekday ignoring the cap (None if no candidates)."""
    ranked = _ranked_days(staff_name, week, list(visits), list(pending), exclude)
    return ranked[0][1] if ranked else None


# ---------------------------------------------------------------------------
# Patient preferences (LVN)
# ---------------------------------------------------------------------------

def is_preferred_day(patient: Patient, day: date) -> bool:
    if not patient.preferred_visit_days:
        return False
    preferred = {d.strip().lower() for d in patient.preferred_visit_days}
    return day_name(day).lower() in preferred


def best_lvn_day(
    patient: Patient,
    week: Sequence[date],
    visits: Iterable[Visit],
    frequency: int,
    pending: Iterable[Visit] = (),
) -> Optional[date]:
    """
    Weekday for the patient's next LVN visit, or None when every weekday
    already has one of the patient's RN/LVN visits.

    visits + pending together are the patient's picture of the week; the
    staff load ordering uses the patient's assigned LVN.
    """
    visits = list(visits)
    pending = list(pending)
    week_set = set(week)
    mine = [
        v for v in visits + pending
        if v.patient_id == patient.id and v.date in week_set
    ]
    taken = {v.date for v in mine if v.discipline in (Discipline.RN, Discipline.LVN)}

    staff_name = patient.assigned_lvn or ""
    loads = _ranked_days(staff_name, week, visits, pending, taken)
    if not loads:
        return None
    # under-cap days when there are any; otherwise the caller tags over-limit
    ranked = [d for load, d in loads if load < DAILY_VISIT_CAP] or [d for _load, d in loads]

    if frequency == 2:
        def spacing(d: date) -> int:
            if not taken:
                return 0
            return min(abs((d - placed).days) for placed in taken)

        # preferred first, then widest gap, then distribution order
        order = {d: i for i, d in enumerate(ranked)}
        return min(ranked, key=lambda d: (not is_preferred_day(patient, d), -spacing(d), order[d]))

    if frequency >= 3:
        preferred = [d for d in ranked if is_preferred_day(patient, d)]
        if preferred:
            return preferred[0]

    return ranked[0]
