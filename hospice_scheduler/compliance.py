"""
compliance.py — Per-discipline "is a visit due" predicates

  - RN 14-day rule with recertification override
  - Recertification window from benefit_period_end
  - HOPE HUV1 / HUV2 windows by days on service
  - NP requirement by benefit period number

Every predicate takes the clock explicitly; nothing here reads the wall
clock. Results carry a human-readable reason so the host can explain any
scheduling gap.

The last RN visit is always derived from the visit log. The patient's
cached last_rn_visit_date is only a fallback when the log has no
completed RN visit (e.g. history that predates the log).
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import FrozenSet, Iterable, Optional, Union

from hospice_scheduler.clock import Clock
from hospice_scheduler.dates import days_between
from hospice_scheduler.models import (
    Discipline,
    Patient,
    SchedulingInputError,
    Visit,
    VisitStatus,
    VisitTag,
)
from hospice_scheduler.schedule_config import (
    COUNTDOWN_CRITICAL_DAYS,
    COUNTDOWN_WARNING_DAYS,
    FREQUENCY_PATTERN,
    HUV1_WINDOW,
    HUV2_WINDOW,
    NP_REQUIRED_FROM_BENEFIT_PERIOD,
    RECERT_WINDOW_DAYS,
    RN_REVISIT_DAYS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RnDueCheck:
    is_due: bool
    reason: str
    days_since_last: Optional[int] = None
    recert: bool = False


@dataclass(frozen=True)
class RecertWindow:
    start: date
    end: date
    is_in_window: bool
    is_overdue: bool
    days_until_start: int
    days_until_end: int


@dataclass(frozen=True)
class NextRnVisit:
    due_date: date
    is_overdue: bool
    days_until_due: int


@dataclass(frozen=True)
class BenefitPeriodCountdown:
    days_left: Optional[int]
    status: str              # no-data | normal | warning | critical | expired
    end_date: Optional[date] = None
    period: Optional[int] = None


# ---------------------------------------------------------------------------
# Frequency
# ---------------------------------------------------------------------------

def parse_frequency(frequency: Union[str, int, None]) -> int:
    """
    Visits per week from "Nx/week" (also "N", "Nx week", "N per wk") or an int.

    Raises SchedulingInputError for anything else, including negatives.
    """
    if isinstance(frequency, bool):
        raise SchedulingInputError(f"Malformed frequency: {frequency!r}")
    if isinstance(frequency, int):
        if frequency < 0:
            raise SchedulingInputError(f"Frequency must be ≥0, got {frequency}")
        return frequency
    if frequency is None:
        raise SchedulingInputError("Frequency is missing")
    m = FREQUENCY_PATTERN.match(str(frequency))
    if not m:
        raise SchedulingInputError(f"Malformed frequency: {frequency!r} (expected e.g. '2x/week')")
    return int(m.group(1))


# ---------------------------------------------------------------------------
# Service / visit history helpers
# ---------------------------------------------------------------------------

def days_on_service(patient: Patient, clock: Clock) -> int:
    if patient.start_of_care_date is None:
        raise SchedulingInputError(f"Patient {patient.id} has no start-of-care date")
    return days_between(patient.start_of_care_date, clock.today())


def last_completed_rn_visit(patient_id: str, visits: Iterable[Visit]) -> Optional[Visit]:
    """Most recent RN visit that is both confirmed and completed."""
    candidates = [
        v for v in visits
        if v.patient_id == patient_id
        and v.discipline is Discipline.RN
        and v.status is VisitStatus.CONFIRMED
        and v.completed
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda v: v.date)


def effective_last_rn_visit_date(patient: Patient, visits: Iterable[Visit]) -> Optional[date]:
    """Last RN visit date from the log, falling back to the cached patient field."""
    last = last_completed_rn_visit(patient.id, visits)
    if last is not None:
        return last.date
    return patient.last_rn_visit_date


# ---------------------------------------------------------------------------
# Recertification
# ---------------------------------------------------------------------------

def recert_window(patient: Patient, clock: Clock) -> Optional[RecertWindow]:
    """
    Recert window [end − 14 days, end]. None when benefit_period_end is unset.
    """
    end = patient.benefit_period_end
    if end is None:
        return None
    today = clock.today()
    start = end - timedelta(days=RECERT_WINDOW_DAYS)
    return RecertWindow(
        start=start,
        end=end,
        is_in_window=start <= today <= end,
        is_overdue=today > end,
        days_until_start=days_between(today, start),
        days_until_end=days_between(today, end),
    )


# ---------------------------------------------------------------------------
# RN due-check
# ---------------------------------------------------------------------------

def is_rn_visit_due(patient: Patient, visits: Iterable[Visit], clock: Clock) -> RnDueCheck:
    """
    Decide whether an RN visit is due.

    1. No completed, confirmed RN visit on record → due.
    2. ≥14 days since it and nothing booked today-or-later → due.
    3. Inside the recert window → due regardless of the 14-day count.
    4. Otherwise not due.
    """
    visits = list(visits)
    today = clock.today()
    last = last_completed_rn_visit(patient.id, visits)

    if last is None:
        return RnDueCheck(True, "No confirmed RN visit on record")

    since = days_between(last.date, today)
    has_upcoming = any(
        v.patient_id == patient.id
        and v.discipline is Discipline.RN
        and v.date >= today
        and v.status in (VisitStatus.CONFIRMED, VisitStatus.SUGGESTED)
        for v in visits
    )

    if since >= RN_REVISIT_DAYS and not has_upcoming:
        return RnDueCheck(
            True,
            f"RN visit overdue by {since - RN_REVISIT_DAYS} days",
            days_since_last=since,
        )

    window = recert_window(patient, clock)
    if window is not None and window.is_in_window:
        return RnDueCheck(
            True,
            f"Recertification due in {window.days_until_end} days (benefit period ends {window.end})",
            days_since_last=since,
            recert=True,
        )

    if since >= RN_REVISIT_DAYS:
        return RnDueCheck(False, "RN visit already scheduled", days_since_last=since)
    return RnDueCheck(
        False,
        f"RN visit due in {RN_REVISIT_DAYS - since} days",
        days_since_last=since,
    )


def next_rn_visit(patient: Patient, visits: Iterable[Visit], clock: Clock) -> NextRnVisit:
    """Date the next RN visit falls due (today when there is no history)."""
    today = clock.today()
    last = effective_last_rn_visit_date(patient, visits)
    if last is None:
        return NextRnVisit(due_date=today, is_overdue=True, days_until_due=0)
    due = last + timedelta(days=RN_REVISIT_DAYS)
    until = days_between(today, due)
    return NextRnVisit(due_date=due, is_overdue=until < 0, days_until_due=until)


# ---------------------------------------------------------------------------
# HOPE
# ---------------------------------------------------------------------------

def _has_completed_tag(patient_id: str, visits: Iterable[Visit], tag: VisitTag) -> bool:
    return any(
        v.patient_id == patient_id and v.completed and tag in v.tags
        for v in visits
    )


def hope_tags(patient: Patient, visits: Iterable[Visit], clock: Clock) -> FrozenSet[VisitTag]:
    """
    HOPE tags due today: {HOPE, HUV1} on days 6–15, {HOPE, HUV2} on days
    16–30, each dropped once a completed visit already carries it.
    """
    visits = list(visits)
    dos = days_on_service(patient, clock)
    tags = set()

    lo, hi = HUV1_WINDOW
    if lo <= dos <= hi and not _has_completed_tag(patient.id, visits, VisitTag.HUV1):
        tags.update((VisitTag.HOPE, VisitTag.HUV1))

    lo, hi = HUV2_WINDOW
    if lo <= dos <= hi and not _has_completed_tag(patient.id, visits, VisitTag.HUV2):
        tags.update((VisitTag.HOPE, VisitTag.HUV2))

    return frozenset(tags)


# ---------------------------------------------------------------------------
# NP
# ---------------------------------------------------------------------------

def np_required(benefit_period_number: int) -> bool:
    return benefit_period_number >= NP_REQUIRED_FROM_BENEFIT_PERIOD


# ---------------------------------------------------------------------------
# Benefit period countdown
# ---------------------------------------------------------------------------

def benefit_period_countdown(patient: Patient, clock: Clock) -> BenefitPeriodCountdown:
    end = patient.benefit_period_end
    if end is None:
        return BenefitPeriodCountdown(days_left=None, status="no-data")

    left = days_between(clock.today(), end)
    if left < 0:
        status = "expired"
    elif left <= COUNTDOWN_CRITICAL_DAYS:
        status = "critical"
    elif left <= COUNTDOWN_WARNING_DAYS:
        status = "warning"
    else:
        status = "normal"
    return BenefitPeriodCountdown(
        days_left=left,
        status=status,
        end_date=end,
        period=patient.benefit_period_number,
    )
