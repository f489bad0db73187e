"""
engine.py — Weekly Visit Scheduling Engine

Core algorithm: rebuild the target week's suggestions from scratch, keep
everything a clinician has touched.

  working  = existing − (suggested, not completed, not PRN, inside the week)
  for patient in patients (input order):
      complete patient            → skip
      no active clinician         → unassigned fallback
      for code in RN, HOPE, LVN, NP:
          proposals ← GENERATORS[code](ctx, patient)   (upsert by id)
  result   = merge(proposals, existing, week)

Supports:
  - Per-patient error isolation (bad frequency / missing start of care
    drops that patient's proposals only)
  - Decision log: every generated / attached / skipped outcome with reason
  - Injected clock and id factory; identical inputs → identical visit set
  - Multi-week roll-forward (schedule_weeks)

See hospice_scheduler/schedule_config.py for the cadence policy.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from hospice_scheduler.clock import Clock
from hospice_scheduler.compliance import days_on_service, parse_frequency
from hospice_scheduler.dates import week_dates
from hospice_scheduler.generators import (
    GENERATORS,
    Decision,
    GenerationContext,
    IdFactory,
    generate_unassigned_visit,
    has_active_assignment,
    uuid_id_factory,
)
from hospice_scheduler.merge import merge_with_existing_visits, partition_week
from hospice_scheduler.models import (
    Patient,
    PatientStatus,
    SchedulingInputError,
    Staff,
    Visit,
)
from hospice_scheduler.schedule_config import GENERATION_ORDER

logger = logging.getLogger(__name__)

StaffInput = Union[None, Sequence[Staff], Dict[str, Staff]]


@dataclass
class WeekPlan:
    """Result of one engine pass."""
    week_dates: List[date]
    visits: List[Visit]
    proposals: List[Visit] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)

    def decisions_for(self, patient_id: str) -> List[Decision]:
        return [d for d in self.decisions if d.patient_id == patient_id]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _staff_by_name(staff: StaffInput) -> Optional[Dict[str, Staff]]:
    if staff is None:
        return None
    if isinstance(staff, dict):
        return dict(staff)
    return {s.name: s for s in staff}


def _working_set(existing: Sequence[Visit], week: Sequence[date]) -> List[Visit]:
    """Existing visits with the week's replaceable suggestions removed."""
    outside, protected, _stale = partition_week(existing, week)
    return outside + protected


def _validate_patient(patient: Patient, clock: Clock) -> None:
    """Raise SchedulingInputError for data no generator can schedule from."""
    parse_frequency(patient.frequency)
    days_on_service(patient, clock)


def _upsert(proposals: List[Visit], produced: Iterable[Visit]) -> None:
    index = {v.id: i for i, v in enumerate(proposals)}
    for v in produced:
        if v.id in index:
            proposals[index[v.id]] = v
        else:
            index[v.id] = len(proposals)
            proposals.append(v)


def _schedule_patient(ctx: GenerationContext, patient: Patient) -> None:
    if patient.visit_status is PatientStatus.COMPLETE:
        ctx.decide(patient, "PATIENT", "skipped", "Patient is discharged (complete)")
        return

    if not has_active_assignment(ctx, patient):
        _upsert(ctx.proposals, generate_unassigned_visit(ctx, patient))
        return

    _validate_patient(patient, ctx.clock)
    for code in GENERATION_ORDER:
        _upsert(ctx.proposals, GENERATORS[code](ctx, patient))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def plan_week(
    patients: Sequence[Patient],
    existing_visits: Sequence[Visit],
    week_start: date,
    clock: Clock,
    staff: StaffInput = None,
    id_factory: Optional[IdFactory] = None,
) -> WeekPlan:
    """
    Run one pass for the week containing week_start.

    Args:
        patients:        Patient records, scheduled in this order.
        existing_visits: Full stored visit list (any weeks). Never mutated.
        week_start:      Any date in the target week (normalised to Monday).
        clock:           Source of "today" for every due check.
        staff:           Optional roster (list or name → Staff). When given,
                         unknown or inactive staff get no new visits.
        id_factory:      Callable returning unique visit ids (default uuid4).

    Returns:
        WeekPlan with the merged visit list, this pass's proposals and the
        decision log.
    """
    week = week_dates(week_start)
    existing = list(existing_visits)
    ctx = GenerationContext(
        week=week,
        visits=_working_set(existing, week),
        clock=clock,
        id_factory=id_factory or uuid_id_factory,
        staff=_staff_by_name(staff),
    )
    logger.info(
        f"Scheduling week {week[0]} → {week[-1]}: {len(patients)} patients, "
        f"{len(existing)} existing visits ({len(existing) - len(ctx.visits)} replaceable)"
    )

    for patient in patients:
        proposals_before = list(ctx.proposals)
        decisions_before = list(ctx.decisions)
        try:
            _schedule_patient(ctx, patient)
        except (SchedulingInputError, TypeError, ValueError) as e:
            ctx.proposals[:] = proposals_before
            ctx.decisions[:] = decisions_before
            logger.warning(f"Patient {patient.id} ({patient.name}) skipped: {e}")
            ctx.decide(patient, "PATIENT", "error", str(e))

    merged = merge_with_existing_visits(ctx.proposals, existing, week)
    logger.info(f"Week {week[0]}: {len(ctx.proposals)} proposals, {len(merged)} visits after merge")
    return WeekPlan(
        week_dates=week,
        visits=merged,
        proposals=list(ctx.proposals),
        decisions=list(ctx.decisions),
    )


def schedule_week(
    patients: Sequence[Patient],
    existing_visits: Sequence[Visit],
    week_start: date,
    clock: Clock,
    staff: StaffInput = None,
    id_factory: Optional[IdFactory] = None,
) -> List[Visit]:
    """plan_week(), returning only the merged visit list."""
    return plan_week(patients, existing_visits, week_start, clock, staff, id_factory).visits


def schedule_weeks(
    patients: Sequence[Patient],
    existing_visits: Sequence[Visit],
    week_start: date,
    clock: Clock,
    weeks: int = 1,
    staff: StaffInput = None,
    id_factory: Optional[IdFactory] = None,
) -> List[WeekPlan]:
    """
    Roll the engine over `weeks` consecutive weeks, each pass seeing the
    previous pass's visits. The clock is not advanced: later weeks are
    planned as of the same "today".

    Returns one WeekPlan per week; the last plan's visits is the full list.
    """
    if weeks < 1:
        raise ValueError(f"weeks must be ≥1, got {weeks}")
    plans: List[WeekPlan] = []
    visits = list(existing_visits)
    for offset in range(weeks):
        start = week_dates(week_start, offset_weeks=offset)[0]
        plan = plan_week(patients, visits, start, clock, staff, id_factory)
        plans.append(plan)
        visits = plan.visits
    return plans
