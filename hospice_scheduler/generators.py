"""
generators.py — Per-discipline visit generators

One generator per discipline, same signature:

    generate(ctx, patient) -> List[Visit]

ctx (GenerationContext) carries the week, the working visit set (existing
visits minus stale suggestions), the proposals made so far in this pass,
the clock and the id factory. A generator returns new proposals; a
returned visit whose id matches an earlier proposal replaces it (HOPE
attaching its tags to the week's RN proposal).

Dispatch: GENERATORS maps the codes in schedule_config.GENERATION_ORDER
(RN → HOPE → LVN → NP) to the generator functions.

No-availability handling (RN / LVN / NP):
  - day under cap found           → normal suggested visit
  - every weekday at cap          → least-loaded day, tagged over-limit
  - no candidate weekday at all   → unstaffed placeholder on the first
                                    day of the week for manual placement
"""

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from hospice_scheduler.clock import Clock
from hospice_scheduler.compliance import (
    hope_tags,
    is_rn_visit_due,
    np_required,
    parse_frequency,
    recert_window,
)
from hospice_scheduler.dates import weekday_dates
from hospice_scheduler.models import (
    Discipline,
    Patient,
    Priority,
    Staff,
    Visit,
    VisitStatus,
    VisitTag,
)
from hospice_scheduler.schedule_config import UNASSIGNED_VISIT_NOTE, get_visit_note
from hospice_scheduler.slots import (
    best_day_for_distribution,
    best_lvn_day,
    has_reached_daily_limit,
    least_loaded_day,
)

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def uuid_id_factory() -> str:
    return f"v-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Decision:
    """One generated / attached / skipped outcome, with the rule that caused it."""
    patient_id: str
    discipline: str          # RN | HOPE | LVN | NP | UNASSIGNED | PATIENT
    action: str              # generated | attached | skipped | error
    reason: str
    visit_id: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.action.upper()}] {self.discipline} patient={self.patient_id} → {self.reason}"


@dataclass
class GenerationContext:
    week: List[date]
    visits: List[Visit]
    clock: Clock
    id_factory: IdFactory = uuid_id_factory
    staff: Optional[Dict[str, Staff]] = None
    proposals: List[Visit] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)

    def decide(
        self,
        patient: Patient,
        discipline: str,
        action: str,
        reason: str,
        visit_id: Optional[str] = None,
    ) -> None:
        decision = Decision(patient.id, discipline, action, reason, visit_id)
        self.decisions.append(decision)
        logger.debug(str(decision))

    def week_visits(self, patient: Patient, include_proposals: bool = True) -> List[Visit]:
        """The patient's visits dated inside the week (working set + proposals)."""
        pool = self.visits + self.proposals if include_proposals else self.visits
        week_set = set(self.week)
        return [v for v in pool if v.patient_id == patient.id and v.date in week_set]


Generator = Callable[[GenerationContext, Patient], List[Visit]]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def assigned_staff(ctx: GenerationContext, patient: Patient, discipline: Discipline) -> Optional[str]:
    """
    Staff name assigned for discipline, or None.

    With a staff roster in ctx, unknown or inactive staff count as not
    assigned (only active staff receive new assignments).
    """
    name = patient.assignment_for(discipline)
    if not name or ctx.staff is None:
        return name
    member = ctx.staff.get(name)
    if member is None:
        ctx.decide(patient, discipline.value, "skipped", f"Assigned {discipline.value} '{name}' is not on the staff roster")
        return None
    if not member.active:
        ctx.decide(patient, discipline.value, "skipped", f"Assigned {discipline.value} '{name}' is inactive")
        return None
    return name


def has_active_assignment(ctx: GenerationContext, patient: Patient) -> bool:
    """True when at least one discipline resolves to staff who can take new visits."""
    for discipline in (Discipline.RN, Discipline.LVN, Discipline.NP):
        name = patient.assignment_for(discipline)
        if not name:
            continue
        if ctx.staff is None:
            return True
        member = ctx.staff.get(name)
        if member is not None and member.active:
            return True
    return False


def _new_visit(
    ctx: GenerationContext,
    patient: Patient,
    day: date,
    discipline: Discipline,
    staff: Optional[str],
    tags: FrozenSet[VisitTag],
    notes: str,
    priority: Priority,
    reason: str,
) -> Visit:
    return Visit(
        id=ctx.id_factory(),
        patient_id=patient.id,
        patient_name=patient.name,
        date=day,
        discipline=discipline,
        staff=staff,
        status=VisitStatus.SUGGESTED,
        completed=False,
        tags=tags,
        notes=notes,
        priority=priority,
        reason=reason,
    )


def _taken_days(ctx: GenerationContext, patient: Patient, discipline: Discipline) -> Set[date]:
    """
    Days to keep clear for a new visit: every day the patient already has a
    visit this week, or only the same-discipline days once that covers
    every weekday.
    """
    mine = ctx.week_visits(patient)
    busy = {v.date for v in mine}
    if any(d not in busy for d in weekday_dates(ctx.week)):
        return busy
    return {v.date for v in mine if v.discipline is discipline}


def _place(
    ctx: GenerationContext,
    patient: Patient,
    staff_name: str,
    discipline: Discipline,
    pending: List[Visit],
) -> Tuple[date, Optional[str], FrozenSet[VisitTag], str]:
    """
    Pick (day, staff, extra_tags, reason_suffix) for a staffed discipline.
    """
    taken = _taken_days(ctx, patient, discipline)
    day = best_day_for_distribution(staff_name, ctx.week, ctx.visits, discipline, pending=pending, exclude=taken)
    if day is not None:
        return day, staff_name, frozenset(), ""

    day = least_loaded_day(staff_name, ctx.week, ctx.visits, pending=pending, exclude=taken)
    if day is not None:
        logger.info(f"{staff_name} at daily cap every weekday of {ctx.week[0]}; placing over-limit on {day}")
        return day, staff_name, frozenset({VisitTag.OVER_LIMIT}), "; staff at daily cap (over-limit)"

    return ctx.week[0], None, frozenset(), "; no weekday available, needs manual placement"


def _has_week_visit(ctx: GenerationContext, patient: Patient, discipline: Discipline) -> Optional[Visit]:
    for v in ctx.week_visits(patient):
        if v.discipline is discipline and not v.is_prn:
            return v
    return None


# ---------------------------------------------------------------------------
# RN
# ---------------------------------------------------------------------------

def generate_rn_visits(ctx: GenerationContext, patient: Patient) -> List[Visit]:
    """
    At most one RN visit per week: due by the 14-day rule, a missing RN
    history, or the recertification window.
    """
    rn = assigned_staff(ctx, patient, Discipline.RN)
    if not rn:
        return []

    booked = _has_week_visit(ctx, patient, Discipline.RN)
    if booked is not None:
        ctx.decide(patient, "RN", "skipped", f"RN visit already on the calendar for {booked.date}")
        return []

    due = is_rn_visit_due(patient, ctx.visits, ctx.clock)
    if not due.is_due:
        ctx.decide(patient, "RN", "skipped", due.reason)
        return []

    window = recert_window(patient, ctx.clock)
    is_recert = window is not None and window.is_in_window
    visit_type = "recert" if is_recert else "routine"
    tags = {VisitTag.RECERT if is_recert else VisitTag.ROUTINE}

    day, staff, extra, suffix = _place(ctx, patient, rn, Discipline.RN, ctx.proposals)
    visit = _new_visit(
        ctx, patient, day, Discipline.RN, staff,
        tags=frozenset(tags) | extra,
        notes=get_visit_note(visit_type, "RN"),
        priority=Priority.HIGH,
        reason=due.reason + suffix,
    )
    ctx.decide(patient, "RN", "generated", visit.reason, visit.id)
    return [visit]


# ---------------------------------------------------------------------------
# HOPE
# ---------------------------------------------------------------------------

def _tag_suffix(tags: FrozenSet[VisitTag]) -> str:
    order = [VisitTag.HOPE, VisitTag.HUV1, VisitTag.HUV2]
    return " ".join(f"({t.value})" for t in order if t in tags)


def generate_hope_visits(ctx: GenerationContext, patient: Patient) -> List[Visit]:
    """
    HUV1 / HUV2 assessments ride on the week's RN visit when there is one;
    otherwise a standalone RN-discipline visit carries them.
    """
    tags = hope_tags(patient, ctx.visits, ctx.clock)
    if not tags:
        return []

    label = _tag_suffix(tags)
    week_set = set(ctx.week)

    for proposal in ctx.proposals:
        if (
            proposal.patient_id == patient.id
            and proposal.discipline is Discipline.RN
            and proposal.date in week_set
        ):
            attached = dataclasses.replace(
                proposal,
                tags=proposal.tags | tags,
                notes=f"{proposal.notes} {label}".strip(),
            )
            ctx.decide(patient, "HOPE", "attached", f"{label} attached to RN visit on {proposal.date}", attached.id)
            return [attached]

    for v in ctx.week_visits(patient, include_proposals=False):
        if v.discipline is Discipline.RN and not v.completed and not v.is_prn:
            ctx.decide(
                patient, "HOPE", "skipped",
                f"{label} due: complete at the {v.status.value} RN visit on {v.date}",
            )
            return []

    rn = assigned_staff(ctx, patient, Discipline.RN)
    if rn:
        day, staff, extra, suffix = _place(ctx, patient, rn, Discipline.RN, ctx.proposals)
    else:
        taken = {v.date for v in ctx.week_visits(patient)}
        free = [d for d in ctx.week if d.weekday() < 5 and d not in taken]
        day, staff, extra, suffix = (free[0] if free else ctx.week[0]), None, frozenset(), "; no RN assigned"

    visit = _new_visit(
        ctx, patient, day, Discipline.RN, staff,
        tags=tags | extra,
        notes=f"Auto-assigned HOPE visit {label}",
        priority=Priority.HIGH,
        reason=f"HOPE assessment window{suffix}",
    )
    ctx.decide(patient, "HOPE", "generated", visit.reason, visit.id)
    return [visit]


# ---------------------------------------------------------------------------
# LVN
# ---------------------------------------------------------------------------

def generate_lvn_visits(ctx: GenerationContext, patient: Patient) -> List[Visit]:
    """
    Fill the weekly frequency left over after RN / HOPE. Routine visits
    already in the week (protected ones and this pass's proposals) count;
    NP, PRN and unassigned visits do not.
    """
    lvn = assigned_staff(ctx, patient, Discipline.LVN)
    if not lvn:
        return []

    frequency = parse_frequency(patient.frequency)
    routine = [
        v for v in ctx.week_visits(patient)
        if v.discipline in (Discipline.RN, Discipline.LVN) and not v.is_prn
    ]
    remaining = frequency - len(routine)
    if remaining <= 0:
        ctx.decide(patient, "LVN", "skipped", f"{frequency}x/week already covered ({len(routine)} visits)")
        return []

    visits: List[Visit] = []
    for i in range(remaining):
        pending = ctx.proposals + visits
        day = best_lvn_day(patient, ctx.week, ctx.visits, frequency, pending=pending)
        if day is None:
            if any(v.discipline is Discipline.LVN and v.date == ctx.week[0] for v in ctx.week_visits(patient) + visits):
                ctx.decide(patient, "LVN", "skipped", f"{remaining - i} of {frequency}x/week LVN visits have no free weekday")
                break
            placeholder = _new_visit(
                ctx, patient, ctx.week[0], Discipline.LVN, None,
                tags=frozenset({VisitTag.ROUTINE}),
                notes=get_visit_note("routine", "LVN"),
                priority=Priority.MEDIUM,
                reason=f"{remaining - i} of {frequency}x/week LVN visits have no free weekday; needs manual placement",
            )
            visits.append(placeholder)
            ctx.decide(patient, "LVN", "generated", placeholder.reason, placeholder.id)
            break

        tags = {VisitTag.ROUTINE}
        reason = f"LVN visit {len(routine) + i + 1} of {frequency}x/week"
        if has_reached_daily_limit(lvn, day, ctx.visits, pending):
            tags.add(VisitTag.OVER_LIMIT)
            reason += "; staff at daily cap (over-limit)"
        visit = _new_visit(
            ctx, patient, day, Discipline.LVN, lvn,
            tags=frozenset(tags),
            notes=get_visit_note("routine", "LVN"),
            priority=Priority.MEDIUM,
            reason=reason,
        )
        visits.append(visit)
        ctx.decide(patient, "LVN", "generated", reason, visit.id)

    return visits


# ---------------------------------------------------------------------------
# NP
# ---------------------------------------------------------------------------

def generate_np_visits(ctx: GenerationContext, patient: Patient) -> List[Visit]:
    """One NP visit per pass from the benefit-period threshold on."""
    np_name = assigned_staff(ctx, patient, Discipline.NP)
    if not np_name:
        return []

    if not np_required(patient.benefit_period_number):
        ctx.decide(patient, "NP", "skipped", f"Benefit period {patient.benefit_period_number} does not require an NP visit")
        return []

    booked = _has_week_visit(ctx, patient, Discipline.NP)
    if booked is not None:
        ctx.decide(patient, "NP", "skipped", f"NP visit already on the calendar for {booked.date}")
        return []

    day, staff, extra, suffix = _place(ctx, patient, np_name, Discipline.NP, ctx.proposals)
    visit = _new_visit(
        ctx, patient, day, Discipline.NP, staff,
        tags=frozenset({VisitTag.ROUTINE}) | extra,
        notes=get_visit_note("routine", "NP"),
        priority=Priority.MEDIUM,
        reason=f"NP face-to-face for benefit period {patient.benefit_period_number}{suffix}",
    )
    ctx.decide(patient, "NP", "generated", visit.reason, visit.id)
    return [visit]


# ---------------------------------------------------------------------------
# Unassigned fallback
# ---------------------------------------------------------------------------

def generate_unassigned_visit(ctx: GenerationContext, patient: Patient) -> List[Visit]:
    """Single urgent placeholder for a patient with no clinician at all."""
    for v in ctx.week_visits(patient):
        if v.discipline is Discipline.UNASSIGNED:
            ctx.decide(patient, "UNASSIGNED", "skipped", f"Team-assignment visit already on {v.date}")
            return []

    visit = _new_visit(
        ctx, patient, ctx.week[0], Discipline.UNASSIGNED, None,
        tags=frozenset({VisitTag.UNASSIGNED}),
        notes=UNASSIGNED_VISIT_NOTE,
        priority=Priority.URGENT,
        reason="No RN, LVN or NP assigned",
    )
    ctx.decide(patient, "UNASSIGNED", "generated", visit.reason, visit.id)
    return [visit]


GENERATORS: Dict[str, Generator] = {
    "RN": generate_rn_visits,
    "HOPE": generate_hope_visits,
    "LVN": generate_lvn_visits,
    "NP": generate_np_visits,
}
