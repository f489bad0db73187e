"""
models.py — Patient, Staff and Visit records

Records are frozen dataclasses: the engine never edits a record in place,
it builds a new one with dataclasses.replace(). Tags are a frozenset of
VisitTag rather than a free-text list.

Visit invariants (checked on construction):
  - a visit tagged PRN is always CONFIRMED;
  - the UNASSIGNED tag goes with the UNASSIGNED discipline and nothing else.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from hospice_scheduler.dates import to_date


class SchedulingInputError(ValueError):
    """Patient data the engine cannot schedule from (bad frequency, missing dates)."""


class Discipline(Enum):
    RN = "RN"
    LVN = "LVN"
    NP = "NP"
    UNASSIGNED = "UNASSIGNED"


class StaffRole(Enum):
    RN = "RN"
    LVN = "LVN"
    NP = "NP"


class VisitStatus(Enum):
    SUGGESTED = "suggested"
    CONFIRMED = "confirmed"


class VisitTag(Enum):
    ROUTINE = "routine"
    RECERT = "recert"
    PRN = "prn"
    HOPE = "HOPE"
    HUV1 = "HUV1"
    HUV2 = "HUV2"
    OVER_LIMIT = "over-limit"
    UNASSIGNED = "unassigned"


class Priority(Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PatientStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"


def parse_tags(raw: Union[None, str, Iterable[Union[str, VisitTag]]]) -> FrozenSet[VisitTag]:
    """
    Build a tag set from enum members or their string values.

    Accepts "prn;HOPE", "prn,HOPE", ["prn", "HOPE"] or VisitTag members.
    Matching is case-insensitive. Unknown labels raise ValueError.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        items = [p.strip() for p in raw.replace(";", ",").split(",")]
    else:
        items = list(raw)

    by_value = {t.value.lower(): t for t in VisitTag}
    tags = set()
    for item in items:
        if isinstance(item, VisitTag):
            tags.add(item)
            continue
        label = str(item).strip()
        if not label:
            continue
        tag = by_value.get(label.lower())
        if tag is None:
            raise ValueError(f"Unknown visit tag: {label!r}")
        tags.add(tag)
    return frozenset(tags)


@dataclass(frozen=True)
class Staff:
    id: str
    name: str
    role: StaffRole
    active: bool = True
    color: str = ""


# Normalised to datetime.date on construction
_PATIENT_DATE_FIELDS = (
    "start_of_care_date",
    "benefit_period_start",
    "benefit_period_end",
    "last_rn_visit_date",
)


@dataclass(frozen=True)
class Patient:
    id: str
    name: str
    city: str = ""
    start_of_care_date: Optional[date] = None
    benefit_period_number: int = 1
    benefit_period_start: Optional[date] = None
    benefit_period_end: Optional[date] = None
    frequency: Union[str, int] = "1x/week"
    assigned_rn: Optional[str] = None
    assigned_lvn: Optional[str] = None
    assigned_np: Optional[str] = None
    last_rn_visit_date: Optional[date] = None
    preferred_visit_days: FrozenSet[str] = field(default_factory=frozenset)
    visit_status: PatientStatus = PatientStatus.ACTIVE

    def __post_init__(self) -> None:
        for name in _PATIENT_DATE_FIELDS:
            value = getattr(self, name)
            try:
                object.__setattr__(self, name, to_date(value))
            except (TypeError, ValueError) as e:
                raise SchedulingInputError(f"Patient {self.id}: {name} {value!r} is not a date") from e
        if self.benefit_period_number < 1:
            raise ValueError(
                f"Patient {self.id}: benefit_period_number must be ≥1, got {self.benefit_period_number}"
            )
        if (
            self.benefit_period_start is not None
            and self.benefit_period_end is not None
            and self.benefit_period_end < self.benefit_period_start
        ):
            raise ValueError(
                f"Patient {self.id}: benefit_period_end {self.benefit_period_end} "
                f"is before benefit_period_start {self.benefit_period_start}"
            )

    def assignment_for(self, discipline: Discipline) -> Optional[str]:
        """Staff name assigned to this patient for a discipline (None if unset)."""
        return {
            Discipline.RN: self.assigned_rn,
            Discipline.LVN: self.assigned_lvn,
            Discipline.NP: self.assigned_np,
        }.get(discipline) or None

    @property
    def has_any_assignment(self) -> bool:
        return bool(self.assigned_rn or self.assigned_lvn or self.assigned_np)


@dataclass(frozen=True)
class Visit:
    id: str
    patient_id: str
    date: date
    discipline: Discipline
    staff: Optional[str] = None
    status: VisitStatus = VisitStatus.SUGGESTED
    completed: bool = False
    tags: FrozenSet[VisitTag] = field(default_factory=frozenset)
    notes: str = ""
    priority: Priority = Priority.MEDIUM
    reason: str = ""
    patient_name: str = ""

    def __post_init__(self) -> None:
        if VisitTag.PRN in self.tags and self.status is not VisitStatus.CONFIRMED:
            raise ValueError(f"Visit {self.id}: PRN visits must be confirmed")
        is_unassigned = self.discipline is Discipline.UNASSIGNED
        if (VisitTag.UNASSIGNED in self.tags) != is_unassigned:
            raise ValueError(
                f"Visit {self.id}: 'unassigned' tag requires the UNASSIGNED discipline "
                f"(got discipline={self.discipline.value}, tags={sorted(t.value for t in self.tags)})"
            )

    @property
    def is_prn(self) -> bool:
        return VisitTag.PRN in self.tags

    @property
    def is_protected(self) -> bool:
        """Confirmed, completed and PRN visits are never replaced by the engine."""
        return self.status is VisitStatus.CONFIRMED or self.completed or self.is_prn

    @property
    def is_unstaffed(self) -> bool:
        return not self.staff or self.staff == "Unassigned"

    @property
    def slot(self) -> Tuple[str, date, Discipline]:
        """(patient_id, date, discipline): the key merge conflicts are judged on."""
        return (self.patient_id, self.date, self.discipline)

    def with_tags(self, extra: Iterable[VisitTag]) -> "Visit":
        return dataclasses.replace(self, tags=self.tags | frozenset(extra))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def confirm_visit(visit: Visit, staff: Optional[str] = None) -> Visit:
    """Lock a visit in (optionally assigning staff). Returns a new Visit."""
    return dataclasses.replace(
        visit,
        status=VisitStatus.CONFIRMED,
        staff=staff if staff is not None else visit.staff,
    )


def complete_visit(visit: Visit, patient: Optional[Patient] = None) -> Tuple[Visit, Optional[Patient]]:
    """
    Mark a visit as having occurred.

    Completing an RN visit refreshes the patient's cached last_rn_visit_date;
    the visit log remains the source of truth (see
    compliance.effective_last_rn_visit_date).

    Returns (completed_visit, updated_patient_or_input_patient).
    """
    if visit.completed:
        return visit, patient
    done = dataclasses.replace(visit, completed=True)
    if patient is not None and visit.discipline is Discipline.RN and patient.id == visit.patient_id:
        cached = patient.last_rn_visit_date
        if cached is None or visit.date > cached:
            patient = dataclasses.replace(patient, last_rn_visit_date=visit.date)
    return done, patient
