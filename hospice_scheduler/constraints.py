"""
constraints.py — Compliance audit for a visit list

Hard constraints (must NOT violate):
  - DUPLICATE_SLOT: two non-PRN visits on one (patient, date, discipline)
  - UNKNOWN_PATIENT: visit for a patient id not in the census
  - UNKNOWN_STAFF: visit staffed by a name not on the roster
  - INACTIVE_STAFF: suggested visit staffed by an inactive clinician
  - ROLE_MISMATCH: staff role differs from the visit discipline

Soft constraints (flag for the scheduler):
  - OVER_DAILY_CAP: staff carries more than DAILY_VISIT_CAP visits in a day
  - UNSTAFFED_VISIT: visit with no clinician (manual placement needed)
  - OVER_LIMIT_TAGGED: visit the engine placed past the daily cap
  - DISCHARGED_PATIENT: suggested visit for a discharged patient

Severity enum and ConstraintViolation dataclass are importable for
dry_run.py reporting.

Usage:
  checker = ConstraintChecker(patients, staff)
  hard, soft = checker.check_all(visits, week_dates=week)
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hospice_scheduler.compliance import parse_frequency
from hospice_scheduler.models import (
    Discipline,
    Patient,
    PatientStatus,
    SchedulingInputError,
    Staff,
    Visit,
    VisitStatus,
    VisitTag,
)
from hospice_scheduler.schedule_config import DAILY_VISIT_CAP

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    date: Optional[date] = None
    staff: Optional[str] = None
    patient_id: Optional[str] = None
    visit_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.date:
            parts.append(f"date={self.date}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.patient_id:
            parts.append(f"patient={self.patient_id}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


class ConstraintChecker:
    """
    Validates visit lists against hard and soft constraints.

    Only visits that are not yet completed are audited for staffing; history
    is what it is.
    """

    def __init__(self, patients: Sequence[Patient], staff: Sequence[Staff]):
        self.patients = list(patients)
        self.staff = list(staff)

        self._patients_by_id: Dict[str, Patient] = {p.id: p for p in self.patients}
        self._staff_by_name: Dict[str, Staff] = {s.name: s for s in self.staff}

    def _hard(self, kind: str, v: Visit, description: str, **details: Any) -> ConstraintViolation:
        return ConstraintViolation(
            severity=ConstraintSeverity.HARD,
            constraint_type=kind,
            description=description,
            date=v.date,
            staff=v.staff,
            patient_id=v.patient_id,
            visit_id=v.id,
            details=details,
        )

    def _soft(self, kind: str, v: Visit, description: str, **details: Any) -> ConstraintViolation:
        violation = self._hard(kind, v, description, **details)
        violation.severity = ConstraintSeverity.SOFT
        return violation

    # -----------------------------------------------------------------------
    # HARD
    # -----------------------------------------------------------------------

    def check_duplicate_slots(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Hard: at most one non-PRN visit per (patient, date, discipline)."""
        violations = []
        seen: Dict[tuple, Visit] = {}
        for v in visits:
            if v.is_prn:
                continue
            first = seen.get(v.slot)
            if first is None:
                seen[v.slot] = v
                continue
            violations.append(self._hard(
                "DUPLICATE_SLOT", v,
                f"{v.discipline.value} visit for {v.patient_id} on {v.date} duplicates visit {first.id}",
                first_visit=first.id,
            ))
        return violations

    def check_unknown_patients(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Hard: every visit references a patient in the census."""
        return [
            self._hard("UNKNOWN_PATIENT", v, f"Visit {v.id} references unknown patient {v.patient_id}")
            for v in visits
            if v.patient_id not in self._patients_by_id
        ]

    def check_staff(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Hard: staffed, open visits go to known clinicians of the right role."""
        violations = []
        for v in visits:
            if v.is_unstaffed or v.completed:
                continue
            member = self._staff_by_name.get(v.staff)
            if member is None:
                violations.append(self._hard("UNKNOWN_STAFF", v, f"{v.staff} is not on the staff roster"))
                continue
            if not member.active and v.status is VisitStatus.SUGGESTED:
                violations.append(self._hard(
                    "INACTIVE_STAFF", v,
                    f"{v.staff} is inactive but was suggested for {v.patient_id} on {v.date}",
                ))
            if member.role.value != v.discipline.value:
                violations.append(self._hard(
                    "ROLE_MISMATCH", v,
                    f"{v.staff} ({member.role.value}) assigned to a {v.discipline.value} visit",
                    role=member.role.value,
                ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT
    # -----------------------------------------------------------------------

    def check_daily_cap(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Soft: flag each (staff, day) carrying more than DAILY_VISIT_CAP visits."""
        by_day: Dict[Tuple[str, date], List[Visit]] = defaultdict(list)
        for v in visits:
            if not v.is_unstaffed:
                by_day[(v.staff, v.date)].append(v)
        violations = []
        for (name, day), day_visits in sorted(by_day.items()):
            if len(day_visits) > DAILY_VISIT_CAP:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.SOFT,
                    constraint_type="OVER_DAILY_CAP",
                    description=f"{name} has {len(day_visits)} visits on {day} (cap {DAILY_VISIT_CAP})",
                    date=day,
                    staff=name,
                    details={"count": len(day_visits), "cap": DAILY_VISIT_CAP},
                ))
        return violations

    def check_unstaffed(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Soft: open visits with no clinician."""
        return [
            self._soft(
                "UNSTAFFED_VISIT", v,
                f"{v.discipline.value} visit for {v.patient_name or v.patient_id} on {v.date} has no clinician",
            )
            for v in visits
            if v.is_unstaffed and not v.completed
        ]

    def check_over_limit_tags(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Soft: visits the engine placed past the daily cap."""
        return [
            self._soft("OVER_LIMIT_TAGGED", v, f"{v.staff} over the daily cap on {v.date}")
            for v in visits
            if VisitTag.OVER_LIMIT in v.tags and not v.completed
        ]

    def check_discharged(self, visits: Sequence[Visit]) -> List[ConstraintViolation]:
        """Soft: suggestions left on the calendar for discharged patients."""
        violations = []
        for v in visits:
            patient = self._patients_by_id.get(v.patient_id)
            if (
                patient is not None
                and patient.visit_status is PatientStatus.COMPLETE
                and v.status is VisitStatus.SUGGESTED
            ):
                violations.append(self._soft(
                    "DISCHARGED_PATIENT", v, f"Suggested visit for discharged patient {patient.name}",
                ))
        return violations

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        visits: Sequence[Visit],
        week_dates: Optional[Sequence[date]] = None,
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft constraint checks, restricted to week_dates
        when given.

        Returns:
            (hard_violations, soft_violations)
        """
        if week_dates is not None:
            week_set = set(week_dates)
            visits = [v for v in visits if v.date in week_set]
        else:
            visits = list(visits)

        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_duplicate_slots(visits))
        hard.extend(self.check_unknown_patients(visits))
        hard.extend(self.check_staff(visits))

        soft.extend(self.check_daily_cap(visits))
        soft.extend(self.check_unstaffed(visits))
        soft.extend(self.check_over_limit_tags(visits))
        soft.extend(self.check_discharged(visits))

        return hard, soft

    # -----------------------------------------------------------------------
    # Input validation (census / roster)
    # -----------------------------------------------------------------------

    def validate_roster(self) -> Tuple[List[str], List[str]]:
        """
        Validate patients and staff for structural integrity.

        Returns:
            (errors, warnings) as lists of strings
        """
        errors = []
        warnings = []

        names = Counter(s.name for s in self.staff)
        dupes = sorted(n for n, c in names.items() if c > 1)
        if dupes:
            errors.append(f"Duplicate names in staff roster: {dupes}")

        ids = Counter(p.id for p in self.patients)
        dupe_ids = sorted(i for i, c in ids.items() if c > 1)
        if dupe_ids:
            errors.append(f"Duplicate patient ids: {dupe_ids}")

        for p in self.patients:
            try:
                parse_frequency(p.frequency)
            except SchedulingInputError as e:
                errors.append(f"{p.name}: {e}")
            if p.start_of_care_date is None:
                warnings.append(f"{p.name}: no start-of-care date")
            if p.benefit_period_end is None:
                warnings.append(f"{p.name}: no benefit period end date (recert window unknown)")
            if not p.has_any_assignment and p.visit_status is not PatientStatus.COMPLETE:
                warnings.append(f"{p.name}: no clinician assigned")

            for discipline in (Discipline.RN, Discipline.LVN, Discipline.NP):
                name = p.assignment_for(discipline)
                if not name:
                    continue
                member = self._staff_by_name.get(name)
                if member is None:
                    errors.append(f"{p.name}: assigned {discipline.value} '{name}' is not on the staff roster")
                elif member.role.value != discipline.value:
                    errors.append(
                        f"{p.name}: assigned {discipline.value} '{name}' has role {member.role.value}"
                    )
                elif not member.active:
                    warnings.append(f"{p.name}: assigned {discipline.value} '{name}' is inactive")

        return errors, warnings
