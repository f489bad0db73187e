"""
Hospice Visit Scheduling Engine

Modules:
- schedule_config: Cadence policy, daily cap, visit notes
- models: Patient, Staff, Visit records and enums
- compliance: RN / recert / HOPE / NP due predicates
- engine: Weekly scheduler (generators + merge)
- alerts, constraints, repair: Audit and repair of a visit list
- config, exporter, api_client: Loading, export, visit-store integration
"""

from .clock import FixedClock, SystemClock
from .config import (
    load_patients,
    load_staff,
    load_visits,
    save_visits,
)
from .engine import (
    WeekPlan,
    plan_week,
    schedule_week,
    schedule_weeks,
)
from .merge import (
    merge_with_existing_visits,
    same_visit_set,
    visit_key,
)
from .models import (
    Discipline,
    Patient,
    SchedulingInputError,
    Staff,
    Visit,
    VisitStatus,
    VisitTag,
    complete_visit,
    confirm_visit,
)

__all__ = [
    "FixedClock",
    "SystemClock",
    "load_patients",
    "load_staff",
    "load_visits",
    "save_visits",
    "WeekPlan",
    "plan_week",
    "schedule_week",
    "schedule_weeks",
    "merge_with_existing_visits",
    "same_visit_set",
    "visit_key",
    "Discipline",
    "Patient",
    "SchedulingInputError",
    "Staff",
    "Visit",
    "VisitStatus",
    "VisitTag",
    "complete_visit",
    "confirm_visit",
]
