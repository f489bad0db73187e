"""
alerts.py — Date-driven compliance alerts for the dashboard

Recomputed from scratch on every call (nothing is stored between calls):

  type               severity  when
  ─────────────────  ────────  ─────────────────────────────────────────────
  overdue            high      ≥ RN_REVISIT_DAYS since the last RN visit
  due-soon           medium    ≥ RN_DUE_SOON_DAYS since the last RN visit
  hope-assessment    high      HUV1 / HUV2 window open, not yet completed
  recert-window      medium    inside the recertification window
  recert-overdue     high      benefit period ended

Discharged (complete) patients get no alerts.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

from hospice_scheduler.clock import Clock
from hospice_scheduler.compliance import (
    days_on_service,
    effective_last_rn_visit_date,
    hope_tags,
    recert_window,
)
from hospice_scheduler.dates import days_between
from hospice_scheduler.models import Patient, PatientStatus, Visit, VisitTag
from hospice_scheduler.schedule_config import RN_DUE_SOON_DAYS, RN_REVISIT_DAYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Alert:
    id: str
    type: str
    severity: str
    patient_id: str
    patient_name: str
    message: str
    date: date
    days: Optional[int] = None


def _rn_alert(patient: Patient, visits: Sequence[Visit], today: date) -> Optional[Alert]:
    last = effective_last_rn_visit_date(patient, visits)
    if last is None:
        return None
    since = days_between(last, today)
    if since >= RN_REVISIT_DAYS:
        overdue = since - RN_REVISIT_DAYS
        return Alert(
            id=f"alert-{patient.id}-overdue",
            type="overdue",
            severity="high",
            patient_id=patient.id,
            patient_name=patient.name,
            message=f"RN visit overdue by {overdue} days",
            date=today,
            days=overdue,
        )
    if since >= RN_DUE_SOON_DAYS:
        until = RN_REVISIT_DAYS - since
        return Alert(
            id=f"alert-{patient.id}-due-soon",
            type="due-soon",
            severity="medium",
            patient_id=patient.id,
            patient_name=patient.name,
            message=f"RN visit due in {until} days",
            date=today,
            days=until,
        )
    return None


def _hope_alerts(patient: Patient, visits: Sequence[Visit], clock: Clock) -> List[Alert]:
    if patient.start_of_care_date is None:
        return []
    tags = hope_tags(patient, visits, clock)
    dos = days_on_service(patient, clock)
    alerts = []
    for tag in (VisitTag.HUV1, VisitTag.HUV2):
        if tag in tags:
            alerts.append(Alert(
                id=f"alert-{patient.id}-{tag.value.lower()}",
                type="hope-assessment",
                severity="high",
                patient_id=patient.id,
                patient_name=patient.name,
                message=f"HOPE {tag.value} Assessment Required (Day {dos} on service)",
                date=clock.today(),
                days=dos,
            ))
    return alerts


def _recert_alert(patient: Patient, clock: Clock) -> Optional[Alert]:
    window = recert_window(patient, clock)
    if window is None:
        return None
    if window.is_overdue:
        return Alert(
            id=f"alert-{patient.id}-recert-overdue",
            type="recert-overdue",
            severity="high",
            patient_id=patient.id,
            patient_name=patient.name,
            message=f"Benefit period {patient.benefit_period_number} ended {window.end}; recertification overdue",
            date=clock.today(),
            days=-window.days_until_end,
        )
    if window.is_in_window:
        return Alert(
            id=f"alert-{patient.id}-recert",
            type="recert-window",
            severity="medium",
            patient_id=patient.id,
            patient_name=patient.name,
            message=f"Recertification due in {window.days_until_end} days (benefit period ends {window.end})",
            date=clock.today(),
            days=window.days_until_end,
        )
    return None


def generate_alerts(patients: Iterable[Patient], visits: Iterable[Visit], clock: Clock) -> List[Alert]:
    """All current alerts, in patient order (RN, HOPE, recert per patient)."""
    visits = list(visits)
    today = clock.today()
    alerts: List[Alert] = []
    for patient in patients:
        if patient.visit_status is PatientStatus.COMPLETE:
            continue
        rn = _rn_alert(patient, visits, today)
        if rn:
            alerts.append(rn)
        alerts.extend(_hope_alerts(patient, visits, clock))
        recert = _recert_alert(patient, clock)
        if recert:
            alerts.append(recert)
    logger.info(f"{len(alerts)} alerts as of {today}")
    return alerts
