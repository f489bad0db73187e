"""
config.py — Data loading for the Hospice Visit Scheduler

Loads the patient census, staff roster and stored visits from CSV (visits
also from JSON), and converts between plain records (CSV rows, visit-store
JSON) and the model dataclasses.

Record keys are accepted in snake_case (CSV headers) or the visit store's
camelCase (socDate, assignedRN, patientId, ...). Cells are parsed
tolerantly:
  benefit period   "BP2", "bp 2", "2", 2         → 2
  booleans         yes / true / 1 / y            → True
  lists            "a;b", "a,b", "a|b"           → ["a", "b"]
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from hospice_scheduler.dates import to_date
from hospice_scheduler.models import (
    Discipline,
    Patient,
    PatientStatus,
    Priority,
    Staff,
    StaffRole,
    Visit,
    VisitStatus,
    parse_tags,
)
from hospice_scheduler.schedule_config import normalize_discipline

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_PATIENTS_PATH = DEFAULT_CONFIG_DIR / "patients.csv"
DEFAULT_STAFF_PATH    = DEFAULT_CONFIG_DIR / "staff.csv"
DEFAULT_VISITS_PATH   = DEFAULT_CONFIG_DIR / "visits.csv"


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:   # NaN
        return True
    return str(value).strip().lower() in ("", "nan", "none", "null")


def _parse_yes_no(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if _is_blank(value):
        return default
    return str(value).strip().lower() in ("yes", "true", "1", "y")


def _parse_list(raw: Any) -> List[str]:
    """
    Split a delimited cell into stripped, non-empty items.
    Accepts lists as-is (JSON records).
    """
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(p).strip() for p in raw if str(p).strip()]
    if _is_blank(raw):
        return []
    s = str(raw).replace(";", ",").replace("|", ",")
    return [p.strip().strip('"').strip("'") for p in s.split(",") if p.strip()]


_BP_PATTERN = re.compile(r"^\s*(?:bp)?\s*(\d+)\s*$", re.IGNORECASE)


def _parse_benefit_period(raw: Any) -> int:
    """'BP2' / '2' / 2 → 2. Blank → 1."""
    if _is_blank(raw):
        return 1
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return int(raw)
    m = _BP_PATTERN.match(str(raw))
    if not m:
        raise ValueError(f"Malformed benefit period: {raw!r}")
    return int(m.group(1))


def _text(value: Any) -> str:
    return "" if _is_blank(value) else str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def _field(record: Dict[str, Any], *keys: str) -> Any:
    """First present, non-blank value among keys."""
    for key in keys:
        if key in record and not _is_blank(record[key]):
            return record[key]
    return None


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------

def patient_from_record(record: Dict[str, Any]) -> Patient:
    frequency = _field(record, "frequency")
    status = _text(_field(record, "visit_status", "visitStatus")).lower() or "active"
    return Patient(
        id=_text(_field(record, "id")),
        name=_text(_field(record, "name")),
        city=_text(_field(record, "city")),
        start_of_care_date=to_date(_field(record, "start_of_care_date", "soc_date", "socDate")),
        benefit_period_number=_parse_benefit_period(
            _field(record, "benefit_period_number", "benefit_period", "benefitPeriodNumber")
        ),
        benefit_period_start=to_date(_field(record, "benefit_period_start", "benefitPeriodStart")),
        benefit_period_end=to_date(_field(record, "benefit_period_end", "benefitPeriodEnd")),
        frequency=str(frequency).strip() if frequency is not None else "1x/week",
        assigned_rn=_optional_text(_field(record, "assigned_rn", "assignedRN")),
        assigned_lvn=_optional_text(_field(record, "assigned_lvn", "assignedLVN")),
        assigned_np=_optional_text(_field(record, "assigned_np", "assignedNP")),
        last_rn_visit_date=to_date(_field(record, "last_rn_visit_date", "lastRNVisitDate")),
        preferred_visit_days=frozenset(
            _parse_list(_field(record, "preferred_visit_days", "preferredVisitDays"))
        ),
        visit_status=PatientStatus(status),
    )


def staff_from_record(record: Dict[str, Any]) -> Staff:
    role = normalize_discipline(_text(_field(record, "role")))
    if role == Discipline.UNASSIGNED.value:
        raise ValueError(f"Staff {record.get('name')!r} has no clinical role")
    return Staff(
        id=_text(_field(record, "id")),
        name=_text(_field(record, "name")),
        role=StaffRole(role),
        active=_parse_yes_no(_field(record, "active"), default=True),
        color=_text(_field(record, "color")),
    )


def visit_from_record(record: Dict[str, Any]) -> Visit:
    discipline = Discipline(normalize_discipline(_text(_field(record, "discipline"))))
    staff = _optional_text(_field(record, "staff"))
    if staff == "Unassigned":
        staff = None
    day = to_date(_field(record, "date"))
    if day is None:
        raise ValueError(f"Visit {record.get('id')!r} has no date")
    return Visit(
        id=_text(_field(record, "id")),
        patient_id=_text(_field(record, "patient_id", "patientId")),
        patient_name=_text(_field(record, "patient_name", "patientName")),
        date=day,
        discipline=discipline,
        staff=staff,
        status=VisitStatus(_text(_field(record, "status")).lower() or "suggested"),
        completed=_parse_yes_no(_field(record, "completed")),
        tags=parse_tags(_parse_list(_field(record, "tags"))),
        notes=_text(_field(record, "notes")),
        priority=Priority(_text(_field(record, "priority")).lower() or "medium"),
        reason=_text(_field(record, "reason")),
    )


def visit_to_record(v: Visit) -> Dict[str, Any]:
    """Visit → JSON-ready dict in the visit store's camelCase shape."""
    return {
        "id": v.id,
        "patientId": v.patient_id,
        "patientName": v.patient_name,
        "date": v.date.isoformat(),
        "discipline": v.discipline.value,
        "staff": v.staff or "Unassigned",
        "status": v.status.value,
        "completed": v.completed,
        "tags": sorted(t.value for t in v.tags),
        "notes": v.notes,
        "priority": v.priority.value,
        "reason": v.reason,
    }


def _convert_rows(rows: Iterable[Dict[str, Any]], convert, path: Path) -> list:
    out = []
    for i, row in enumerate(rows):
        try:
            out.append(convert(row))
        except ValueError as e:
            # +2: header line and 1-based numbering
            raise ValueError(f"{path} row {i + 2}: {e}") from e
    return out


def _read_csv_records(path: Path) -> List[Dict[str, Any]]:
    import pandas as pd

    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    return df.to_dict(orient="records")


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def load_patients(patients_path: Optional[Path] = None) -> List[Patient]:
    """
    Load the patient census from patients.csv.

    Expected columns:
      id, name, city, soc_date, benefit_period, benefit_period_start,
      benefit_period_end, frequency, assigned_rn, assigned_lvn, assigned_np,
      last_rn_visit_date, preferred_visit_days, visit_status
    """
    path = Path(patients_path) if patients_path else DEFAULT_PATIENTS_PATH
    if not path.exists():
        raise FileNotFoundError(f"Patients file not found: {path}")
    patients = _convert_rows(_read_csv_records(path), patient_from_record, path)
    logger.info(f"Loaded {len(patients)} patients from {path}")
    return patients


def load_staff(staff_path: Optional[Path] = None) -> List[Staff]:
    """
    Load the staff roster from staff.csv.

    Expected columns: id, name, role, active, color (optional)
    """
    path = Path(staff_path) if staff_path else DEFAULT_STAFF_PATH
    if not path.exists():
        raise FileNotFoundError(f"Staff file not found: {path}")
    staff = _convert_rows(_read_csv_records(path), staff_from_record, path)
    logger.info(f"Loaded {len(staff)} staff from {path}")
    return staff


def load_visits(visits_path: Optional[Path] = None) -> List[Visit]:
    """
    Load stored visits from CSV or JSON (a list of visit records).

    A missing file is an empty visit history (first run), not an error.
    """
    path = Path(visits_path) if visits_path else DEFAULT_VISITS_PATH
    if not path.exists():
        logger.warning(f"Visits file not found: {path}. Starting with no visit history.")
        return []
    if path.suffix.lower() == ".json":
        with open(path) as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError(f"{path}: expected a JSON list of visits")
    else:
        records = _read_csv_records(path)
    visits = _convert_rows(records, visit_from_record, path)
    logger.info(f"Loaded {len(visits)} visits from {path}")
    return visits


def save_visits(visits: Iterable[Visit], visits_path: Path) -> None:
    """Persist visits as a JSON list of visit-store records."""
    path = Path(visits_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    records = [visit_to_record(v) for v in visits]
    with open(path, "w") as f:
        json.dump(records, f, indent=2)
    logger.info(f"Saved {len(records)} visits to {path}")


# ---------------------------------------------------------------------------
# Quick validation on import
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    staff = load_staff()
    print(f"Loaded {len(staff)} staff")
    for s in staff:
        flag = "" if s.active else "(inactive)"
        print(f"  {s.role.value:<4} {s.name:<20} {flag}")

    patients = load_patients()
    print(f"\nLoaded {len(patients)} patients")
    for p in patients:
        team = ", ".join(n for n in (p.assigned_rn, p.assigned_lvn, p.assigned_np) if n) or "(no team)"
        print(f"  {p.id:<12} {p.name:<24} BP{p.benefit_period_number} {p.frequency:<8} | {team}")

    visits = load_visits()
    print(f"\nVisits on record: {len(visits)}")
