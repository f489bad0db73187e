"""
exporter.py — Export Layer for the Hospice Visit Scheduler

Outputs:
  - Excel (.xlsx): formatted date × staff grid with patient visits per cell,
    plus a flat "Visits" sheet
  - CSV: one row per visit for programmatic review
  - Compliance report (.txt): per-patient RN due date, recert window,
    benefit period countdown, alerts and constraint violations

Usage:
  from hospice_scheduler.exporter import export_to_csv, export_to_excel, export_compliance_report
"""

import csv
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

from hospice_scheduler.alerts import Alert
from hospice_scheduler.clock import Clock
from hospice_scheduler.compliance import benefit_period_countdown, next_rn_visit, recert_window
from hospice_scheduler.constraints import ConstraintViolation
from hospice_scheduler.models import Patient, PatientStatus, Visit, VisitStatus, VisitTag

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "id", "date", "day", "patient_id", "patient_name", "discipline", "staff",
    "status", "completed", "priority", "tags", "notes", "reason",
]


def _visit_row(v: Visit) -> dict:
    return {
        "id": v.id,
        "date": v.date.isoformat(),
        "day": v.date.strftime("%A"),
        "patient_id": v.patient_id,
        "patient_name": v.patient_name,
        "discipline": v.discipline.value,
        "staff": v.staff or "Unassigned",
        "status": v.status.value,
        "completed": "yes" if v.completed else "no",
        "priority": v.priority.value,
        "tags": ";".join(sorted(t.value for t in v.tags)),
        "notes": v.notes,
        "reason": v.reason,
    }


def _sorted(visits: Sequence[Visit]) -> List[Visit]:
    return sorted(visits, key=lambda v: (v.date, v.staff or "~", v.patient_name or v.patient_id))


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_to_csv(visits: Sequence[Visit], output_path: Path) -> None:
    """
    Export visits to flat CSV (one row per visit), sorted by date then staff.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for v in _sorted(visits):
            writer.writerow(_visit_row(v))

    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def _cell_label(v: Visit) -> str:
    label = f"{v.patient_name or v.patient_id} ({v.discipline.value})"
    if v.status is VisitStatus.SUGGESTED:
        label += "*"
    if VisitTag.OVER_LIMIT in v.tags:
        label += " !"
    return label


def export_to_excel(
    visits: Sequence[Visit],
    output_path: Path,
    pivot: bool = True,
    staff_order: Optional[List[str]] = None,
) -> None:
    """
    Export visits to a formatted Excel workbook.

    Pivot mode (default): rows=date, columns=staff, cells=patient visits
    ("Name (RN)", "*" marks suggested, "!" marks over-limit). A second
    "Visits" sheet always carries the flat rows.

    Args:
        visits:       Visits to export
        output_path:  .xlsx file path
        pivot:        If True, add the date × staff grid
        staff_order:  Column order for the grid (defaults to alphabetical)
    """
    import pandas as pd

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    ordered = _sorted(visits)
    flat = pd.DataFrame([_visit_row(v) for v in ordered], columns=CSV_FIELDS)
    if flat.empty:
        flat.to_excel(output_path, index=False, sheet_name="Visits")
        return

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        if pivot:
            cells = pd.DataFrame([
                {"Date": v.date.isoformat(), "Staff": v.staff or "Unassigned", "Visit": _cell_label(v)}
                for v in ordered
            ])
            grid = cells.pivot_table(
                index="Date",
                columns="Staff",
                values="Visit",
                aggfunc=lambda x: "\n".join(x),  # several visits per staff-day
            )
            if staff_order:
                available = [s for s in staff_order if s in grid.columns]
                rest = [s for s in grid.columns if s not in staff_order]
                grid = grid[available + rest]
            grid.to_excel(writer, sheet_name="Schedule")
            _format_excel_grid(writer, "Schedule")

        flat.to_excel(writer, sheet_name="Visits", index=False)
        _format_excel_grid(writer, "Visits")

    logger.info(f"Excel exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Apply basic formatting: header fill, column widths, wrapped cells, row shading."""
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF")

    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for col in ws.columns:
        longest = max(
            (max(len(line) for line in str(c.value).split("\n")) for c in col if c.value),
            default=8,
        )
        ws.column_dimensions[col[0].column_letter].width = min(longest + 2, 40)

    alt = PatternFill("solid", fgColor="EBF3FB")
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        for cell in row:
            cell.alignment = Alignment(wrap_text=True, vertical="top")
            if i % 2 == 0:
                cell.fill = alt


# ---------------------------------------------------------------------------
# Compliance Report
# ---------------------------------------------------------------------------

def export_compliance_report(
    patients: Sequence[Patient],
    visits: Sequence[Visit],
    clock: Clock,
    output_path: Path,
    alerts: Optional[Sequence[Alert]] = None,
    hard: Optional[Sequence[ConstraintViolation]] = None,
    soft: Optional[Sequence[ConstraintViolation]] = None,
) -> str:
    """
    Export the compliance audit report (text format).

    Includes:
      - Per-patient next RN due date, recert window and benefit period status
      - Current alerts
      - Hard / soft constraint violations

    Returns the report text.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    today = clock.today()
    sep = "=" * 78

    lines = [
        sep,
        f"  COMPLIANCE REPORT — as of {today.isoformat()}",
        sep,
        "",
        f"  {'Patient':<26} {'BP':>3} {'Next RN due':>12} {'Recert window':>25} {'BP status':>10}",
        "─" * 78,
    ]

    for p in patients:
        if p.visit_status is PatientStatus.COMPLETE:
            continue
        rn = next_rn_visit(p, visits, clock)
        rn_col = rn.due_date.isoformat() + (" !" if rn.is_overdue else "")
        window = recert_window(p, clock)
        if window is None:
            recert_col = "-"
        else:
            recert_col = f"{window.start}→{window.end}"
            if window.is_in_window:
                recert_col += " *"
        countdown = benefit_period_countdown(p, clock)
        lines.append(
            f"  {p.name[:26]:<26} {p.benefit_period_number:>3} {rn_col:>12} {recert_col:>25} {countdown.status:>10}"
        )

    lines += ["", "  ! overdue    * window open", ""]

    lines += ["─" * 78, f"  Alerts ({len(alerts or [])})", "─" * 78]
    if alerts:
        for a in alerts:
            lines.append(f"  [{a.severity.upper():<6}] {a.patient_name:<26} {a.message}")
    else:
        lines.append("  (none)")

    for label, violations in (("Hard", hard), ("Soft", soft)):
        lines += ["", "─" * 78, f"  {label} violations ({len(violations or [])})", "─" * 78]
        if violations:
            lines.extend(f"  {v}" for v in violations)
        else:
            lines.append("  (none)")

    lines += ["", sep]
    report_text = "\n".join(lines)
    with open(output_path, "w") as f:
        f.write(report_text)

    logger.info(f"Compliance report exported → {output_path}")
    return report_text
