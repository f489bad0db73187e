"""
merge.py — Reconcile a week's new proposals with the stored visit list

Precedence inside the target week:
  1. protected      confirmed, completed or PRN visits — kept untouched
  2. new proposals  always kept
  3. stale suggestions — kept only when no new proposal lands on the same
                         (patient_id, date, discipline) slot
Visits outside the week pass through unchanged.

Output order is deterministic: outside-week visits (input order), then
protected, surviving stale suggestions, new proposals.
"""

import logging
from datetime import date
from typing import Iterable, List, Sequence, Tuple

from hospice_scheduler.models import Visit

logger = logging.getLogger(__name__)


def partition_week(
    visits: Iterable[Visit],
    week: Sequence[date],
) -> Tuple[List[Visit], List[Visit], List[Visit]]:
    """Split visits into (outside_week, protected_in_week, suggested_in_week)."""
    week_set = set(week)
    outside: List[Visit] = []
    protected: List[Visit] = []
    suggested: List[Visit] = []
    for v in visits:
        if v.date not in week_set:
            outside.append(v)
        elif v.is_protected:
            protected.append(v)
        else:
            suggested.append(v)
    return outside, protected, suggested


def merge_with_existing_visits(
    new_visits: Sequence[Visit],
    existing_visits: Sequence[Visit],
    week: Sequence[date],
) -> List[Visit]:
    """
    Union of protected, non-conflicting stale suggestions, new proposals and
    everything outside the week. Never raises on conflicts.
    """
    outside, protected, stale = partition_week(existing_visits, week)
    claimed = {v.slot for v in new_visits}
    survivors = [v for v in stale if v.slot not in claimed]

    dropped = len(stale) - len(survivors)
    if dropped:
        logger.info(f"Merge replaced {dropped} stale suggestion(s) in week of {week[0]}")

    return outside + protected + survivors + list(new_visits)


# ---------------------------------------------------------------------------
# Id-free comparison
# ---------------------------------------------------------------------------

def visit_key(v: Visit) -> tuple:
    """Everything that identifies a visit's content, without its id."""
    return (
        v.patient_id,
        v.date,
        v.discipline.value,
        v.staff or "",
        v.status.value,
        v.completed,
        tuple(sorted(t.value for t in v.tags)),
        v.notes,
        v.priority.value,
    )


def same_visit_set(a: Iterable[Visit], b: Iterable[Visit]) -> bool:
    """Compare two visit lists as multisets of visit_key (ids ignored)."""
    return sorted(map(visit_key, a)) == sorted(map(visit_key, b))
