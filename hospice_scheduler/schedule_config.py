"""
schedule_config.py — Visit Cadence Policy & Scheduling Constants

Regulatory cadence rules the engine enforces for home-hospice visits.

RN CADENCE
──────────
  RN revisit:      every 14 days from the last completed, confirmed RN visit.
  Recert window:   opens 14 days before benefit_period_end, closes on it.
                   Inside the window an RN visit is due regardless of the
                   14-day count.

HOPE ASSESSMENTS (days on service = today − start of care)
─────────────────────────────────────────────────────────
  HUV1:  days 6–15   → tags {HOPE, HUV1}
  HUV2:  days 16–30  → tags {HOPE, HUV2}
  Attached to the week's RN visit when one exists; standalone otherwise.

NP FACE-TO-FACE
───────────────
  Required from benefit period NP_REQUIRED_FROM_BENEFIT_PERIOD onward.
  Two thresholds exist in the field data (BP2+ in the weekly scheduler,
  BP3+ in the face-to-face module). BP2 is used here; switch the constant
  to 3 for the face-to-face-only reading.

DAILY CAP
─────────
  A staff member may carry DAILY_VISIT_CAP visits per day. The cap is a
  soft warning: once every weekday is full the visit is still placed on
  the least-loaded day and tagged over-limit.

  Load counting:
    - confirmed visits always count;
    - proposals made earlier in the same pass count when
      COUNT_PENDING_PROPOSALS_IN_LOAD is set;
    - over-limit proposals never count toward later day selection unless
      COUNT_OVER_LIMIT_IN_LOAD is set.

GENERATION ORDER
────────────────
  RN → HOPE (attach or standalone) → LVN → NP, per patient.
"""

import re
from typing import Dict, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Cadence windows
# ---------------------------------------------------------------------------
RN_REVISIT_DAYS = 14
RN_DUE_SOON_DAYS = 12
RECERT_WINDOW_DAYS = 14

HUV1_WINDOW: Tuple[int, int] = (6, 15)
HUV2_WINDOW: Tuple[int, int] = (16, 30)

NP_REQUIRED_FROM_BENEFIT_PERIOD = 2

# ---------------------------------------------------------------------------
# Daily load
# ---------------------------------------------------------------------------
DAILY_VISIT_CAP = 5
COUNT_PENDING_PROPOSALS_IN_LOAD = True
COUNT_OVER_LIMIT_IN_LOAD = False

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------
WEEK_LENGTH = 7
WORK_WEEK_LENGTH = 5
DAY_NAMES: List[str] = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
]

# ---------------------------------------------------------------------------
# Benefit period countdown thresholds (days left)
# ---------------------------------------------------------------------------
COUNTDOWN_WARNING_DAYS = 14
COUNTDOWN_CRITICAL_DAYS = 7

# ---------------------------------------------------------------------------
# Generation order (discipline codes; see generators.GENERATORS)
# ---------------------------------------------------------------------------
GENERATION_ORDER: List[str] = ["RN", "HOPE", "LVN", "NP"]

# ---------------------------------------------------------------------------
# Default visit notes
# visit type → discipline → note
# ---------------------------------------------------------------------------
VISIT_NOTE_TEMPLATES: Dict[str, Dict[str, str]] = {
    "routine": {
        "RN":  "Routine RN Visit – no urgent concerns",
        "LVN": "Routine LVN Visit – no urgent concerns",
        "NP":  "Routine NP Visit – no urgent concerns",
    },
    "recert": {
        "RN":  "Recertification visit – verify eligibility",
        "LVN": "Recertification visit – verify eligibility",
        "NP":  "Recertification visit – verify eligibility",
    },
    "prn": {
        "RN":  "Follow-up on reported symptoms",
        "LVN": "Follow-up on reported symptoms",
        "NP":  "Follow-up on reported symptoms",
    },
}
DEFAULT_VISIT_NOTE = "Visit completed"
UNASSIGNED_VISIT_NOTE = "Patient needs team assignment"


def get_visit_note(visit_type: str, discipline: str) -> str:
    """Return the default note for a visit type / discipline pair."""
    return VISIT_NOTE_TEMPLATES.get(visit_type, {}).get(discipline, DEFAULT_VISIT_NOTE)


# ---------------------------------------------------------------------------
# Discipline aliases
# Regex-based: first matching pattern wins. Applied to raw discipline / role
# strings coming from the visit store (case-insensitive).
# ---------------------------------------------------------------------------
DISCIPLINE_REGEX_ALIASES: List[tuple] = [
    (r"^(np|nurse practitioner|f2f|face.to.face)$",          "NP"),
    (r"^(lvn|lpn|licensed vocational.*|licensed practical.*)$", "LVN"),
    (r"^(rn|registered nurse|case manager)$",                "RN"),
    (r"^(unassigned|none|n/?a|-)?$",                         "UNASSIGNED"),
]

_compiled_discipline_aliases = [(re.compile(pat, re.IGNORECASE), code)
                                for pat, code in DISCIPLINE_REGEX_ALIASES]


def normalize_discipline(raw: Optional[str]) -> str:
    """
    Map a raw discipline / role string to a discipline code.

    Examples:
        "rn", "Registered Nurse"   → "RN"
        "LPN"                       → "LVN"
        "Unassigned", "", None      → "UNASSIGNED"

    Raises ValueError if nothing matches.
    """
    s = (raw or "").strip()
    for pattern, code in _compiled_discipline_aliases:
        if pattern.match(s):
            return code
    raise ValueError(f"Unknown discipline: {raw!r}")


# ---------------------------------------------------------------------------
# Frequency pattern ("2x/week", "3X / wk", "1x week")
# ---------------------------------------------------------------------------
FREQUENCY_PATTERN = re.compile(r"^\s*(\d+)\s*x?\s*(/|per)?\s*(week|wk)?\s*$", re.IGNORECASE)
