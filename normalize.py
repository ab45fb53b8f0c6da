"""
Normalization helpers shared by the attendance and conduct modules.

All comparisons between stored records go through these functions so that
casing, stray whitespace and the legacy vocabularies (baja/media/alta, old
attendance enums) never produce false mismatches.
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

ATTENDANCE_TYPES = ("presente", "falta", "retardo", "salida")
CONDUCT_CATEGORIES = ("convivencia", "disciplinario", "acoso", "agresion", "otro")
REPORT_STATES = ("abierto", "en seguimiento", "cerrado")
SEVERITIES = ("tipo1", "tipo2", "tipo3")

DEFAULT_SEVERITY = "tipo2"
DEFAULT_CATEGORY = "convivencia"
DEFAULT_STATE = "abierto"

_SEVERITY_ALIASES = {
    "baja": "tipo1",
    "media": "tipo2",
    "alta": "tipo3",
}
_SEVERITY_TIER_RE = re.compile(r"^(?:tipo|tier|nivel)?\s*([123])$")

_STATE_ALIASES = {
    "en_seguimiento": "en seguimiento",
    "en-seguimiento": "en seguimiento",
    "seguimiento": "en seguimiento",
}

_WS_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")


def _text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def normalize_grade(raw: Any) -> str:
    """ "8°", " 8 " and "8" all become "8". """
    return _NON_ALNUM_RE.sub("", _text(raw))


def normalize_group(raw: Any) -> str:
    return _text(raw).upper()


def normalize_text(raw: Any) -> str:
    """Lowercase and collapse whitespace. Only for equality checks, never for display."""
    return _WS_RE.sub(" ", _text(raw).lower())


def normalize_severity(raw: Any) -> str:
    s = normalize_text(raw)
    if s in _SEVERITY_ALIASES:
        return _SEVERITY_ALIASES[s]
    m = _SEVERITY_TIER_RE.match(s)
    if m:
        return f"tipo{m.group(1)}"
    return DEFAULT_SEVERITY


def normalize_attendance_type(raw: Any) -> str:
    """Canonical attendance token, or "" when the input is not one of them."""
    s = _text(raw).lower()
    return s if s in ATTENDANCE_TYPES else ""


def normalize_category(raw: Any) -> str:
    s = normalize_text(raw)
    if not s:
        return DEFAULT_CATEGORY
    return s if s in CONDUCT_CATEGORIES else ""


def normalize_state(raw: Any) -> str:
    s = normalize_text(raw)
    if not s:
        return DEFAULT_STATE
    s = _STATE_ALIASES.get(s, s)
    return s if s in REPORT_STATES else ""


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back from the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(raw: Any) -> Optional[datetime]:
    """
    Parse a stored or submitted date into a naive UTC datetime.

    Accepts datetime/date objects and ISO-8601 strings (with or without a
    trailing "Z" or offset). Returns None when the value cannot be parsed.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, date):
        dt = datetime(raw.year, raw.month, raw.day)
    else:
        s = _text(raw)
        if not s:
            return None
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def date_key(raw: Any) -> str:
    """UTC calendar day as "YYYY-MM-DD", or "" if the value is not a date."""
    dt = parse_date(raw)
    if dt is None:
        return ""
    return dt.strftime("%Y-%m-%d")


def record_id(record: dict) -> str:
    rid = record.get("_id", record.get("id"))
    return "" if rid is None else str(rid)
