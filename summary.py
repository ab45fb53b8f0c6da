from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from normalize import ATTENDANCE_TYPES, normalize_attendance_type, parse_date, utcnow

WINDOW_DAYS = 30

# response key for each attendance type
COUNT_KEYS = {
    "presente": "presentes",
    "falta": "faltas",
    "retardo": "retardos",
    "salida": "salidas",
}


def sort_by_date_desc(items: Optional[List[dict]]) -> List[dict]:
    """Newest first; entries with an unparsable fecha go last, original order kept on ties."""
    return sorted(items or [], key=lambda r: parse_date(r.get("fecha")) or datetime.min, reverse=True)


def window_start(now: Optional[datetime] = None, days: int = WINDOW_DAYS) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


def in_window(raw_fecha: Any, cutoff: datetime) -> bool:
    fecha = parse_date(raw_fecha)
    return fecha is not None and fecha >= cutoff


def count_by_type(history: List[dict]) -> Dict[str, int]:
    counts = {COUNT_KEYS[t]: 0 for t in ATTENDANCE_TYPES}
    for record in history:
        tipo = normalize_attendance_type(record.get("tipo"))
        if tipo:
            counts[COUNT_KEYS[tipo]] += 1
    return counts


def summarize(history: Optional[List[dict]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Reduce a student's attendance history to all-time and trailing-30-day counts.

    The history is sorted newest first here, so ``ultimoRegistro`` does not
    depend on the caller's ordering. Records without a valid date are counted
    in the all-time totals but never in the 30-day window. Future-dated
    records fall inside the window.
    """
    ordered = sort_by_date_desc(history)
    cutoff = window_start(now)
    recent = [r for r in ordered if in_window(r.get("fecha"), cutoff)]

    return {
        "totalRegistros": len(ordered),
        **count_by_type(ordered),
        "ultimoRegistro": ordered[0] if ordered else None,
        "ultimos30dias": {"total": len(recent), **count_by_type(recent)},
    }
