"""
Same-day duplicate detection for attendance records and conduct reports.

Two entries are duplicates when they fall on the same UTC calendar day and
every compared field is equal after normalization. The time of day is
ignored.
"""

from typing import Iterable, Optional

from normalize import (
    date_key,
    normalize_attendance_type,
    normalize_category,
    normalize_severity,
    normalize_state,
    normalize_text,
    record_id,
)


def attendance_signature(record: dict) -> tuple:
    return (
        date_key(record.get("fecha")),
        normalize_attendance_type(record.get("tipo")),
        normalize_text(record.get("hora")),
        normalize_text(record.get("observacion")),
    )


def conduct_signature(report: dict) -> tuple:
    return (
        date_key(report.get("fecha")),
        normalize_category(report.get("categoria")),
        normalize_severity(report.get("gravedad")),
        normalize_state(report.get("estado")),
        normalize_text(report.get("descripcion")),
        normalize_text(report.get("acciones")),
    )


def _has_match(existing: Optional[Iterable[dict]], candidate: dict, signature, exclude_id) -> bool:
    target = signature(candidate)
    exclude = None if exclude_id is None else str(exclude_id)
    for item in existing or []:
        if exclude is not None and record_id(item) == exclude:
            continue
        if signature(item) == target:
            return True
    return False


def is_duplicate_attendance(existing: Optional[Iterable[dict]], candidate: dict, exclude_id=None) -> bool:
    return _has_match(existing, candidate, attendance_signature, exclude_id)


def is_duplicate_conduct(existing: Optional[Iterable[dict]], candidate: dict, exclude_id=None) -> bool:
    return _has_match(existing, candidate, conduct_signature, exclude_id)
