"""
Grade/group access scope for authenticated callers.

Admins see every student. Any other caller is limited to the single
(grado, grupo) pair assigned to them and is denied everything when that
assignment is incomplete.
"""

from typing import Any, Dict, Optional

from errors import ForbiddenError
from normalize import normalize_grade, normalize_group

ADMIN_ROLE = "admin"


def is_admin(caller: Optional[Dict[str, Any]]) -> bool:
    return bool(caller) and caller.get("rol") == ADMIN_ROLE


def compute_scope(caller: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """None for admins, otherwise the caller's normalized assignment (possibly empty)."""
    if is_admin(caller):
        return None
    caller = caller or {}
    return {
        "grado": normalize_grade(caller.get("gradoAsignado")),
        "grupo": normalize_group(caller.get("grupoAsignado")),
    }


def has_complete_scope(scope: Optional[Dict[str, str]]) -> bool:
    return scope is None or bool(scope["grado"] and scope["grupo"])


def can_access(caller: Optional[Dict[str, Any]], student: Dict[str, Any]) -> bool:
    scope = compute_scope(caller)
    if scope is None:
        return True
    if not has_complete_scope(scope):
        return False
    return (
        normalize_grade(student.get("grado")) == scope["grado"]
        and normalize_group(student.get("grupo")) == scope["grupo"]
    )


def scope_filter_or_reject(caller: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Mongo filter restricting a query to what the caller may see.

    Admins get an empty (match-all) filter. Callers without a complete
    assignment raise ``ForbiddenError``.
    """
    scope = compute_scope(caller)
    if scope is None:
        return {}
    if not has_complete_scope(scope):
        raise ForbiddenError("Usuario sin grado y grupo asignados")
    return dict(scope)


def matches_scope(student: Dict[str, Any], criteria: Dict[str, str]) -> bool:
    """True when the student's normalized grado/grupo equal every value set in ``criteria``."""
    normalizers = {"grado": normalize_grade, "grupo": normalize_group}
    return all(normalizers[key](student.get(key)) == value for key, value in criteria.items() if value)
