"""Unit tests for grade/group access scope."""

import pytest

from errors import ForbiddenError
from scope import can_access, compute_scope, matches_scope, scope_filter_or_reject

ADMIN = {"rol": "admin"}
TEACHER = {"rol": "profesor", "gradoAsignado": "8°", "grupoAsignado": "a"}
STUDENT_8A = {"grado": "8", "grupo": "A"}
STUDENT_9A = {"grado": "9", "grupo": "A"}


def test_admin_is_unrestricted():
    assert compute_scope(ADMIN) is None
    assert scope_filter_or_reject(ADMIN) == {}
    assert can_access(ADMIN, STUDENT_9A)


def test_teacher_scope_is_normalized():
    assert compute_scope(TEACHER) == {"grado": "8", "grupo": "A"}
    assert scope_filter_or_reject(TEACHER) == {"grado": "8", "grupo": "A"}


def test_teacher_sees_only_own_group():
    assert can_access(TEACHER, STUDENT_8A)
    assert can_access(TEACHER, {"grado": " 8 ", "grupo": "a"})
    assert not can_access(TEACHER, STUDENT_9A)
    assert not can_access(TEACHER, {"grado": "8", "grupo": "B"})


def test_incomplete_assignment_denies_everything():
    caller = {"rol": "profesor", "gradoAsignado": "", "grupoAsignado": "A"}
    assert not can_access(caller, STUDENT_8A)
    assert not can_access(caller, {"grado": "", "grupo": "A"})
    assert not can_access(caller, {"grado": "", "grupo": ""})
    with pytest.raises(ForbiddenError):
        scope_filter_or_reject(caller)


def test_missing_caller_is_denied():
    assert not can_access(None, STUDENT_8A)
    with pytest.raises(ForbiddenError):
        scope_filter_or_reject(None)


def test_matches_scope_compares_normalized_values():
    legacy = {"grado": "8°", "grupo": "a"}
    assert matches_scope(legacy, scope_filter_or_reject(TEACHER))
    assert matches_scope(legacy, {"grado": "8", "grupo": ""})
    assert matches_scope(legacy, {})
    assert not matches_scope(STUDENT_9A, {"grado": "8", "grupo": "A"})
