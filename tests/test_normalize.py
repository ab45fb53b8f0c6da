"""Unit tests for field normalization."""

from datetime import date, datetime

import pytest

from normalize import (
    date_key,
    normalize_attendance_type,
    normalize_category,
    normalize_grade,
    normalize_group,
    normalize_severity,
    normalize_state,
    normalize_text,
    parse_date,
)


@pytest.mark.parametrize("raw", ["8°", " 8 ", "8", "8."])
def test_grade_variants_compare_equal(raw):
    assert normalize_grade(raw) == "8"


def test_grade_keeps_letters():
    assert normalize_grade(" 10-B ") == "10B"
    assert normalize_grade(None) == ""


def test_group_trims_and_uppercases():
    assert normalize_group("  a ") == "A"


@pytest.mark.parametrize("raw,expected", [
    ("baja", "tipo1"),
    ("MEDIA", "tipo2"),
    (" Alta ", "tipo3"),
    ("tipo1", "tipo1"),
    ("Tipo 3", "tipo3"),
    ("tier2", "tipo2"),
    ("3", "tipo3"),
    ("", "tipo2"),
    (None, "tipo2"),
    ("gravisima", "tipo2"),
])
def test_severity_aliases(raw, expected):
    assert normalize_severity(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("presente", "presente"),
    ("FALTA", "falta"),
    (" Retardo ", "retardo"),
    ("salida", "salida"),
    ("permiso", ""),
    ("", ""),
    (None, ""),
])
def test_attendance_type(raw, expected):
    assert normalize_attendance_type(raw) == expected


def test_category_and_state_defaults():
    assert normalize_category("") == "convivencia"
    assert normalize_category("Acoso") == "acoso"
    assert normalize_category("robo") == ""
    assert normalize_state(None) == "abierto"
    assert normalize_state("En_Seguimiento") == "en seguimiento"
    assert normalize_state("CERRADO") == "cerrado"
    assert normalize_state("archivado") == ""


def test_text_collapses_whitespace():
    assert normalize_text("  Llego   TARDE\tal aula ") == "llego tarde al aula"


@pytest.mark.parametrize("raw", ["8°", " a b ", "tipo3", "baja", "FALTA", "xx", ""])
def test_normalization_is_idempotent(raw):
    for fn in (normalize_grade, normalize_group, normalize_severity, normalize_attendance_type, normalize_text):
        assert fn(fn(raw)) == fn(raw)


def test_parse_date_formats():
    assert parse_date("2024-06-01") == datetime(2024, 6, 1)
    assert parse_date("2024-06-01T10:30:00Z") == datetime(2024, 6, 1, 10, 30)
    assert parse_date("2024-06-01T23:30:00-05:00") == datetime(2024, 6, 2, 4, 30)
    assert parse_date(date(2024, 6, 1)) == datetime(2024, 6, 1)
    assert parse_date("ayer") is None
    assert parse_date("") is None


def test_date_key_is_utc_day():
    assert date_key(datetime(2024, 6, 1, 23, 59)) == "2024-06-01"
    assert date_key("2024-06-01T23:30:00-05:00") == "2024-06-02"
    assert date_key("not a date") == ""
