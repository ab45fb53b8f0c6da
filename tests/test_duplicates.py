"""Unit tests for same-day duplicate detection."""

from datetime import datetime

from bson import ObjectId

from duplicates import is_duplicate_attendance, is_duplicate_conduct


def attendance(**overrides):
    record = {
        "_id": ObjectId(),
        "fecha": datetime(2024, 6, 10, 7, 0),
        "tipo": "retardo",
        "hora": "07:20",
        "observacion": "Llego tarde",
    }
    record.update(overrides)
    return record


def report(**overrides):
    record = {
        "_id": ObjectId(),
        "fecha": datetime(2024, 6, 10, 9, 0),
        "categoria": "convivencia",
        "gravedad": "tipo2",
        "estado": "abierto",
        "descripcion": "Discusion en clase",
        "acciones": "",
    }
    record.update(overrides)
    return record


def test_same_day_different_time_and_casing_is_duplicate():
    existing = [attendance()]
    candidate = attendance(_id=ObjectId(), fecha="2024-06-10T15:45:00", tipo="RETARDO", observacion="  llego   TARDE ")
    assert is_duplicate_attendance(existing, candidate)


def test_other_day_or_field_is_not_duplicate():
    existing = [attendance()]
    assert not is_duplicate_attendance(existing, attendance(fecha=datetime(2024, 6, 11, 7, 0)))
    assert not is_duplicate_attendance(existing, attendance(tipo="falta"))
    assert not is_duplicate_attendance(existing, attendance(hora="07:25"))


def test_edit_excludes_itself():
    original = attendance()
    assert is_duplicate_attendance([original], original)
    assert not is_duplicate_attendance([original], original, exclude_id=original["_id"])
    assert not is_duplicate_attendance([original], original, exclude_id=str(original["_id"]))


def test_edit_still_collides_with_sibling():
    original = attendance()
    sibling = attendance(_id=ObjectId())
    assert is_duplicate_attendance([original, sibling], original, exclude_id=original["_id"])


def test_empty_collections():
    assert not is_duplicate_attendance([], attendance())
    assert not is_duplicate_attendance(None, attendance())
    assert not is_duplicate_conduct(None, report())


def test_conduct_legacy_severity_matches_tier():
    existing = [report(gravedad="media")]
    assert is_duplicate_conduct(existing, report(gravedad="tipo2", descripcion="discusion  en CLASE"))


def test_conduct_differs_on_state_or_actions():
    existing = [report()]
    assert not is_duplicate_conduct(existing, report(estado="cerrado"))
    assert not is_duplicate_conduct(existing, report(acciones="Citacion a acudiente"))
    assert not is_duplicate_conduct(existing, report(gravedad="alta"))
