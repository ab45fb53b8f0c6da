"""Tests for the backup, restore and CSV import CLI helpers."""

from datetime import datetime

import mongomock
import pytest
from bson import json_util

import database
from backup import create_backup, import_csv_file, list_backups, load_backup, main, restore_backup


def seeded_db():
    db = mongomock.MongoClient().db
    db["estudiante"].insert_many([
        {"identificacion": "1001", "nombre": "Laura", "grado": "8", "grupo": "A",
         "historial": [{"fecha": datetime(2024, 6, 1, 7), "tipo": "falta"}], "reportesConvivencia": []},
        {"identificacion": "1002", "nombre": "Pedro", "grado": "9", "grupo": "B", "historial": [], "reportesConvivencia": []},
    ])
    return db


def test_backup_and_list(tmp_path):
    path = create_backup(seeded_db(), tmp_path)
    assert path is not None and path.exists()
    assert list_backups(tmp_path) == [path.name]
    data = json_util.loads(path.read_text(encoding="utf-8"))
    assert data["totalEstudiantes"] == 2
    assert load_backup(path)[0]["historial"][0]["fecha"].year == 2024


def test_backup_of_empty_collection(tmp_path):
    assert create_backup(mongomock.MongoClient().db, tmp_path) is None
    assert list_backups(tmp_path) == []
    assert list_backups(tmp_path / "missing") == []


def test_restore_into_empty_database(tmp_path):
    path = create_backup(seeded_db(), tmp_path)
    target = mongomock.MongoClient().db
    result = restore_backup(target, path)
    assert result == {"restaurado": True, "creados": 2, "actualizados": 0, "errores": 0}
    assert target["estudiante"].count_documents({}) == 2


def test_restore_refuses_non_empty_without_force(tmp_path):
    source = seeded_db()
    path = create_backup(source, tmp_path)
    source["estudiante"].update_one({"identificacion": "1001"}, {"$set": {"nombre": "Cambiado"}})

    refused = restore_backup(source, path)
    assert refused["restaurado"] is False
    assert source["estudiante"].find_one({"identificacion": "1001"})["nombre"] == "Cambiado"

    dry = restore_backup(source, path, dry_run=True)
    assert dry == {"restaurado": False, "creados": 0, "actualizados": 2, "errores": 0}
    assert source["estudiante"].find_one({"identificacion": "1001"})["nombre"] == "Cambiado"

    forced = restore_backup(source, path, force=True)
    assert forced["actualizados"] == 2
    assert source["estudiante"].find_one({"identificacion": "1001"})["nombre"] == "Laura"


def test_restore_accepts_bare_list(tmp_path):
    path = tmp_path / "backup-estudiantes-legacy.json"
    path.write_text(json_util.dumps([{"identificacion": "7", "nombre": "X"}, {"nombre": "sin id"}]), encoding="utf-8")
    result = restore_backup(mongomock.MongoClient().db, path)
    assert result["creados"] == 1
    assert result["errores"] == 1


def test_restore_normalizes_grade_and_group(tmp_path):
    path = tmp_path / "backup-estudiantes-viejo.json"
    path.write_text(json_util.dumps({"estudiantes": [
        {"identificacion": "55", "nombre": "Lina", "grado": "8°", "grupo": " a ", "historial": []},
    ]}), encoding="utf-8")
    target = mongomock.MongoClient().db
    restore_backup(target, path)
    lina = target["estudiante"].find_one({"identificacion": "55"})
    assert (lina["grado"], lina["grupo"]) == ("8", "A")


ROSTER = "identificacion,nombre,grado,grupo\n1001,Laura Gomez,8°,a\n2001,Sofia,10,c\n2002,,10,c\n"


def test_import_csv_file(tmp_path):
    db = seeded_db()
    path = tmp_path / "roster.csv"
    path.write_text(ROSTER, encoding="utf-8")

    dry = import_csv_file(db, path, dry_run=True)
    assert (dry["creados"], dry["actualizados"], dry["errores"]) == (1, 1, 1)
    assert db["estudiante"].count_documents({}) == 2

    result = import_csv_file(db, path)
    assert result["totalFilas"] == 3
    assert result["detalleErrores"] == ["Linea 4: nombre es obligatorio."]
    assert db["estudiante"].find_one({"identificacion": "1001"})["nombre"] == "Laura Gomez"
    sofia = db["estudiante"].find_one({"identificacion": "2001"})
    assert (sofia["grado"], sofia["grupo"], sofia["version"], sofia["historial"]) == ("10", "C", 0, [])


def test_import_csv_file_rejects_missing_columns(tmp_path):
    path = tmp_path / "roster.csv"
    path.write_text("identificacion,nombre\n1,X\n", encoding="utf-8")
    with pytest.raises(ValueError, match="grado"):
        import_csv_file(mongomock.MongoClient().db, path)


def test_import_command(tmp_path, monkeypatch, capsys):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    path = tmp_path / "roster.csv"
    path.write_text(ROSTER, encoding="utf-8")

    assert main(["import", "--file", str(path), "--dry-run"]) == 0
    assert db["estudiante"].count_documents({}) == 0
    assert '"creados": 2' in capsys.readouterr().out

    assert main(["import", "--file", str(path)]) == 0
    assert db["estudiante"].count_documents({}) == 2
    assert main(["import", "--file", str(tmp_path / "missing.csv")]) == 1
