from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main

NOW = datetime(2024, 6, 15, 12, 0)


def days_ago(n, hour=8):
    return (NOW - timedelta(days=n)).replace(hour=hour, minute=0)


def token_headers(**claims):
    base = {"sub": "tester", "id": "u1", "nombre": "Tester", "rol": "profesor", "gradoAsignado": "", "grupoAsignado": ""}
    base.update(claims)
    return {"Authorization": f"Bearer {main.create_access_token(base)}"}


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(main.app)


@pytest.fixture
def admin_headers():
    return token_headers(sub="admin", nombre="Administrador", rol="admin")


@pytest.fixture
def teacher_headers():
    return token_headers(sub="profe", nombre="Profe Ana", gradoAsignado="8", grupoAsignado="A")


@pytest.fixture
def make_student(db):
    def _make(identificacion="1001", nombre="Laura Gomez", grado="8", grupo="A", historial=None, reportes=None):
        doc = {
            "nombre": nombre,
            "identificacion": identificacion,
            "grado": grado,
            "grupo": grupo,
            "historial": historial or [],
            "reportesConvivencia": reportes or [],
            "version": 0,
        }
        return str(db["estudiante"].insert_one(doc).inserted_id)
    return _make
