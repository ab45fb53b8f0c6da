"""
Student roster import from CSV text.

The first row holds the headers. ``identificacion``, ``nombre``, ``grado``
and ``grupo`` are required; guardian data uses ``padre_*``, ``madre_*`` and
``tutor_*`` columns.
"""

import csv
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from normalize import normalize_grade, normalize_group, utcnow

REQUIRED_HEADERS = ["identificacion", "nombre", "grado", "grupo"]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DMY_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def parse_csv(content: str) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Return (headers, rows); each row is {"row": {...}, "lineNumber": n} with the header on line 1."""
    lines = [line for line in content.replace("\r", "").split("\n") if line.strip()]
    if not lines:
        return [], []

    reader = csv.reader(lines, skipinitialspace=True)
    headers = [h.replace("\ufeff", "").strip() for h in next(reader)]
    rows = []
    for index, values in enumerate(reader):
        values = [v.strip() for v in values]
        row = {h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)}
        rows.append({"row": row, "lineNumber": index + 2})
    return headers, rows


def _value(row: Dict[str, Any], key: str) -> str:
    return (row.get(key) or "").strip()


def parse_optional_date(raw: str) -> Optional[datetime]:
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        if _ISO_DATE_RE.match(raw):
            return datetime.strptime(raw, "%Y-%m-%d")
        if _DMY_DATE_RE.match(raw):
            return datetime.strptime(raw, "%d/%m/%Y")
    except ValueError:
        pass
    raise ValueError(f'Fecha invalida: "{raw}". Usa YYYY-MM-DD o DD/MM/YYYY.')


def _contact(row: Dict[str, Any], prefix: str, extra: str) -> Dict[str, str]:
    return {
        "nombre": _value(row, f"{prefix}_nombre"),
        "telefono": _value(row, f"{prefix}_telefono"),
        "email": _value(row, f"{prefix}_email"),
        extra: _value(row, f"{prefix}_{extra}"),
    }


def build_student_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    identificacion = _value(row, "identificacion")
    nombre = _value(row, "nombre")
    grado = normalize_grade(row.get("grado"))
    grupo = normalize_group(row.get("grupo"))

    if not identificacion:
        raise ValueError("identificacion es obligatoria.")
    if not nombre:
        raise ValueError("nombre es obligatorio.")
    if not grado:
        raise ValueError("grado es obligatorio.")
    if not grupo:
        raise ValueError("grupo es obligatorio.")

    return {
        "identificacion": identificacion,
        "nombre": nombre,
        "grado": grado,
        "grupo": grupo,
        "fechaNacimiento": parse_optional_date(row.get("fechaNacimiento", "")),
        "direccion": _value(row, "direccion"),
        "telefono": _value(row, "telefono"),
        "email": _value(row, "email"),
        "padre": _contact(row, "padre", "ocupacion"),
        "madre": _contact(row, "madre", "ocupacion"),
        "tutor": _contact(row, "tutor", "parentesco"),
    }


def missing_headers(headers: List[str]) -> List[str]:
    return [h for h in REQUIRED_HEADERS if h not in headers]


def import_rows(collection, rows: List[Dict[str, Any]], dry_run: bool = False) -> Dict[str, Any]:
    """
    Upsert parsed rows into the student collection by ``identificacion``.

    Bad rows are counted and described per line instead of aborting the
    import. New students start with empty histories.
    """
    created = updated = failed = 0
    errors: List[str] = []
    for item in rows:
        try:
            data = build_student_from_row(item["row"])
        except ValueError as e:
            failed += 1
            errors.append(f"Linea {item['lineNumber']}: {e}")
            continue
        now = utcnow()
        existing = collection.find_one({"identificacion": data["identificacion"]}, {"_id": 1})
        try:
            if existing:
                if not dry_run:
                    collection.update_one({"_id": existing["_id"]}, {"$set": {**data, "updatedAt": now}})
                updated += 1
            else:
                if not dry_run:
                    collection.insert_one({
                        **data, "historial": [], "reportesConvivencia": [], "version": 0,
                        "createdAt": now, "updatedAt": now,
                    })
                created += 1
        except DuplicateKeyError:
            failed += 1
            errors.append(f"Linea {item['lineNumber']}: identificacion {data['identificacion']} ya existe.")
    return {
        "totalFilas": len(rows),
        "creados": created,
        "actualizados": updated,
        "errores": failed,
        "detalleErrores": errors,
    }
