"""
Validated writes for the attendance history and conduct reports of a student.

Handlers build a candidate with ``build_attendance``/``build_report`` and
then apply it to the student's current collection with ``add_record``,
``replace_record`` or ``remove_record``. Each of these returns the new
collection; persisting it is left to the caller.
"""

from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId

from errors import ConflictError, NotFoundError, ValidationError
from normalize import (
    normalize_attendance_type,
    normalize_category,
    normalize_severity,
    normalize_state,
    parse_date,
    record_id,
    utcnow,
)


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def build_attendance(data: Dict[str, Any], registrado_por: str, oid: Optional[ObjectId] = None) -> dict:
    fecha = parse_date(data.get("fecha"))
    if fecha is None:
        raise ValidationError("Fecha de asistencia invalida")
    tipo = normalize_attendance_type(data.get("tipo"))
    if not tipo:
        raise ValidationError("Tipo de asistencia invalido")
    return {
        "_id": oid or ObjectId(),
        "fecha": fecha,
        "tipo": tipo,
        "hora": _clean(data.get("hora")),
        "observacion": _clean(data.get("observacion")),
        "fotoUrl": data.get("fotoUrl") or None,
        "registradoPor": registrado_por or "",
    }


def build_report(data: Dict[str, Any], registrado_por: str, oid: Optional[ObjectId] = None) -> dict:
    raw_fecha = data.get("fecha")
    if raw_fecha in (None, ""):
        fecha = utcnow()
    else:
        fecha = parse_date(raw_fecha)
        if fecha is None:
            raise ValidationError("Fecha de reporte invalida")
    categoria = normalize_category(data.get("categoria"))
    if not categoria:
        raise ValidationError("Categoria de reporte invalida")
    estado = normalize_state(data.get("estado"))
    if not estado:
        raise ValidationError("Estado de reporte invalido")
    descripcion = _clean(data.get("descripcion"))
    if not descripcion:
        raise ValidationError("La descripcion es obligatoria")
    return {
        "_id": oid or ObjectId(),
        "fecha": fecha,
        "categoria": categoria,
        "gravedad": normalize_severity(data.get("gravedad")),
        "estado": estado,
        "descripcion": descripcion,
        "acciones": _clean(data.get("acciones")),
        "registradoPor": registrado_por or "",
    }


def find_record(collection: Optional[List[dict]], rid: str) -> Optional[dict]:
    for item in collection or []:
        if record_id(item) == str(rid):
            return item
    return None


def add_record(collection: Optional[List[dict]], candidate: dict, is_duplicate: Callable[..., bool]) -> List[dict]:
    collection = list(collection or [])
    if is_duplicate(collection, candidate):
        raise ConflictError("Ya existe un registro equivalente para ese dia")
    collection.append(candidate)
    return collection


def replace_record(
    collection: Optional[List[dict]], rid: str, candidate: dict, is_duplicate: Callable[..., bool]
) -> List[dict]:
    collection = list(collection or [])
    if find_record(collection, rid) is None:
        raise NotFoundError("Registro no encontrado")
    if is_duplicate(collection, candidate, exclude_id=rid):
        raise ConflictError("Ya existe un registro equivalente para ese dia")
    return [candidate if record_id(item) == str(rid) else item for item in collection]


def remove_record(collection: Optional[List[dict]], rid: str) -> List[dict]:
    collection = list(collection or [])
    remaining = [item for item in collection if record_id(item) != str(rid)]
    if len(remaining) == len(collection):
        raise NotFoundError("Registro no encontrado")
    return remaining
