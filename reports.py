from typing import Any, Dict, List, Optional

from normalize import date_key, normalize_grade, normalize_group
from summary import count_by_type


def filter_history(history: Optional[List[dict]], fecha_inicio: Any = None, fecha_fin: Any = None) -> List[dict]:
    """
    Keep records whose calendar day lies in [fecha_inicio, fecha_fin].

    The range only applies when both bounds are given and parse; records
    with an unparsable fecha are dropped from a bounded range.
    """
    history = history or []
    inicio, fin = date_key(fecha_inicio), date_key(fecha_fin)
    if not (inicio and fin):
        return list(history)
    return [r for r in history if _day_in_range(date_key(r.get("fecha")), inicio, fin)]


def _day_in_range(day: str, inicio: str, fin: str) -> bool:
    return bool(day) and inicio <= day <= fin


def student_tallies(students: List[dict], fecha_inicio: Any = None, fecha_fin: Any = None) -> List[Dict[str, Any]]:
    rows = []
    for student in students:
        counts = count_by_type(filter_history(student.get("historial"), fecha_inicio, fecha_fin))
        rows.append({
            "id": str(student.get("_id", "")),
            "nombre": student.get("nombre"),
            "grado": student.get("grado"),
            "grupo": student.get("grupo"),
            **counts,
            # incidences only, presences are not counted
            "total": counts["faltas"] + counts["retardos"] + counts["salidas"],
        })
    return rows


def group_rollups(students: List[dict], fecha_inicio: Any = None, fecha_fin: Any = None) -> List[Dict[str, Any]]:
    groups: Dict[tuple, Dict[str, Any]] = {}
    for student in students:
        key = (normalize_grade(student.get("grado")), normalize_group(student.get("grupo")))
        entry = groups.setdefault(key, {
            "grado": key[0],
            "grupo": key[1],
            "totalEstudiantes": 0,
            "totalPresentes": 0,
            "totalFaltas": 0,
            "totalRetardos": 0,
            "totalSalidas": 0,
        })
        entry["totalEstudiantes"] += 1
        counts = count_by_type(filter_history(student.get("historial"), fecha_inicio, fecha_fin))
        entry["totalPresentes"] += counts["presentes"]
        entry["totalFaltas"] += counts["faltas"]
        entry["totalRetardos"] += counts["retardos"]
        entry["totalSalidas"] += counts["salidas"]
    return [groups[k] for k in sorted(groups)]


def global_stats(students: List[dict], fecha_inicio: Any = None, fecha_fin: Any = None) -> Dict[str, int]:
    stats = {
        "totalEstudiantes": len(students),
        "totalPresentes": 0,
        "totalFaltas": 0,
        "totalRetardos": 0,
        "totalSalidas": 0,
        "totalRegistros": 0,
    }
    for student in students:
        history = filter_history(student.get("historial"), fecha_inicio, fecha_fin)
        counts = count_by_type(history)
        stats["totalPresentes"] += counts["presentes"]
        stats["totalFaltas"] += counts["faltas"]
        stats["totalRetardos"] += counts["retardos"]
        stats["totalSalidas"] += counts["salidas"]
        stats["totalRegistros"] += len(history)
    return stats
