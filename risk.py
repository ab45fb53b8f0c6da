"""
Conduct report and risk scoring for a single student.

Builds the "relevant observations" feed from conduct reports and from
attendance notes that mention conduct problems, then combines the
trailing-30-day attendance counts and the conduct reports into an
additive risk score, a tier and a list of alerts.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from normalize import normalize_category, normalize_severity, normalize_state, utcnow
from summary import in_window, sort_by_date_desc, window_start

CONDUCT_KEYWORDS = re.compile(
    r"pelea|agres|acoso|bully|insulto|violencia|indisciplina|irrespeto|conflicto|disciplina",
    re.IGNORECASE,
)

MAX_OBSERVATIONS = 15

WEIGHTS = {
    "faltas30": 3,
    "retardos30": 1,
    "salidas30": 2,
    "observaciones": 3,
    "reportesAltos30": 5,
    "reportesAbiertos": 2,
}

HIGH_TIER_SCORE = 25
MEDIUM_TIER_SCORE = 12

HIGH_SEVERITY = "tipo3"
CLOSED_STATE = "cerrado"


def risk_tier(score: int) -> str:
    if score >= HIGH_TIER_SCORE:
        return "alto"
    if score >= MEDIUM_TIER_SCORE:
        return "medio"
    return "bajo"


def flagged_attendance_observations(history: List[dict]) -> List[dict]:
    observations = []
    for record in history:
        text = record.get("observacion") or ""
        if not CONDUCT_KEYWORDS.search(str(text)):
            continue
        observations.append({
            "fecha": record.get("fecha"),
            "tipo": record.get("tipo"),
            "observacion": text,
            "registradoPor": record.get("registradoPor") or "",
            "fuente": "asistencia",
        })
    return observations


def report_observations(reports: List[dict]) -> List[dict]:
    return [
        {
            "fecha": r.get("fecha"),
            "tipo": normalize_category(r.get("categoria")) or r.get("categoria"),
            "observacion": r.get("descripcion"),
            "registradoPor": r.get("registradoPor") or "",
            "gravedad": normalize_severity(r.get("gravedad")),
            "estado": normalize_state(r.get("estado")) or r.get("estado"),
            "fuente": "reporte",
        }
        for r in reports
    ]


def relevant_observations(history: List[dict], reports: List[dict]) -> List[dict]:
    # reports go first so they win same-date ties; the sort is stable
    merged = report_observations(reports) + flagged_attendance_observations(history)
    return sort_by_date_desc(merged)[:MAX_OBSERVATIONS]


def build_alerts(faltas30: int, retardos30: int, salidas30: int, reportes30: int, abiertos: int) -> List[str]:
    alertas = []
    if faltas30 >= 3:
        alertas.append("Acumula 3 o mas faltas en los ultimos 30 dias.")
    if retardos30 >= 5:
        alertas.append("Acumula 5 o mas retardos en los ultimos 30 dias.")
    if salidas30 >= 3:
        alertas.append("Acumula 3 o mas salidas anticipadas o permisos en los ultimos 30 dias.")
    if reportes30 > 0:
        alertas.append(f"Tiene {reportes30} reporte(s) de convivencia en los ultimos 30 dias.")
    if abiertos > 0:
        alertas.append(f"Tiene {abiertos} reporte(s) de convivencia abiertos/en seguimiento.")
    if not alertas:
        alertas.append("Sin alertas relevantes de convivencia.")
    return alertas


def build_conduct_report(
    history: Optional[List[dict]],
    summary: Dict[str, Any],
    reports: Optional[List[dict]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Compose the conduct report for one student.

    ``summary`` is the output of ``summary.summarize`` for the same history.
    The observation term of the score uses the feed after it is capped at
    ``MAX_OBSERVATIONS`` entries, so it saturates at that size.
    """
    history = history or []
    reports = reports or []
    cutoff = window_start(now or utcnow())

    observaciones = relevant_observations(history, reports)

    recent_reports = [r for r in reports if in_window(r.get("fecha"), cutoff)]
    reportes30 = len(recent_reports)
    reportes_altos30 = sum(1 for r in recent_reports if normalize_severity(r.get("gravedad")) == HIGH_SEVERITY)
    reportes_abiertos = sum(1 for r in reports if normalize_state(r.get("estado")) != CLOSED_STATE)

    window = summary.get("ultimos30dias") or {}
    faltas30 = window.get("faltas", 0)
    retardos30 = window.get("retardos", 0)
    salidas30 = window.get("salidas", 0)

    puntaje = (
        WEIGHTS["faltas30"] * faltas30
        + WEIGHTS["retardos30"] * retardos30
        + WEIGHTS["salidas30"] * salidas30
        + WEIGHTS["observaciones"] * len(observaciones)
        + WEIGHTS["reportesAltos30"] * reportes_altos30
        + WEIGHTS["reportesAbiertos"] * reportes_abiertos
    )

    return {
        "nivel": risk_tier(puntaje),
        "puntajeRiesgo": puntaje,
        "alertas": build_alerts(faltas30, retardos30, salidas30, reportes30, reportes_abiertos),
        "observacionesRelevantes": observaciones,
        "totalReportesConvivencia": len(reports),
        "reportesAbiertos": reportes_abiertos,
    }
