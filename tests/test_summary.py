"""Unit tests for the attendance summary."""

from datetime import timedelta

from summary import summarize
from tests.conftest import NOW, days_ago


def test_empty_history():
    result = summarize([], now=NOW)
    assert result["totalRegistros"] == 0
    assert result["ultimoRegistro"] is None
    assert result["ultimos30dias"] == {"total": 0, "presentes": 0, "faltas": 0, "retardos": 0, "salidas": 0}
    assert summarize(None, now=NOW)["totalRegistros"] == 0


def test_counts_and_window():
    history = [
        {"fecha": days_ago(40), "tipo": "falta"},
        {"fecha": days_ago(10), "tipo": "falta"},
        {"fecha": days_ago(10), "tipo": "retardo"},
        {"fecha": days_ago(2), "tipo": "presente"},
        {"fecha": days_ago(31), "tipo": "salida"},
    ]
    result = summarize(history, now=NOW)
    assert result["totalRegistros"] == 5
    assert (result["presentes"], result["faltas"], result["retardos"], result["salidas"]) == (1, 2, 1, 1)
    assert result["ultimos30dias"] == {"total": 3, "presentes": 1, "faltas": 1, "retardos": 1, "salidas": 0}


def test_category_sum_matches_total_and_window_is_subset():
    history = [{"fecha": days_ago(i * 7), "tipo": t} for i, t in enumerate(["presente", "falta", "retardo", "salida"] * 3)]
    result = summarize(history, now=NOW)
    assert result["presentes"] + result["faltas"] + result["retardos"] + result["salidas"] == result["totalRegistros"]
    window = result["ultimos30dias"]
    assert window["total"] <= result["totalRegistros"]
    for key in ("presentes", "faltas", "retardos", "salidas"):
        assert window[key] <= result[key]


def test_cutoff_is_inclusive_and_future_dates_count():
    history = [
        {"fecha": NOW - timedelta(days=30), "tipo": "falta"},
        {"fecha": NOW + timedelta(days=3), "tipo": "falta"},
    ]
    assert summarize(history, now=NOW)["ultimos30dias"]["faltas"] == 2


def test_last_record_does_not_depend_on_input_order():
    newest = {"fecha": days_ago(1), "tipo": "retardo"}
    history = [{"fecha": days_ago(20), "tipo": "falta"}, newest, {"fecha": days_ago(5), "tipo": "presente"}]
    assert summarize(history, now=NOW)["ultimoRegistro"] is newest


def test_unparsable_date_counted_but_outside_window():
    history = [{"fecha": "sin fecha", "tipo": "falta"}, {"fecha": days_ago(1).isoformat(), "tipo": "falta"}]
    result = summarize(history, now=NOW)
    assert result["faltas"] == 2
    assert result["ultimos30dias"]["faltas"] == 1
    assert result["ultimoRegistro"]["fecha"] != "sin fecha"
