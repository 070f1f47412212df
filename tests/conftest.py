from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
import pytest

from loan_core.data import normalize


def make_row(**overrides: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id_cliente": "C-0001",
        "edad": 35,
        "nacionalidad": "Chilena",
        "comuna": "Santiago",
        "tipo_contrato": "Indefinido",
        "ingresos_mensuales": 900_000,
        "score_riesgo": 650,
        "deuda_total": 2_000_000,
        "monto_solicitado": 4_000_000,
        "decision_legacy": "APROBADO",
    }
    row.update(overrides)
    return row


@pytest.fixture
def raw_rows() -> List[Dict[str, Any]]:
    return [
        make_row(id_cliente="C-01", edad=22, score_riesgo=320, nacionalidad="Chilena", comuna="Maipú",
                 tipo_contrato="Plazo Fijo", ingresos_mensuales=450_000, decision_legacy="RECHAZADO"),
        make_row(id_cliente="C-02", edad=24, score_riesgo=410, nacionalidad="Peruana", comuna="Santiago",
                 tipo_contrato="Indefinido", ingresos_mensuales=600_000, decision_legacy="APROBADO"),
        make_row(id_cliente="C-03", edad=31, score_riesgo=720, nacionalidad="Chilena", comuna="Providencia",
                 tipo_contrato="Indefinido", ingresos_mensuales=1_800_000, decision_legacy="APROBADO"),
        make_row(id_cliente="C-04", edad=45, score_riesgo=480, nacionalidad="Venezolana", comuna="Maipú",
                 tipo_contrato="Honorarios", ingresos_mensuales=700_000, decision_legacy="RECHAZADO"),
        make_row(id_cliente="C-05", edad=52, score_riesgo=890, nacionalidad="Chilena", comuna="Las Condes",
                 tipo_contrato="Indefinido", ingresos_mensuales=2_900_000, decision_legacy="APROBADO"),
        make_row(id_cliente="C-06", edad=19, score_riesgo=300, nacionalidad="Peruana", comuna="",
                 tipo_contrato="Plazo Fijo", ingresos_mensuales=380_000, decision_legacy="RECHAZADO"),
        make_row(id_cliente="C-07", edad=38, score_riesgo=560, nacionalidad="Venezolana", comuna="Santiago",
                 tipo_contrato="Honorarios", ingresos_mensuales=950_000, decision_legacy="rechazado"),
        make_row(id_cliente="C-08", edad=27, score_riesgo=610, nacionalidad="Chilena", comuna="Ñuñoa",
                 tipo_contrato="Indefinido", ingresos_mensuales=1_100_000, decision_legacy="APROBADO"),
    ]


@pytest.fixture
def records(raw_rows: List[Dict[str, Any]]) -> pd.DataFrame:
    return normalize(raw_rows)
