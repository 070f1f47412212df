from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import numpy as np
import pandas as pd

from loan_core.errors import LoadError

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
APPROVED = "APROBADO"
REJECTED = "RECHAZADO"

RECORD_COLUMNS = {
    "id_cliente": "client_id",
    "edad": "age",
    "nacionalidad": "nationality",
    "comuna": "commune",
    "tipo_contrato": "contract_type",
    "ingresos_mensuales": "income",
    "score_riesgo": "risk_score",
    "deuda_total": "total_debt",
    "monto_solicitado": "requested_amount",
    "decision_legacy": "decision",
}

NUMERIC_FIELDS = ["income", "risk_score", "total_debt", "age", "requested_amount"]
CATEGORICAL_FIELDS = ["commune", "nationality", "contract_type"]
RECORD_FIELDS = ["id", "client_id"] + NUMERIC_FIELDS + CATEGORICAL_FIELDS + ["decision"]

_NA_TOKENS = {"nan": pd.NA, "None": pd.NA, "null": pd.NA, "<NA>": pd.NA, "": pd.NA}


def resolve_field(name: str) -> str:
    """Map a source column name (``edad``) or canonical name (``age``) to the canonical column."""
    key = str(name).strip()
    if key in RECORD_COLUMNS:
        return RECORD_COLUMNS[key]
    if key in RECORD_FIELDS:
        return key
    raise ValueError(f"Unknown record field: {name!r}")


def to_native(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def _scalar_or_none(value: object) -> object:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float, np.number)):
        return value
    return None


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = 0.0
            continue
        series = pd.to_numeric(df[col].map(_scalar_or_none), errors="coerce").astype(float)
        series = series.replace([np.inf, -np.inf], np.nan).fillna(0.0).clip(lower=0.0)
        df[col] = series
    return df


def coerce_category(df: pd.DataFrame, cols: Iterable[str], *, upper: bool = False) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = UNKNOWN
            continue
        series = df[col].map(lambda v: v if isinstance(v, (str, int, float, np.number)) else None)
        series = series.astype("string").str.strip()
        if upper:
            series = series.str.upper()
        series = series.replace(_NA_TOKENS).fillna(UNKNOWN)
        df[col] = series.astype(str)
    return df


def _as_frame(raw_rows: Any) -> pd.DataFrame:
    if isinstance(raw_rows, pd.DataFrame):
        return raw_rows.reset_index(drop=True).copy()
    if isinstance(raw_rows, (str, bytes, Mapping)) or not isinstance(raw_rows, Sequence):
        raise TypeError(f"Expected a sequence of row mappings, got {type(raw_rows).__name__}")
    rows = list(raw_rows)
    for idx, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise TypeError(f"Row {idx} is {type(row).__name__}, expected a mapping")
    return pd.DataFrame.from_records(rows) if rows else pd.DataFrame()


def normalize(raw_rows: Any) -> pd.DataFrame:
    """Coerce raw rows into the canonical record frame.

    Field-level problems never raise: unparseable, missing or negative numbers
    become 0 and empty categoricals become ``UNKNOWN``. Only a non-sequence
    input (or a sequence holding non-mapping rows) raises ``TypeError``.
    """
    df = _as_frame(raw_rows)
    df = df.rename(columns=RECORD_COLUMNS)
    df = df.loc[:, ~df.columns.duplicated()]

    df["id"] = np.arange(len(df), dtype=int)
    if "client_id" not in df.columns:
        df["client_id"] = pd.NA
    df = numericize(df, NUMERIC_FIELDS)
    df = coerce_category(df, CATEGORICAL_FIELDS)
    df = coerce_category(df, ["decision"], upper=True)
    return df[RECORD_FIELDS].reset_index(drop=True)


def file_signature(path: Path) -> Tuple[str, float]:
    return str(path.resolve()), path.stat().st_mtime


def _read_raw(path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix == ".json":
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)
    if suffix == ".csv":
        return pd.read_csv(path, dtype=object, keep_default_na=False)
    raise LoadError(f"Unsupported dataset format: {path.name}")


@lru_cache(maxsize=4)
def _load_dataset_cached(signature: Tuple[str, float]) -> pd.DataFrame:
    path = Path(signature[0])
    try:
        raw = _read_raw(path)
    except LoadError:
        raise
    except (OSError, ValueError) as exc:
        raise LoadError(f"Could not read dataset {path.name}: {exc}") from exc
    try:
        records = normalize(raw)
    except TypeError as exc:
        raise LoadError(f"Dataset {path.name} is not a list of records: {exc}") from exc
    logger.info("Loaded %d records from %s", len(records), path.name)
    return records


def load_dataset(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Dataset not found: {path}")
    return _load_dataset_cached(file_signature(path)).copy()


def table_rows(view: pd.DataFrame, limit: int = 50) -> List[Dict[str, Any]]:
    if view.empty:
        return []
    rows = view.sort_values("id").head(max(0, int(limit)))
    rows = rows.astype(object).where(rows.notna(), None)
    return rows.to_dict(orient="records")
