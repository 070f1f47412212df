from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Thresholds:
    commune_min_samples: int = 50
    nationality_min_samples: int = 10
    age_min_samples: int = 5


@dataclass(frozen=True)
class DashboardConfig:
    thresholds: Thresholds = field(default_factory=Thresholds)
    commune_top_k: int = 30
    income_domain_cap: float = 3_000_000.0
    requested_domain_cap: float = 10_000_000.0
    risk_score_domain: Tuple[float, float] = (0.0, 1000.0)
    histogram_bins: int = 30
    table_limit: int = 50
    flow_stages: Tuple[str, ...] = ("nacionalidad", "tipo_contrato", "decision_legacy")
    split_values: Tuple[str, ...] = ("APROBADO", "RECHAZADO")


def _as_int(value: object, default: int, *, lo: int, hi: int) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except Exception:
        out = default
    return max(lo, min(hi, out))


def _as_float(value: object, default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except Exception:
        return default
    return out if out > 0 else default


def _as_str_tuple(values: Optional[object], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not values or isinstance(values, str):
        return default
    out = tuple(str(v).strip() for v in values if v is not None and str(v).strip())  # type: ignore[union-attr]
    return out or default


def normalize_config(raw: Optional[dict] = None) -> DashboardConfig:
    raw = raw or {}
    base = DashboardConfig()

    t = raw.get("thresholds") or {}
    thresholds = Thresholds(
        commune_min_samples=_as_int(t.get("commune_min_samples", 50), 50, lo=0, hi=100_000),
        nationality_min_samples=_as_int(t.get("nationality_min_samples", 10), 10, lo=0, hi=100_000),
        age_min_samples=_as_int(t.get("age_min_samples", 5), 5, lo=0, hi=100_000),
    )

    score_domain = raw.get("risk_score_domain") or base.risk_score_domain
    try:
        lo, hi = (float(score_domain[0]), float(score_domain[1]))
    except Exception:
        lo, hi = base.risk_score_domain

    return DashboardConfig(
        thresholds=thresholds,
        commune_top_k=_as_int(raw.get("commune_top_k", base.commune_top_k), base.commune_top_k, lo=1, hi=500),
        income_domain_cap=_as_float(raw.get("income_domain_cap", base.income_domain_cap), base.income_domain_cap),
        requested_domain_cap=_as_float(
            raw.get("requested_domain_cap", base.requested_domain_cap), base.requested_domain_cap
        ),
        risk_score_domain=(lo, hi),
        histogram_bins=_as_int(raw.get("histogram_bins", base.histogram_bins), base.histogram_bins, lo=1, hi=200),
        table_limit=_as_int(raw.get("table_limit", base.table_limit), base.table_limit, lo=1, hi=500),
        flow_stages=_as_str_tuple(raw.get("flow_stages"), base.flow_stages),
        split_values=_as_str_tuple(raw.get("split_values"), base.split_values),
    )
