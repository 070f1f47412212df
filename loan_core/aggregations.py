from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from loan_core.data import APPROVED, UNKNOWN, resolve_field, to_native

CentralStat = Literal["median", "mean"]


@dataclass(frozen=True)
class KPISummary:
    total: int
    approval_rate_pct: float
    mean_risk_score: float
    debt_to_requested_ratio_pct: float


@dataclass(frozen=True)
class CategoryRollup:
    key: Any
    count: int
    rate_pct: float
    central_value: float


@dataclass(frozen=True)
class QuantileStats:
    key: Any
    count: int
    min: float
    q1: float
    median: float
    q3: float
    max: float


@dataclass(frozen=True)
class RateCurvePoint:
    bucket_key: Any
    count: int
    rate_pct: float


@dataclass(frozen=True)
class HistogramBin:
    x0: float
    x1: float
    counts_by_split: Dict[str, int] = field(default_factory=dict)


def _pct(numerator: float, denominator: float) -> float:
    return float(numerator) / float(denominator) * 100.0 if denominator else 0.0


def compute_kpi_summary(view: pd.DataFrame) -> KPISummary:
    total = int(len(view))
    if total == 0:
        return KPISummary(total=0, approval_rate_pct=0.0, mean_risk_score=0.0, debt_to_requested_ratio_pct=0.0)
    approved = int(view["decision"].eq(APPROVED).sum())
    return KPISummary(
        total=total,
        approval_rate_pct=_pct(approved, total),
        mean_risk_score=float(view["risk_score"].mean()),
        debt_to_requested_ratio_pct=_pct(view["total_debt"].sum(), view["requested_amount"].sum()),
    )


def _decision_counts(view: pd.DataFrame, group_col: str, positive_decision: str) -> pd.DataFrame:
    hits = view["decision"].eq(str(positive_decision).strip().upper())
    return (
        view.assign(_hit=hits)
        .groupby(group_col)["_hit"]
        .agg(members="size", hits="sum")
        .reset_index()
        .rename(columns={group_col: "key"})
    )


def compute_category_rollup(
    view: pd.DataFrame,
    group_field: str,
    positive_decision: str,
    central_field: str,
    central_stat: CentralStat = "median",
    min_samples: int = 0,
    exclude_unknown: bool = False,
    top_k: Optional[int] = None,
) -> List[CategoryRollup]:
    """Per-group decision rate plus a central value of another field.

    Groups of ``min_samples`` members or fewer are dropped. When ``top_k`` is
    given and more groups survive, the ``top_k`` largest are kept; the result
    is ordered by central value, then key.
    """
    if central_stat not in ("median", "mean"):
        raise ValueError(f"central_stat must be 'median' or 'mean', got {central_stat!r}")
    group_col = resolve_field(group_field)
    central_col = resolve_field(central_field)
    if view.empty:
        return []

    counts = _decision_counts(view, group_col, positive_decision)
    central = view.groupby(group_col)[central_col].agg(central_stat).rename("central_value")
    grouped = counts.merge(central, left_on="key", right_index=True, how="left")

    grouped = grouped[grouped["members"] > int(min_samples)]
    if exclude_unknown:
        grouped = grouped[grouped["key"] != UNKNOWN]
    if top_k is not None and len(grouped) > int(top_k):
        grouped = grouped.sort_values(["members", "key"], ascending=[False, True]).head(int(top_k))
    grouped = grouped.sort_values(["central_value", "key"], ascending=[True, True])

    return [
        CategoryRollup(
            key=to_native(r.key),
            count=int(r.members),
            rate_pct=_pct(r.hits, r.members),
            central_value=float(r.central_value),
        )
        for r in grouped.itertuples(index=False)
    ]


def compute_quantile_stats(
    view: pd.DataFrame,
    group_field: str,
    value_field: str,
    min_samples: int = 0,
) -> List[QuantileStats]:
    group_col = resolve_field(group_field)
    value_col = resolve_field(value_field)
    out: List[QuantileStats] = []
    if view.empty:
        return out
    for key, values in view.groupby(group_col)[value_col]:
        if len(values) <= int(min_samples):
            continue
        ordered = values.sort_values()
        # pandas' default "linear" interpolation is the R-7 quantile.
        q1, median, q3 = ordered.quantile([0.25, 0.5, 0.75]).tolist()
        out.append(
            QuantileStats(
                key=to_native(key),
                count=int(len(ordered)),
                min=float(ordered.iloc[0]),
                q1=float(q1),
                median=float(median),
                q3=float(q3),
                max=float(ordered.iloc[-1]),
            )
        )
    return out


def compute_rate_curve(
    view: pd.DataFrame,
    bucket_field: str,
    positive_decision: str,
    min_samples: int = 0,
) -> List[RateCurvePoint]:
    bucket_col = resolve_field(bucket_field)
    if view.empty:
        return []
    counts = _decision_counts(view, bucket_col, positive_decision)
    counts = counts[counts["members"] > int(min_samples)].sort_values("key")
    return [
        RateCurvePoint(bucket_key=to_native(r.key), count=int(r.members), rate_pct=_pct(r.hits, r.members))
        for r in counts.itertuples(index=False)
    ]


def histogram_domain(
    records: pd.DataFrame,
    value_field: str,
    cap: Optional[float] = None,
    floor: float = 0.0,
) -> Tuple[float, float]:
    """Domain of ``value_field`` over the full record set, optionally capped."""
    value_col = resolve_field(value_field)
    if records.empty:
        return float(floor), float(floor)
    top = float(records[value_col].max())
    if cap is not None:
        top = min(top, float(cap))
    return float(floor), top


def compute_histogram(
    view: pd.DataFrame,
    value_field: str,
    domain: Sequence[float],
    bin_count: int,
    split_field: str,
    split_values: Sequence[str],
) -> List[HistogramBin]:
    """Stacked fixed-width histogram.

    Values outside ``domain`` are left out of every bin; the upper domain edge
    falls in the last bin. Records whose split value is not listed in
    ``split_values`` are not counted. A domain with ``max <= min`` yields a
    single bin.
    """
    value_col = resolve_field(value_field)
    split_col = resolve_field(split_field)
    lo, hi = float(domain[0]), float(domain[1])
    split_values = [str(s) for s in split_values]

    values = view[value_col].to_numpy(dtype=float) if not view.empty else np.array([], dtype=float)
    splits = view[split_col].astype(str).to_numpy() if not view.empty else np.array([], dtype=str)
    in_domain = (values >= lo) & (values <= hi)

    if hi <= lo:
        edges = [(lo, hi)]
        idx = np.zeros(len(values), dtype=int)
    else:
        n_bins = max(1, int(bin_count))
        bounds = np.linspace(lo, hi, n_bins + 1)
        edges = list(zip(bounds[:-1], bounds[1:]))
        idx = np.zeros(len(values), dtype=int)
        # A value on an inner edge belongs to the bin that edge opens.
        idx[in_domain] = np.minimum(np.searchsorted(bounds, values[in_domain], side="right") - 1, n_bins - 1)

    counts = {
        sv: np.bincount(idx[in_domain & (splits == sv)], minlength=len(edges))
        for sv in split_values
    }
    return [
        HistogramBin(x0=float(x0), x1=float(x1), counts_by_split={sv: int(counts[sv][i]) for sv in split_values})
        for i, (x0, x1) in enumerate(edges)
    ]
