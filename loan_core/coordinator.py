from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import pandas as pd

from loan_core.aggregations import (
    compute_category_rollup,
    compute_histogram,
    compute_kpi_summary,
    compute_quantile_stats,
    compute_rate_curve,
    histogram_domain,
)
from loan_core.config import DashboardConfig
from loan_core.data import APPROVED, REJECTED, load_dataset, normalize, table_rows
from loan_core.filters import FilterState, RangeFilter
from loan_core.flow import build_flow_graph

logger = logging.getLogger(__name__)

Renderer = Callable[[Any], None]

FILTERED_COMPONENTS = [
    "kpis",
    "commune_rollup",
    "nationality_rollup",
    "nationality_scores",
    "age_curve",
    "flow",
    "table",
]
HISTOGRAM_COMPONENTS = ["income_histogram", "requested_histogram", "score_histogram"]


def to_payload(result: Any) -> Any:
    """Plain dict/list form of a result, for renderers that want JSON-ready data."""
    if is_dataclass(result) and not isinstance(result, type):
        return asdict(result)
    if isinstance(result, (list, tuple)):
        return [to_payload(r) for r in result]
    return result


def compute_filtered(view: pd.DataFrame, config: DashboardConfig) -> Dict[str, Any]:
    t = config.thresholds
    return {
        "kpis": compute_kpi_summary(view),
        "commune_rollup": compute_category_rollup(
            view,
            "comuna",
            REJECTED,
            "ingresos_mensuales",
            central_stat="median",
            min_samples=t.commune_min_samples,
            exclude_unknown=True,
            top_k=config.commune_top_k,
        ),
        "nationality_rollup": compute_category_rollup(
            view,
            "nacionalidad",
            APPROVED,
            "score_riesgo",
            central_stat="mean",
            min_samples=t.nationality_min_samples,
            exclude_unknown=False,
        ),
        "nationality_scores": compute_quantile_stats(view, "nacionalidad", "score_riesgo"),
        "age_curve": compute_rate_curve(view, "edad", REJECTED, min_samples=t.age_min_samples),
        "flow": build_flow_graph(view, config.flow_stages),
        "table": table_rows(view, limit=config.table_limit),
    }


def compute_histograms(records: pd.DataFrame, config: DashboardConfig) -> Dict[str, Any]:
    bins = config.histogram_bins
    splits = config.split_values
    income_domain = histogram_domain(records, "ingresos_mensuales", cap=config.income_domain_cap)
    requested_domain = histogram_domain(records, "monto_solicitado", cap=config.requested_domain_cap)
    return {
        "income_histogram": compute_histogram(
            records, "ingresos_mensuales", income_domain, bins, "decision_legacy", splits
        ),
        "requested_histogram": compute_histogram(
            records, "monto_solicitado", requested_domain, bins, "decision_legacy", splits
        ),
        "score_histogram": compute_histogram(
            records, "score_riesgo", config.risk_score_domain, bins, "decision_legacy", splits
        ),
    }


class ViewCoordinator:
    """Owns the loaded records and the filter state, and pushes recomputed
    results to the registered renderers.

    Histograms are computed on load only. Brushing one of them must not
    reshape it under the user's cursor, so filter transitions leave them as
    they are.
    """

    def __init__(
        self,
        config: Optional[DashboardConfig] = None,
        renderers: Optional[Mapping[str, Renderer]] = None,
    ) -> None:
        self.config = config or DashboardConfig()
        self.renderers: Dict[str, Renderer] = dict(renderers or {})
        self._state: Optional[FilterState] = None
        self.results: Dict[str, Any] = {}

    @property
    def loaded(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> FilterState:
        if self._state is None:
            raise RuntimeError("Dataset not loaded; call load() first")
        return self._state

    @property
    def active_filter(self) -> Optional[RangeFilter]:
        return self.state.active

    def load(self, path: str | Path, render: bool = True) -> Dict[str, Any]:
        return self._start(load_dataset(path), render)

    def load_records(self, raw_rows: Any, render: bool = True) -> Dict[str, Any]:
        return self._start(normalize(raw_rows), render)

    def _start(self, records: pd.DataFrame, render: bool) -> Dict[str, Any]:
        self._state = FilterState(records)
        return self.refresh(include_histograms=True, render=render)

    def apply_range_filter(self, field: str, value_range: Sequence[object]) -> Dict[str, Any]:
        self.state.apply_range_filter(field, value_range)
        return self.refresh(include_histograms=False)

    def clear_filter(self) -> Dict[str, Any]:
        self.state.clear_filter()
        return self.refresh(include_histograms=False)

    def current_view(self) -> pd.DataFrame:
        return self.state.current_view()

    def refresh(self, include_histograms: bool = False, render: bool = True) -> Dict[str, Any]:
        """Recompute against the current view and store the results.

        With ``render=False`` nothing is pushed; the caller renders later with
        ``render(self.results)`` once its targets exist.
        """
        view = self.state.current_view()
        results = compute_filtered(view, self.config)
        if include_histograms:
            results.update(compute_histograms(self.state.records, self.config))
        self.results.update(results)
        if render:
            self.render(results)
        return results

    def render(self, results: Mapping[str, Any]) -> None:
        for name, result in results.items():
            renderer = self.renderers.get(name)
            if renderer is None:
                logger.warning("No render target for %s; skipping", name)
                continue
            try:
                renderer(result)
            except Exception:
                logger.exception("Rendering %s failed", name)
