from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import pytest

from loan_core.aggregations import KPISummary
from loan_core.config import DashboardConfig, Thresholds
from loan_core.coordinator import (
    FILTERED_COMPONENTS,
    HISTOGRAM_COMPONENTS,
    ViewCoordinator,
    to_payload,
)
from loan_core.errors import LoadError

SMALL_GROUPS = DashboardConfig(
    thresholds=Thresholds(commune_min_samples=0, nationality_min_samples=0, age_min_samples=0),
    histogram_bins=4,
)


def recording_renderers(calls: Dict[str, List[Any]], names: List[str]) -> Dict[str, Any]:
    return {name: (lambda result, name=name: calls.setdefault(name, []).append(result)) for name in names}


def test_load_computes_every_component(raw_rows) -> None:
    calls: Dict[str, List[Any]] = {}
    coord = ViewCoordinator(SMALL_GROUPS, recording_renderers(calls, FILTERED_COMPONENTS + HISTOGRAM_COMPONENTS))

    results = coord.load_records(raw_rows)

    assert set(results) == set(FILTERED_COMPONENTS + HISTOGRAM_COMPONENTS)
    assert {name: len(v) for name, v in calls.items()} == {name: 1 for name in results}
    assert results["kpis"].total == len(raw_rows)
    assert len(results["income_histogram"]) == 4


def test_filter_transition_recomputes_everything_but_histograms(raw_rows) -> None:
    calls: Dict[str, List[Any]] = {}
    coord = ViewCoordinator(SMALL_GROUPS, recording_renderers(calls, FILTERED_COMPONENTS + HISTOGRAM_COMPONENTS))
    coord.load_records(raw_rows)
    histogram = coord.results["income_histogram"]

    results = coord.apply_range_filter("edad", [18, 25])

    assert set(results) == set(FILTERED_COMPONENTS)
    assert results["kpis"].total == 3
    assert [row["age"] for row in results["table"]] == [22, 24, 19]
    assert coord.results["income_histogram"] is histogram
    assert len(calls["income_histogram"]) == 1
    assert len(calls["kpis"]) == 2


def test_clear_filter_restores_full_view(raw_rows) -> None:
    coord = ViewCoordinator(SMALL_GROUPS)
    full = coord.load_records(raw_rows)["kpis"]
    coord.apply_range_filter("score_riesgo", [300, 500])

    cleared = coord.clear_filter()

    assert coord.active_filter is None
    assert cleared["kpis"] == full


def test_brushing_replaces_previous_filter(raw_rows) -> None:
    coord = ViewCoordinator(SMALL_GROUPS)
    coord.load_records(raw_rows)
    coord.apply_range_filter("score_riesgo", [600, 900])
    results = coord.apply_range_filter("edad", [18, 25])

    assert coord.active_filter.field == "age"
    assert results["kpis"].total == 3


def test_missing_renderer_is_logged_and_others_still_render(raw_rows, caplog) -> None:
    calls: Dict[str, List[Any]] = {}
    renderers = recording_renderers(calls, [n for n in FILTERED_COMPONENTS if n != "flow"])
    coord = ViewCoordinator(SMALL_GROUPS, renderers)
    coord.load_records(raw_rows)

    with caplog.at_level(logging.WARNING, logger="loan_core.coordinator"):
        coord.apply_range_filter("edad", [0, 100])

    assert "flow" not in calls
    assert len(calls["table"]) == 2
    assert any("flow" in rec.getMessage() for rec in caplog.records)


def test_failing_renderer_does_not_block_others(raw_rows, caplog) -> None:
    calls: Dict[str, List[Any]] = {}
    renderers = recording_renderers(calls, FILTERED_COMPONENTS)

    def broken(result: Any) -> None:
        raise RuntimeError("svg target detached")

    renderers["commune_rollup"] = broken
    coord = ViewCoordinator(SMALL_GROUPS, renderers)

    with caplog.at_level(logging.ERROR, logger="loan_core.coordinator"):
        coord.load_records(raw_rows)

    assert set(calls) == set(FILTERED_COMPONENTS) - {"commune_rollup"}
    assert any(rec.exc_info for rec in caplog.records)


def test_operations_before_load_raise() -> None:
    coord = ViewCoordinator()
    assert not coord.loaded
    with pytest.raises(RuntimeError):
        coord.apply_range_filter("edad", [18, 25])
    with pytest.raises(RuntimeError):
        coord.current_view()


def test_load_from_file(tmp_path, raw_rows) -> None:
    path = tmp_path / "data.json"
    path.write_text(json.dumps(raw_rows), encoding="utf-8")

    coord = ViewCoordinator(SMALL_GROUPS)
    results = coord.load(path)

    assert coord.loaded
    assert results["kpis"].total == len(raw_rows)


def test_load_error_is_raised_once_and_leaves_coordinator_unloaded(tmp_path) -> None:
    coord = ViewCoordinator()
    with pytest.raises(LoadError):
        coord.load(tmp_path / "nope.json")
    assert not coord.loaded


def test_default_thresholds_suppress_small_groups(raw_rows) -> None:
    coord = ViewCoordinator()
    results = coord.load_records(raw_rows)

    assert results["commune_rollup"] == []
    assert results["age_curve"] == []
    assert len(results["nationality_scores"]) == 3


def test_to_payload_turns_results_into_plain_data(raw_rows) -> None:
    coord = ViewCoordinator(SMALL_GROUPS)
    results = coord.load_records(raw_rows)

    kpis = to_payload(results["kpis"])
    flow = to_payload(results["flow"])
    rollup = to_payload(results["commune_rollup"])

    assert kpis == {
        "total": results["kpis"].total,
        "approval_rate_pct": results["kpis"].approval_rate_pct,
        "mean_risk_score": results["kpis"].mean_risk_score,
        "debt_to_requested_ratio_pct": results["kpis"].debt_to_requested_ratio_pct,
    }
    assert set(flow) == {"nodes", "links"}
    assert all(isinstance(r, dict) for r in rollup)
    assert to_payload(KPISummary) is KPISummary


def test_deferred_render_pushes_each_component_once(raw_rows, caplog) -> None:
    calls: Dict[str, List[Any]] = {}
    coord = ViewCoordinator(SMALL_GROUPS)

    with caplog.at_level(logging.WARNING, logger="loan_core.coordinator"):
        coord.load_records(raw_rows, render=False)
        coord.config = DashboardConfig(thresholds=SMALL_GROUPS.thresholds, histogram_bins=6)
        coord.refresh(include_histograms=True, render=False)

    assert caplog.records == []
    assert len(coord.results["score_histogram"]) == 6

    coord.renderers = recording_renderers(calls, FILTERED_COMPONENTS + HISTOGRAM_COMPONENTS)
    coord.render(coord.results)

    assert {name: len(v) for name, v in calls.items()} == {
        name: 1 for name in FILTERED_COMPONENTS + HISTOGRAM_COMPONENTS
    }
