from __future__ import annotations

from dataclasses import asdict
from typing import Any, List, Sequence

import altair as alt
import pandas as pd

from loan_core.aggregations import CategoryRollup, HistogramBin, QuantileStats, RateCurvePoint
from loan_core.data import APPROVED, REJECTED
from loan_core.flow import FlowGraph

alt.data_transformers.disable_max_rows()

COLORS = {
    APPROVED: "#4682b4",
    REJECTED: "#cd5c5c",
    "neutral": "#95a5a6",
    "income": "#2ecc71",
    "box": "#69b3a2",
}


def _frame(rows: Sequence[Any]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in rows])


def commune_combo_chart(rollups: List[CategoryRollup]) -> alt.LayerChart:
    """Rejection rate bars with the median income line on a second axis."""
    df = _frame(rollups)
    if df.empty:
        df = pd.DataFrame(columns=["key", "count", "rate_pct", "central_value"])
    order = df["key"].astype(str).tolist()
    base = alt.Chart(df).encode(
        x=alt.X("key:N", title="Comuna", sort=order, axis=alt.Axis(labelAngle=-45, grid=False)),
    )
    bars = base.mark_bar(color=COLORS[REJECTED], opacity=0.6).encode(
        y=alt.Y("rate_pct:Q", title="Tasa de Rechazo (%)", scale=alt.Scale(domain=[0, 100])),
        tooltip=[
            alt.Tooltip("key:N", title="Comuna"),
            alt.Tooltip("rate_pct:Q", title="Tasa Rechazo", format=".1f"),
            alt.Tooltip("count:Q", title="Solicitudes", format=","),
        ],
    )
    line = base.mark_line(color=COLORS["income"], strokeWidth=3, point={"filled": True, "size": 60}).encode(
        y=alt.Y("central_value:Q", title="Ingreso Mediana (CLP)", axis=alt.Axis(format="~s", orient="right")),
        tooltip=[
            alt.Tooltip("key:N", title="Comuna"),
            alt.Tooltip("central_value:Q", title="Ingreso Mediana", format="$,.0f"),
        ],
    )
    return alt.layer(bars, line).resolve_scale(y="independent").properties(height=310)


def score_box_plot(stats: List[QuantileStats]) -> alt.LayerChart:
    df = _frame(stats)
    if df.empty:
        df = pd.DataFrame(columns=["key", "count", "min", "q1", "median", "q3", "max"])
    x = alt.X("key:N", title="Nacionalidad", axis=alt.Axis(labelAngle=-45, grid=False))
    y_scale = alt.Scale(domain=[0, 1000])
    whisker = alt.Chart(df).mark_rule(color="black").encode(
        x=x, y=alt.Y("min:Q", title="Score de Riesgo", scale=y_scale), y2="max:Q"
    )
    box = alt.Chart(df).mark_bar(size=30, color=COLORS["box"], opacity=0.7, stroke="black").encode(
        x=x,
        y=alt.Y("q1:Q", scale=y_scale),
        y2="q3:Q",
        tooltip=[
            alt.Tooltip("key:N", title="Nacionalidad"),
            alt.Tooltip("median:Q", title="Mediana"),
            alt.Tooltip("q1:Q", title="Q1"),
            alt.Tooltip("q3:Q", title="Q3"),
        ],
    )
    median = alt.Chart(df).mark_tick(color="black", size=30).encode(x=x, y=alt.Y("median:Q", scale=y_scale))
    return alt.layer(whisker, box, median).properties(height=310)


def age_rate_chart(points: List[RateCurvePoint]) -> alt.Chart:
    df = _frame(points)
    if df.empty:
        df = pd.DataFrame(columns=["bucket_key", "count", "rate_pct"])
    return (
        alt.Chart(df)
        .mark_line(color=COLORS[REJECTED], strokeWidth=2, interpolate="monotone", point={"size": 30})
        .encode(
            x=alt.X("bucket_key:Q", title="Edad", scale=alt.Scale(zero=False)),
            y=alt.Y("rate_pct:Q", title="Tasa de Rechazo (%)", scale=alt.Scale(domain=[0, 100])),
            tooltip=[
                alt.Tooltip("bucket_key:Q", title="Edad"),
                alt.Tooltip("rate_pct:Q", title="Tasa Rechazo", format=".1f"),
            ],
        )
        .properties(height=260)
    )


def histogram_frame(bins: List[HistogramBin]) -> pd.DataFrame:
    rows = [
        {"x0": b.x0, "x1": b.x1, "split": split, "count": count}
        for b in bins
        for split, count in b.counts_by_split.items()
    ]
    return pd.DataFrame(rows, columns=["x0", "x1", "split", "count"])


def stacked_histogram(bins: List[HistogramBin], title: str, *, brush_name: str = "brush") -> alt.Chart:
    """Stacked decision histogram carrying an x-interval brush selection."""
    df = histogram_frame(bins)
    splits = list(dict.fromkeys(df["split"].tolist()))
    brush = alt.selection_interval(encodings=["x"], name=brush_name)
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("x0:Q", title=title, bin="binned", axis=alt.Axis(format="~s")),
            x2="x1:Q",
            y=alt.Y("count:Q", title="Solicitudes", stack="zero"),
            color=alt.Color(
                "split:N",
                title="Decisión",
                sort=splits,
                scale=alt.Scale(domain=splits, range=[COLORS.get(s, COLORS["neutral"]) for s in splits]),
            ),
            tooltip=[
                alt.Tooltip("split:N", title="Decisión"),
                alt.Tooltip("count:Q", format=","),
                alt.Tooltip("x0:Q", format=",.0f"),
                alt.Tooltip("x1:Q", format=",.0f"),
            ],
        )
        .add_params(brush)
        .properties(height=200)
    )


def flow_frame(graph: FlowGraph) -> pd.DataFrame:
    """Links with their endpoint labels, ready for a Sankey-style renderer or a table."""
    labels = {n.id: (n.stage, n.value) for n in graph.nodes}
    rows = [
        {
            "source_stage": labels[link.source_id][0],
            "source": labels[link.source_id][1],
            "target_stage": labels[link.target_id][0],
            "target": labels[link.target_id][1],
            "weight": link.weight,
        }
        for link in graph.links
    ]
    return pd.DataFrame(rows, columns=["source_stage", "source", "target_stage", "target", "weight"])
