import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import altair as alt
import pandas as pd
import streamlit as st

from loan_core import charts
from loan_core.config import DashboardConfig, normalize_config
from loan_core.coordinator import FILTERED_COMPONENTS, HISTOGRAM_COMPONENTS, ViewCoordinator
from loan_core.data import APPROVED, REJECTED, resolve_field
from loan_core.errors import LoadError

DATA_PATH = Path(__file__).resolve().parent / "data.json"

# histogram component -> (filter field, axis title)
BRUSHABLE = {
    "income_histogram": ("ingresos_mensuales", "Ingresos Mensuales (CLP)"),
    "requested_histogram": ("monto_solicitado", "Monto Solicitado (CLP)"),
    "score_histogram": ("score_riesgo", "Score de Riesgo"),
}

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
alt.data_transformers.disable_max_rows()


# ---------- Sidebar settings ----------
def sidebar_config() -> DashboardConfig:
    with st.sidebar:
        st.markdown("### Filtro activo")
        st.caption("Selecciona un rango en un histograma. Un nuevo rango reemplaza al anterior.")
        if st.button("Limpiar filtro"):
            st.session_state["clear_requested"] = True
        st.markdown("---")
        with st.expander("Ajustes avanzados", expanded=False):
            commune_min = st.slider("Mínimo de solicitudes por comuna", 0, 500, 50, 5)
            nationality_min = st.slider("Mínimo de solicitudes por nacionalidad", 0, 200, 10, 1)
            age_min = st.slider("Mínimo de solicitudes por edad", 0, 100, 5, 1)
            top_k = st.slider("Comunas a mostrar", 5, 60, 30, 5)
            bins = st.slider("Barras por histograma", 5, 80, 30, 5)
    return normalize_config(
        {
            "thresholds": {
                "commune_min_samples": commune_min,
                "nationality_min_samples": nationality_min,
                "age_min_samples": age_min,
            },
            "commune_top_k": top_k,
            "histogram_bins": bins,
        }
    )


# Results are computed here and rendered later, once this run's targets exist.
def get_coordinator(config: DashboardConfig) -> ViewCoordinator:
    coord: Optional[ViewCoordinator] = st.session_state.get("coordinator")
    if coord is None:
        coord = ViewCoordinator(config)
        try:
            coord.load(DATA_PATH, render=False)
        except LoadError as exc:
            st.error(f"No se pudo cargar el dataset: {exc}")
            st.stop()
        st.session_state["coordinator"] = coord
    elif coord.config != config:
        coord.config = config
        coord.refresh(include_histograms=True, render=False)
    return coord


def brush_range(event: Any, brush_name: str) -> Optional[Tuple[float, float]]:
    if not event:
        return None
    selection = (event.get("selection") or {}).get(brush_name) or {}
    for value in selection.values():
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return float(value[0]), float(value[1])
    return None


# ---------- Renderers ----------
def make_renderers(slots: Dict[str, Any], events: Dict[str, Any]) -> Dict[str, Any]:
    def render_histogram(name: str, title: str):
        def render(bins) -> None:
            chart = charts.stacked_histogram(bins, title, brush_name=f"{name}_brush")
            events[name] = slots[name].altair_chart(
                chart, use_container_width=True, on_select="rerun", key=f"{name}_chart"
            )

        return render

    def render_kpis(kpis) -> None:
        cols = slots["kpis"].columns(4)
        cols[0].metric("Solicitudes", f"{kpis.total:,}")
        cols[1].metric("Tasa de Aprobación", f"{kpis.approval_rate_pct:.1f}%")
        cols[2].metric("Score de Riesgo Promedio", f"{kpis.mean_risk_score:,.0f}")
        cols[3].metric("Deuda / Monto Solicitado", f"{kpis.debt_to_requested_ratio_pct:.1f}%")

    def render_commune(rollups) -> None:
        slots["commune_rollup"].altair_chart(charts.commune_combo_chart(rollups), use_container_width=True)

    def render_nationality(rollups) -> None:
        df = pd.DataFrame([asdict(r) for r in rollups])
        if df.empty:
            slots["nationality_rollup"].info("Sin nacionalidades con muestra suficiente.")
            return
        df = df.rename(
            columns={
                "key": "Nacionalidad",
                "count": "Solicitudes",
                "rate_pct": "Tasa Aprobación (%)",
                "central_value": "Score Promedio",
            }
        )
        slots["nationality_rollup"].dataframe(df, hide_index=True, use_container_width=True)

    def render_scores(stats) -> None:
        slots["nationality_scores"].altair_chart(charts.score_box_plot(stats), use_container_width=True)

    def render_age(points) -> None:
        slots["age_curve"].altair_chart(charts.age_rate_chart(points), use_container_width=True)

    def render_flow(graph) -> None:
        slots["flow"].dataframe(charts.flow_frame(graph), hide_index=True, use_container_width=True)

    def render_table(rows) -> None:
        slots["table"].dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)

    renderers = {name: render_histogram(name, title) for name, (_, title) in BRUSHABLE.items()}
    renderers.update(
        {
            "kpis": render_kpis,
            "commune_rollup": render_commune,
            "nationality_rollup": render_nationality,
            "nationality_scores": render_scores,
            "age_curve": render_age,
            "flow": render_flow,
            "table": render_table,
        }
    )
    return renderers


# ---------- UI setup ----------
st.set_page_config(page_title="Dashboard de Solicitudes de Crédito", layout="wide")
st.title("Dashboard de Solicitudes de Crédito")
st.caption(f"Aprobadas ({APPROVED}) vs rechazadas ({REJECTED}). Selecciona un rango para filtrar.")

config = sidebar_config()
coord = get_coordinator(config)

slots: Dict[str, Any] = dict(zip(BRUSHABLE, st.columns(len(BRUSHABLE))))
st.markdown("---")
slots["kpis"] = st.container()
left, right = st.columns(2)
with left:
    st.subheader("Tasa de rechazo vs ingreso mediano por comuna")
    slots["commune_rollup"] = st.empty()
    st.subheader("Tasa de rechazo por edad")
    slots["age_curve"] = st.empty()
with right:
    st.subheader("Score de riesgo por nacionalidad")
    slots["nationality_scores"] = st.empty()
    slots["nationality_rollup"] = st.empty()
st.subheader("Flujo nacionalidad → contrato → decisión")
slots["flow"] = st.empty()
st.subheader("Solicitudes (primeras 50)")
slots["table"] = st.empty()

events: Dict[str, Any] = {}
coord.renderers = make_renderers(slots, events)

# Histograms are the brushing controls: drawing them yields this run's brush events.
coord.render({name: coord.results[name] for name in HISTOGRAM_COMPONENTS})
brushed = {name: brush_range(events.get(name), f"{name}_brush") for name in BRUSHABLE}

# A brush that moved since the last run becomes the single active filter.
previous: Dict[str, Optional[Tuple[float, float]]] = st.session_state.get("brushed", {})
changed = [name for name in BRUSHABLE if brushed.get(name) != previous.get(name)]
st.session_state["brushed"] = brushed

if st.session_state.pop("clear_requested", False):
    coord.clear_filter()
elif changed and brushed[changed[-1]] is not None:
    coord.apply_range_filter(BRUSHABLE[changed[-1]][0], brushed[changed[-1]])
elif changed and coord.active_filter is not None and coord.active_filter.field == resolve_field(BRUSHABLE[changed[-1]][0]):
    coord.clear_filter()
else:
    coord.render({name: coord.results[name] for name in FILTERED_COMPONENTS})

active = coord.active_filter
st.sidebar.write(f"{active.field}: {active.lo:,.0f} – {active.hi:,.0f}" if active else "Sin filtro")
