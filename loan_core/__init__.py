"""Core (UI-agnostic) loan dashboard logic.

This package contains:
- dataset loading and record normalization (JSON/CSV -> pandas)
- the single-range filter state
- aggregation functions returning frozen result dataclasses
- the flow graph builder
- the view coordinator that reruns aggregations on each filter change
- chart helpers (Altair -> Vega-Lite spec dict)
"""
