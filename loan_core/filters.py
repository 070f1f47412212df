from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import pandas as pd

from loan_core.data import NUMERIC_FIELDS, resolve_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeFilter:
    field: str
    lo: float
    hi: float

    def mask(self, records: pd.DataFrame) -> pd.Series:
        return records[self.field].between(self.lo, self.hi, inclusive="both")


def normalize_range(value_range: Sequence[object]) -> Tuple[float, float]:
    try:
        lo, hi = (float(value_range[0]), float(value_range[1]))  # type: ignore[arg-type]
    except Exception as exc:
        raise ValueError(f"Range must be a pair of numbers, got {value_range!r}") from exc
    if not (math.isfinite(lo) and math.isfinite(hi)):
        raise ValueError(f"Range bounds must be finite, got {value_range!r}")
    # A brush dragged right-to-left reports its edges reversed.
    if lo > hi:
        lo, hi = hi, lo
    return lo, hi


class FilterState:
    """The single active range predicate over an immutable record frame.

    Only one predicate is held at a time: applying a new range replaces the
    previous one, whatever field it was on.
    """

    def __init__(self, records: pd.DataFrame) -> None:
        self._records = records
        self._active: Optional[RangeFilter] = None

    @property
    def records(self) -> pd.DataFrame:
        return self._records

    @property
    def active(self) -> Optional[RangeFilter]:
        return self._active

    def apply_range_filter(self, field: str, value_range: Sequence[object]) -> RangeFilter:
        col = resolve_field(field)
        if col not in NUMERIC_FIELDS:
            raise ValueError(f"Range filters apply to numeric fields only, got {field!r}")
        lo, hi = normalize_range(value_range)
        self._active = RangeFilter(field=col, lo=lo, hi=hi)
        logger.debug("Filter set to %s in [%s, %s]", self._active.field, lo, hi)
        return self._active

    def clear_filter(self) -> None:
        self._active = None
        logger.debug("Filter cleared")

    def current_view(self) -> pd.DataFrame:
        if self._active is None:
            return self._records.copy()
        return self._records[self._active.mask(self._records)].copy()
