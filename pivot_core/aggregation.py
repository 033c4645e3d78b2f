from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional, get_args

from pivot_core.values import FieldValue, Number

AggregationFunction = Literal["sum", "count", "avg", "min", "max"]
AGGREGATION_FUNCTIONS: tuple = get_args(AggregationFunction)


@dataclass(frozen=True)
class Measure:
    """A (source field, aggregation) pair; one output number per cell."""

    source_field: str
    aggregation: AggregationFunction = "sum"
    label: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.source_field}_{self.aggregation}"

    @property
    def display_label(self) -> str:
        return self.label or f"{self.source_field} ({self.aggregation})"


def _numeric_only(values: Iterable[object]) -> List[Number]:
    out: List[Number] = []
    for v in values:
        if isinstance(v, FieldValue):
            if v.is_number:
                out.append(v.value)  # type: ignore[arg-type]
        elif isinstance(v, (int, float)) and not isinstance(v, bool) and v == v:
            out.append(v)
    return out


def _running_sum(values: List[Number]) -> Number:
    # Left-to-right accumulation; builtin sum() compensates float error on 3.12+.
    total: Number = 0
    for v in values:
        total = total + v
    return total


def aggregate(values: Iterable[object], function: str) -> Number:
    """Reduce raw cell values to one number.

    Non-numeric entries are discarded, never coerced. An empty numeric
    input yields 0 for every function, min/max/avg included, so a cell
    with no matching rows is still well defined.
    """
    if function not in AGGREGATION_FUNCTIONS:
        raise ValueError(f"Unknown aggregation function: {function!r}")
    nums = _numeric_only(values)
    if not nums:
        return 0
    if function == "sum":
        return _running_sum(nums)
    if function == "count":
        return len(nums)
    if function == "avg":
        return _running_sum(nums) / len(nums)
    if function == "min":
        return min(nums)
    return max(nums)


def sum_of_cell_aggregates(totals: Dict[str, Number], measure_key: str, cell_value: Number) -> None:
    """Add one cell's aggregate into a running total.

    Row, column and grand totals are sums of cell aggregates, not a
    re-aggregation of raw values. For ``avg`` measures the total is the sum
    of per-cell averages.
    """
    totals[measure_key] = totals.get(measure_key, 0) + cell_value
