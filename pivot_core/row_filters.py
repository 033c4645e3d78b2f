from __future__ import annotations

import logging
import re
from typing import Iterable, List, Mapping, Optional, Sequence, TypeVar

import numpy as np
import pandas as pd

from pivot_core.filters import DateFilterConfig, FieldFilterConfig
from pivot_core.values import FieldValue

logger = logging.getLogger(__name__)

DATE_FIELD = "date"

R = TypeVar("R", bound=Mapping[str, FieldValue])

_WEEK_RE = re.compile(r"^(\d{4})-W?(\d{1,2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")


def parse_row_dates(records: Sequence[Mapping[str, FieldValue]], date_field: str = DATE_FIELD) -> pd.Series:
    """Calendar dates for each record (time-of-day dropped); NaT where unparseable."""
    texts = [
        (r.get(date_field).as_text() if r.get(date_field) is not None else "")  # type: ignore[union-attr]
        for r in records
    ]
    series = pd.Series(texts, dtype="string").str.strip().str.slice(0, 10)
    return pd.to_datetime(series, format="%Y-%m-%d", errors="coerce")


def _between(dates: pd.Series, start: pd.Timestamp, end: pd.Timestamp) -> np.ndarray:
    return ((dates >= start) & (dates <= end)).fillna(False).to_numpy(dtype=bool)


def _exact_date_mask(dates: pd.Series, value: str) -> np.ndarray:
    target = pd.to_datetime(value.strip()[:10], format="%Y-%m-%d", errors="coerce")
    if pd.isna(target):
        return np.zeros(len(dates), dtype=bool)
    return (dates == target).fillna(False).to_numpy(dtype=bool)


def _week_mask(dates: pd.Series, value: str) -> np.ndarray:
    match = _WEEK_RE.match(value.strip())
    if not match:
        return np.zeros(len(dates), dtype=bool)
    year, week = int(match.group(1)), int(match.group(2))
    iso = dates.dt.isocalendar()
    mask = (iso["year"] == year) & (iso["week"] == week)
    return mask.fillna(False).to_numpy(dtype=bool)


def _month_mask(dates: pd.Series, value: str) -> np.ndarray:
    match = _MONTH_RE.match(value.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        return np.zeros(len(dates), dtype=bool)
    try:
        start = pd.Timestamp(year=int(match.group(1)), month=int(match.group(2)), day=1)
        end = start + pd.offsets.MonthEnd(0)
    except (ValueError, pd.errors.OutOfBoundsDatetime):
        return np.zeros(len(dates), dtype=bool)
    return _between(dates, start, end)


def _year_mask(dates: pd.Series, value: str) -> np.ndarray:
    match = _YEAR_RE.match(value.strip())
    if not match:
        return np.zeros(len(dates), dtype=bool)
    year = int(match.group(1))
    try:
        start, end = pd.Timestamp(year=year, month=1, day=1), pd.Timestamp(year=year, month=12, day=31)
    except (ValueError, pd.errors.OutOfBoundsDatetime):
        return np.zeros(len(dates), dtype=bool)
    return _between(dates, start, end)


def _relative_mask(dates: pd.Series, value: str, now: pd.Timestamp) -> np.ndarray:
    today = now.normalize()
    if value == "last7days":
        return _between(dates, today - pd.Timedelta(days=7), today)
    if value == "thisMonth":
        start = today.replace(day=1)
        return _between(dates, start, start + pd.offsets.MonthEnd(0))
    if value == "thisYear":
        return _between(dates, today.replace(month=1, day=1), today.replace(month=12, day=31))
    return np.zeros(len(dates), dtype=bool)


def filter_by_date(records: Sequence[R], config: DateFilterConfig, now: Optional[object] = None) -> List[R]:
    """Keep records whose ``date`` matches the rule, preserving order.

    Malformed filter values match nothing; unparseable row dates never match.
    ``now`` is read at call time for relative rules unless given explicitly.
    """
    if config.kind == "all" or not config.value or not records:
        return list(records)

    dates = parse_row_dates(records)
    value = str(config.value)
    if config.kind == "date":
        mask = _exact_date_mask(dates, value)
    elif config.kind == "week":
        mask = _week_mask(dates, value)
    elif config.kind == "month":
        mask = _month_mask(dates, value)
    elif config.kind == "year":
        mask = _year_mask(dates, value)
    elif config.kind == "relative":
        current = pd.Timestamp(now) if now is not None else pd.Timestamp.now()
        if current.tzinfo is not None:
            current = current.tz_localize(None)
        mask = _relative_mask(dates, value, current)
    else:
        return list(records)

    kept = [r for r, keep in zip(records, mask) if keep]
    logger.debug("date filter %s=%s kept %d of %d rows", config.kind, value, len(kept), len(records))
    return kept


def _field_passes(record: Mapping[str, FieldValue], entry: FieldFilterConfig, allowed: set) -> bool:
    value = record.get(entry.field)
    text = value.as_text() if value is not None else ""
    return text in allowed


def filter_by_fields(records: Sequence[R], configs: Iterable[FieldFilterConfig]) -> List[R]:
    """AND of all field allow-lists. An empty allow-list passes every row."""
    active = [(c, set(c.allowed_values)) for c in configs if c.allowed_values]
    if not active:
        return list(records)
    kept = [r for r in records if all(_field_passes(r, c, allowed) for c, allowed in active)]
    logger.debug("field filters kept %d of %d rows", len(kept), len(records))
    return kept


def apply_filters(
    records: Sequence[R],
    date_filter: DateFilterConfig,
    field_filters: Iterable[FieldFilterConfig],
    now: Optional[object] = None,
) -> List[R]:
    return filter_by_fields(filter_by_date(records, date_filter, now=now), field_filters)


def filtered_count(
    records: Sequence[R],
    date_filter: DateFilterConfig,
    field_filters: Iterable[FieldFilterConfig],
    now: Optional[object] = None,
) -> int:
    return len(apply_filters(records, date_filter, field_filters, now=now))
