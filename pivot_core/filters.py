from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, get_args

from pivot_core.aggregation import AGGREGATION_FUNCTIONS, Measure
from pivot_core.conversions import CONVERSION_DIMENSIONS, TARGET_UNITS, ConversionRule, rules_by_field

logger = logging.getLogger(__name__)

DateFilterKind = Literal["all", "date", "week", "month", "year", "relative"]
DATE_FILTER_KINDS: tuple = get_args(DateFilterKind)
RELATIVE_PERIODS = ("last7days", "thisMonth", "thisYear")

_KIND_ALIASES = {"exact-date": "date", "exact_date": "date"}


@dataclass(frozen=True)
class DateFilterConfig:
    kind: DateFilterKind = "all"
    value: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.kind != "all" and bool(self.value)


@dataclass(frozen=True)
class FieldFilterConfig:
    """Allowed values for one field. An empty allow-list constrains nothing."""

    field: str
    allowed_values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PivotConfig:
    row_fields: List[str] = field(default_factory=list)
    column_fields: List[str] = field(default_factory=list)
    measures: List[Measure] = field(default_factory=list)
    conversions: List[ConversionRule] = field(default_factory=list)
    date_filter: DateFilterConfig = field(default_factory=DateFilterConfig)
    field_filters: List[FieldFilterConfig] = field(default_factory=list)

    @property
    def has_active_filters(self) -> bool:
        return self.date_filter.is_active or any(f.allowed_values for f in self.field_filters)


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    out: List[str] = []
    for v in values:
        if v is None:
            continue
        s = str(v).strip()
        if s and s not in out:
            out.append(s)
    return out


def _as_value_tuple(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    # kept verbatim: "" selects blank cells and padding is part of the value
    out: List[str] = []
    for v in values or []:
        if v is None:
            continue
        s = str(v)
        if s not in out:
            out.append(s)
    return tuple(out)


def _date_value_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    return s or None


def normalize_date_filter(raw: object) -> DateFilterConfig:
    if isinstance(raw, DateFilterConfig):
        return raw
    if not isinstance(raw, dict):
        return DateFilterConfig()
    kind = str(raw.get("kind") or raw.get("type") or "all").strip()
    kind = _KIND_ALIASES.get(kind, kind)
    if kind not in DATE_FILTER_KINDS:
        logger.warning("Unknown date filter kind %r; showing all rows", kind)
        return DateFilterConfig()
    if kind == "all":
        return DateFilterConfig()
    return DateFilterConfig(kind=kind, value=_date_value_text(raw.get("value")))  # type: ignore[arg-type]


def normalize_field_filters(raw: Optional[Iterable[object]]) -> List[FieldFilterConfig]:
    out: List[FieldFilterConfig] = []
    seen = set()
    for item in raw or []:
        if isinstance(item, FieldFilterConfig):
            entry = item
        elif isinstance(item, dict) and item.get("field"):
            allowed = item.get("allowed_values", item.get("values"))
            entry = FieldFilterConfig(field=str(item["field"]), allowed_values=_as_value_tuple(allowed))
        else:
            continue
        if entry.field in seen:
            continue
        seen.add(entry.field)
        out.append(entry)
    return out


def normalize_measures(raw: Optional[Iterable[object]]) -> List[Measure]:
    out: List[Measure] = []
    keys = set()
    for item in raw or []:
        if isinstance(item, Measure):
            measure = item
        elif isinstance(item, dict):
            source = item.get("source_field") or item.get("field")
            aggregation = str(item.get("aggregation") or "sum")
            if not source or aggregation not in AGGREGATION_FUNCTIONS:
                logger.warning("Dropping invalid measure %r", item)
                continue
            measure = Measure(source_field=str(source), aggregation=aggregation, label=item.get("label") or None)  # type: ignore[arg-type]
        else:
            continue
        # one output column per key; later duplicates would overwrite cells
        if measure.key in keys:
            continue
        keys.add(measure.key)
        out.append(measure)
    return out


def normalize_conversions(raw: Optional[Iterable[object]]) -> List[ConversionRule]:
    rules: List[ConversionRule] = []
    for item in raw or []:
        if isinstance(item, ConversionRule):
            rules.append(item)
            continue
        if not isinstance(item, dict) or not item.get("field"):
            continue
        dimension = item.get("dimension") or item.get("type")
        target_unit = item.get("target_unit") or item.get("targetUnit")
        if dimension not in CONVERSION_DIMENSIONS or target_unit not in TARGET_UNITS:
            logger.warning("Dropping invalid conversion rule %r", item)
            continue
        rules.append(ConversionRule(field=str(item["field"]), dimension=dimension, target_unit=target_unit))
    return list(rules_by_field(rules).values())


def normalize_config(raw: dict | PivotConfig | None) -> PivotConfig:
    if isinstance(raw, PivotConfig):
        return raw
    raw = raw or {}
    return PivotConfig(
        row_fields=_as_str_list(raw.get("row_fields")),
        column_fields=_as_str_list(raw.get("column_fields")),
        measures=normalize_measures(raw.get("measures")),
        conversions=normalize_conversions(raw.get("conversions")),
        date_filter=normalize_date_filter(raw.get("date_filter")),
        field_filters=normalize_field_filters(raw.get("field_filters")),
    )


def config_to_dict(config: PivotConfig) -> Dict[str, Any]:
    return {
        "row_fields": list(config.row_fields),
        "column_fields": list(config.column_fields),
        "measures": [
            {"source_field": m.source_field, "aggregation": m.aggregation, "label": m.label} for m in config.measures
        ],
        "conversions": [
            {"field": c.field, "dimension": c.dimension, "target_unit": c.target_unit} for c in config.conversions
        ],
        "date_filter": {"kind": config.date_filter.kind, "value": config.date_filter.value},
        "field_filters": [
            {"field": f.field, "allowed_values": list(f.allowed_values)} for f in config.field_filters
        ],
    }


def describe_date_filter(date_filter: DateFilterConfig) -> str:
    labels = {
        "all": "All Data",
        "date": "Date",
        "week": "Week",
        "month": "Month",
        "year": "Year",
        "relative": "Relative",
    }
    label = labels.get(date_filter.kind, date_filter.kind)
    if date_filter.kind == "all" or not date_filter.value:
        return label
    return f"{label}: {date_filter.value}"
