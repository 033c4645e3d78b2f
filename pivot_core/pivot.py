"""Pivot matrix engine.

``build_matrix`` groups filtered records by a composite row key and a
composite column key, aggregates each measure per cell, and accumulates
row, column and grand totals in the same pass.

Keys are tuples, never delimiter-joined strings, so a field value that
contains ``|`` cannot merge two groups. The ``|``-joined form is only used
as a display label for column headers and CSV columns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

from pivot_core.aggregation import Measure, aggregate, sum_of_cell_aggregates
from pivot_core.conversions import ConversionRule, apply_conversions
from pivot_core.values import MISSING, FieldValue, Number

logger = logging.getLogger(__name__)

TOTAL_LABEL = "Total"
KEY_SEPARATOR = "|"

RowKey = Tuple[FieldValue, ...]
ColumnKey = Tuple[str, ...]
MeasureValues = Dict[str, Number]
SortDirection = Literal["asc", "desc"]


def column_label(key: ColumnKey) -> str:
    if not key:
        return TOTAL_LABEL
    return KEY_SEPARATOR.join(key)


@dataclass
class PivotRow:
    key: RowKey
    group_key: Dict[str, Any]
    cells: Dict[ColumnKey, MeasureValues] = field(default_factory=dict)
    totals: MeasureValues = field(default_factory=dict)

    def label(self) -> str:
        return " / ".join(v.as_text() for v in self.key)


@dataclass
class PivotMatrix:
    rows: List[PivotRow]
    column_keys: List[ColumnKey]
    column_totals: Dict[ColumnKey, MeasureValues]
    grand_totals: MeasureValues
    measures: List[Measure]
    row_fields: List[str]
    column_fields: List[str]

    @property
    def column_headers(self) -> List[str]:
        return [column_label(k) for k in self.column_keys]

    @property
    def measure_keys(self) -> List[str]:
        return [m.key for m in self.measures]

    def _key_for_label(self, header: str) -> ColumnKey:
        for key in self.column_keys:
            if column_label(key) == header:
                return key
        raise KeyError(header)

    def cell(self, row: PivotRow, header: str, measure_key: str) -> Number:
        return row.cells[self._key_for_label(header)][measure_key]

    def column_total(self, header: str, measure_key: str) -> Number:
        return self.column_totals[self._key_for_label(header)][measure_key]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_fields": list(self.row_fields),
            "column_fields": list(self.column_fields),
            "measures": [
                {
                    "key": m.key,
                    "source_field": m.source_field,
                    "aggregation": m.aggregation,
                    "label": m.display_label,
                }
                for m in self.measures
            ],
            "column_headers": self.column_headers,
            "rows": [
                {
                    "group": dict(r.group_key),
                    "cells": {column_label(k): dict(v) for k, v in r.cells.items()},
                    "totals": dict(r.totals),
                }
                for r in self.rows
            ],
            "column_totals": {column_label(k): dict(v) for k, v in self.column_totals.items()},
            "grand_totals": dict(self.grand_totals),
        }


def _row_key(record: Mapping[str, FieldValue], fields: Sequence[str]) -> RowKey:
    return tuple(record.get(f, MISSING) for f in fields)


def _column_key(record: Mapping[str, FieldValue], fields: Sequence[str]) -> ColumnKey:
    return tuple(record.get(f, MISSING).as_text() for f in fields)


def _unique_measures(measures: Iterable[Measure]) -> List[Measure]:
    out: List[Measure] = []
    seen = set()
    for m in measures:
        if m.key not in seen:
            seen.add(m.key)
            out.append(m)
    return out


def build_matrix(
    records: Sequence[Mapping[str, FieldValue]],
    row_fields: Sequence[str],
    column_fields: Sequence[str],
    measures: Iterable[Measure],
    conversions: Iterable[ConversionRule] = (),
) -> PivotMatrix:
    measures = _unique_measures(measures)
    data = apply_conversions(records, conversions)

    groups: Dict[RowKey, List[Dict[str, FieldValue]]] = {}
    for record in data:
        groups.setdefault(_row_key(record, row_fields), []).append(record)

    # a column is its label: tuples that join to the same label share one column
    canonical: Dict[str, ColumnKey] = {}

    def column_of(record: Mapping[str, FieldValue]) -> ColumnKey:
        key = _column_key(record, column_fields)
        return canonical.setdefault(column_label(key), key)

    if column_fields:
        for r in data:
            column_of(r)
        column_keys = [canonical[label] for label in sorted(canonical)]
    else:
        column_keys = [()]

    column_totals: Dict[ColumnKey, MeasureValues] = {k: {m.key: 0 for m in measures} for k in column_keys}
    grand_totals: MeasureValues = {m.key: 0 for m in measures}
    rows: List[PivotRow] = []

    for key, group in groups.items():
        if column_fields:
            by_column: Dict[ColumnKey, List[Dict[str, FieldValue]]] = {}
            for record in group:
                by_column.setdefault(column_of(record), []).append(record)
        else:
            by_column = {(): group}

        row = PivotRow(
            key=key,
            group_key={f: v.native() for f, v in zip(row_fields, key)},
            totals={m.key: 0 for m in measures},
        )
        for col_key in column_keys:
            subset = by_column.get(col_key, [])
            values: MeasureValues = {}
            for measure in measures:
                cell = aggregate((r.get(measure.source_field, MISSING) for r in subset), measure.aggregation)
                values[measure.key] = cell
                sum_of_cell_aggregates(row.totals, measure.key, cell)
                sum_of_cell_aggregates(column_totals[col_key], measure.key, cell)
                sum_of_cell_aggregates(grand_totals, measure.key, cell)
            row.cells[col_key] = values
        rows.append(row)

    logger.debug(
        "built pivot matrix: %d rows x %d columns x %d measures from %d records",
        len(rows),
        len(column_keys),
        len(measures),
        len(data),
    )
    return PivotMatrix(
        rows=rows,
        column_keys=column_keys,
        column_totals=column_totals,
        grand_totals=grand_totals,
        measures=measures,
        row_fields=list(row_fields),
        column_fields=list(column_fields),
    )


# ---------------- Sorting ----------------
@dataclass(frozen=True)
class SortConfig:
    field: str
    direction: SortDirection = "asc"


def toggle_sort(current: Optional[SortConfig], field_name: str) -> Optional[SortConfig]:
    """Same field cycles asc -> desc -> unsorted; a new field starts ascending."""
    if current is not None and current.field == field_name:
        return SortConfig(field_name, "desc") if current.direction == "asc" else None
    return SortConfig(field_name, "asc")


def sort_matrix(matrix: PivotMatrix, sort: Optional[SortConfig]) -> PivotMatrix:
    if sort is None or sort.field not in matrix.row_fields:
        return matrix
    idx = matrix.row_fields.index(sort.field)
    # sorted() is stable, and reverse=True keeps ties in original order
    rows = sorted(matrix.rows, key=lambda r: r.key[idx].sort_key(), reverse=sort.direction == "desc")
    return PivotMatrix(
        rows=rows,
        column_keys=matrix.column_keys,
        column_totals=matrix.column_totals,
        grand_totals=matrix.grand_totals,
        measures=matrix.measures,
        row_fields=matrix.row_fields,
        column_fields=matrix.column_fields,
    )
