from __future__ import annotations

import csv
from typing import List

import pandas as pd

from pivot_core.pivot import PivotMatrix, column_label

GRAND_TOTAL_LABEL = "Grand Total"
DEFAULT_EXPORT_PREFIX = "pivot-table-export"


def export_columns(matrix: PivotMatrix) -> List[str]:
    keys = matrix.measure_keys
    return (
        list(matrix.row_fields)
        + [f"{column_label(c)}_{k}" for c in matrix.column_keys for k in keys]
        + [f"Total_{k}" for k in keys]
    )


def export_filename(prefix: str = DEFAULT_EXPORT_PREFIX) -> str:
    return f"{prefix or DEFAULT_EXPORT_PREFIX}.csv"


def matrix_to_frame(matrix: PivotMatrix) -> pd.DataFrame:
    """One line per row group in matrix order, then a Grand Total line."""
    keys = matrix.measure_keys
    lines: List[list] = []
    for row in matrix.rows:
        line: list = [v.as_text() for v in row.key]
        line += [row.cells.get(c, {}).get(k, 0) for c in matrix.column_keys for k in keys]
        line += [row.totals.get(k, 0) for k in keys]
        lines.append(line)

    if matrix.row_fields:
        total_line: list = [GRAND_TOTAL_LABEL] + [""] * (len(matrix.row_fields) - 1)
    else:
        total_line = []
    total_line += [matrix.column_totals[c].get(k, 0) for c in matrix.column_keys for k in keys]
    total_line += [matrix.grand_totals.get(k, 0) for k in keys]
    lines.append(total_line)
    # object dtype keeps ints as ints (100, not 100.0)
    return pd.DataFrame(lines, columns=export_columns(matrix), dtype=object)


def matrix_to_csv(matrix: PivotMatrix) -> str:
    """Strings quoted, numbers bare, ``,`` between fields, ``\\n`` between records."""
    if not matrix.rows:
        return ""
    frame = matrix_to_frame(matrix)
    return frame.to_csv(index=False, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n").rstrip("\n")
