from __future__ import annotations

from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from pivot_core.pivot import PivotMatrix

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def pivot_chart_frame(matrix: PivotMatrix) -> pd.DataFrame:
    """Long frame of row totals: one line per (row group, measure)."""
    labels = {m.key: m.display_label for m in matrix.measures}
    records = []
    for row in matrix.rows:
        group = row.label()
        for key, total in row.totals.items():
            records.append({"group": group, "measure": labels.get(key, key), "value": float(total)})
    return pd.DataFrame(records, columns=["group", "measure", "value"])


def grand_totals_frame(matrix: PivotMatrix) -> pd.DataFrame:
    labels = {m.key: m.display_label for m in matrix.measures}
    records = [{"measure": labels.get(k, k), "value": float(v)} for k, v in matrix.grand_totals.items()]
    return pd.DataFrame(records, columns=["measure", "value"])


def build_bar_chart(matrix: PivotMatrix) -> Optional[alt.Chart]:
    df = pivot_chart_frame(matrix)
    if df.empty:
        return None
    x_title = " / ".join(matrix.row_fields) or "Group"
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("group:N", title=x_title, sort=None, axis=alt.Axis(labelAngle=-45)),
            xOffset="measure:N",
            y=alt.Y("value:Q", title="Total"),
            color=alt.Color("measure:N", title="Measure"),
            tooltip=["group", "measure", alt.Tooltip("value:Q", format=",.2f")],
        )
    )


def build_pie_chart(matrix: PivotMatrix) -> Optional[alt.Chart]:
    if not matrix.rows:
        return None
    df = grand_totals_frame(matrix)
    if df.empty:
        return None
    return (
        alt.Chart(df)
        .mark_arc(outerRadius=110)
        .encode(
            theta=alt.Theta("value:Q", stack=True),
            color=alt.Color("measure:N", title="Measure"),
            tooltip=["measure", alt.Tooltip("value:Q", format=",.2f")],
        )
    )


def build_chart_spec(matrix: PivotMatrix, kind: str) -> Optional[Dict[str, Any]]:
    if kind == "bar":
        chart = build_bar_chart(matrix)
    elif kind == "pie":
        chart = build_pie_chart(matrix)
    else:
        raise ValueError(f"Unknown chart kind: {kind!r}")
    return to_vega_spec(chart) if chart is not None else None
