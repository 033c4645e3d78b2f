import altair as alt
import pandas as pd
import streamlit as st
from typing import List, Optional

from pivot_core.aggregation import AGGREGATION_FUNCTIONS, Measure
from pivot_core.charts import build_bar_chart, build_pie_chart
from pivot_core.conversions import UNIT_OPTIONS, ConversionRule, default_target_unit, detect_field_type, format_value_with_unit
from pivot_core.data import load_dashboard_data, prepare_context, unique_values
from pivot_core.export import export_filename, matrix_to_csv, matrix_to_frame
from pivot_core.filters import DateFilterConfig, FieldFilterConfig, PivotConfig, describe_date_filter
from pivot_core.pivot import toggle_sort
from pivot_core.reports import FileBackend, ReportStore
from pivot_core.settings import get_settings

alt.data_transformers.disable_max_rows()
WIDGET_KEY_PREFIXES = ("ff_", "conv_", "unit_", "df_")
DATE_WIDGET_PREFIX = "df_"

# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


def format_filter_summary(date_filter: DateFilterConfig, field_filters: List[FieldFilterConfig]) -> str:
    chips = [f"Date: {describe_date_filter(date_filter)}"]
    for f in field_filters:
        chips.append(f"{f.field}: {', '.join(f.allowed_values) if f.allowed_values else 'All'}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def clear_widget_state(prefixes):
    for key in [k for k in st.session_state if str(k).startswith(prefixes)]:
        del st.session_state[key]


def apply_custom_date_filter():
    # runs only when the user edits the custom date input
    kind = st.session_state.get("df_kind", "all")
    if kind == "date":
        picked = st.session_state.get("df_date")
        value = picked.isoformat() if picked else None
    else:
        value = (st.session_state.get(f"df_{kind}") or "").strip() or None
    if value:
        st.session_state["date_filter"] = DateFilterConfig(kind=kind, value=value)


def apply_loaded_config(config: PivotConfig):
    # A loaded report replaces every live parameter, keyed widget state included.
    clear_widget_state(WIDGET_KEY_PREFIXES)
    st.session_state["row_fields"] = list(config.row_fields)
    st.session_state["column_fields"] = list(config.column_fields)
    st.session_state["measures"] = list(config.measures)
    st.session_state["conversions"] = list(config.conversions)
    st.session_state["date_filter"] = config.date_filter
    st.session_state["field_filters"] = list(config.field_filters)
    st.session_state["sort"] = None


def unique_columns(frame: pd.DataFrame, matrix) -> pd.DataFrame:
    """Display copy of the export frame with distinct column names."""
    if not matrix.column_fields:
        # the single "Total" column repeats the row totals
        frame = frame.loc[:, ~frame.columns.duplicated()]
    seen: dict = {}
    names = []
    for name in frame.columns:
        seen[name] = seen.get(name, 0) + 1
        names.append(name if seen[name] == 1 else f"{name} ({seen[name]})")
    out = frame.copy()
    out.columns = names
    return out


def current_config() -> PivotConfig:
    return PivotConfig(
        row_fields=st.session_state["row_fields"],
        column_fields=st.session_state["column_fields"],
        measures=st.session_state["measures"],
        conversions=st.session_state["conversions"],
        date_filter=st.session_state["date_filter"],
        field_filters=st.session_state["field_filters"],
    )


def display_frame(frame: pd.DataFrame, conversions: List[ConversionRule], measures: List[Measure]) -> pd.DataFrame:
    formatted = frame.copy()
    units = {c.field: c for c in conversions}
    for m in measures:
        rule = units.get(m.source_field)
        if rule is None or m.aggregation == "count":
            continue
        for col in [c for c in formatted.columns if str(c).endswith(f"_{m.key}")]:
            formatted[col] = formatted[col].apply(
                lambda v: format_value_with_unit(float(v), rule.dimension, rule.target_unit) if v != "" else v
            )
    return formatted


# ---------- UI setup ----------
st.set_page_config(page_title="Pivot Table", layout="wide")
inject_base_styles()
st.title("Pivot Table")
st.caption("Dynamic grouping, multiple aggregations, export and chart visualization.")

settings = get_settings()
data_ctx = load_dashboard_data()
records = data_ctx.get("records", [])
if not records:
    st.error("No records found. Set PIVOT_DATA_FILE to a CSV, JSON or XLSX file.")
    st.stop()

fields: List[str] = data_ctx.get("fields", [])
numeric_fields: List[str] = data_ctx.get("numeric_fields", [])
store = ReportStore(FileBackend(settings.reports_dir), namespace=settings.reports_namespace)

defaults = {
    "row_fields": [],
    "column_fields": [],
    "measures": [],
    "conversions": [],
    "date_filter": DateFilterConfig(),
    "field_filters": [],
    "sort": None,
}
for key, value in defaults.items():
    st.session_state.setdefault(key, value)

# ----- Sidebar: filters + configuration -----
with st.sidebar:
    st.markdown("### Date filter")
    quick = st.columns(4)
    for col, (label, kind, value) in zip(
        quick,
        [
            ("Last 7 Days", "relative", "last7days"),
            ("This Month", "relative", "thisMonth"),
            ("This Year", "relative", "thisYear"),
            ("All Data", "all", None),
        ],
    ):
        if col.button(label):
            clear_widget_state((DATE_WIDGET_PREFIX,))
            st.session_state["date_filter"] = DateFilterConfig(kind=kind, value=value)

    kind = st.selectbox(
        "Filter type",
        ["all", "date", "week", "month", "year"],
        format_func=lambda k: {"all": "All", "date": "Specific Date", "week": "Week", "month": "Month", "year": "Year"}[k],
        key="df_kind",
    )
    if kind == "date":
        st.date_input("Date", value=None, key="df_date", on_change=apply_custom_date_filter)
    elif kind in {"week", "month", "year"}:
        placeholder = {"week": "e.g., 2025-28", "month": "e.g., 2025-07", "year": "e.g., 2025"}[kind]
        st.text_input(kind.title(), placeholder=placeholder, key=f"df_{kind}", on_change=apply_custom_date_filter)
    if st.session_state["date_filter"].kind != "all" and st.button("Clear date filter"):
        clear_widget_state((DATE_WIDGET_PREFIX,))
        st.session_state["date_filter"] = DateFilterConfig()
        st.rerun()

    st.markdown("---")
    st.markdown("### Field filters")
    filter_fields = st.multiselect(
        "Filter on", options=fields, default=[f.field for f in st.session_state["field_filters"]]
    )
    existing = {f.field: f for f in st.session_state["field_filters"]}
    field_filters: List[FieldFilterConfig] = []
    for name in filter_fields:
        chosen = st.multiselect(
            f"{name} values",
            options=unique_values(records, name),
            default=list(existing.get(name, FieldFilterConfig(name)).allowed_values),
            key=f"ff_{name}",
        )
        field_filters.append(FieldFilterConfig(field=name, allowed_values=tuple(chosen)))
    st.session_state["field_filters"] = field_filters

    st.markdown("---")
    st.markdown("### Layout")
    st.session_state["row_fields"] = st.multiselect("Rows", options=fields, default=st.session_state["row_fields"])
    st.session_state["column_fields"] = st.multiselect(
        "Columns", options=fields, default=st.session_state["column_fields"]
    )

    st.markdown("### Value fields")
    m_cols = st.columns([3, 2])
    new_field = m_cols[0].selectbox("Field", options=numeric_fields or fields, key="measure_field")
    new_agg = m_cols[1].selectbox("Aggregation", options=list(AGGREGATION_FUNCTIONS), key="measure_agg")
    if st.button("Add value field") and new_field:
        candidate = Measure(new_field, new_agg)
        if candidate.key not in {m.key for m in st.session_state["measures"]}:
            st.session_state["measures"] = st.session_state["measures"] + [candidate]
    for m in list(st.session_state["measures"]):
        c1, c2 = st.columns([4, 1])
        c1.write(m.display_label)
        if c2.button("×", key=f"rm_{m.key}"):
            st.session_state["measures"] = [x for x in st.session_state["measures"] if x.key != m.key]

    with st.expander("Unit conversions", expanded=False):
        rules: List[ConversionRule] = []
        active = {c.field: c for c in st.session_state["conversions"]}
        for name in sorted({m.source_field for m in st.session_state["measures"]}):
            dimension = detect_field_type(name)
            if dimension is None:
                continue
            enabled = st.checkbox(f"Convert {name}", value=name in active, key=f"conv_{name}")
            if enabled:
                options = [o["value"] for o in UNIT_OPTIONS[dimension]]
                current = active.get(name)
                unit = st.selectbox(
                    "Target unit",
                    options=options,
                    index=options.index(current.target_unit if current else default_target_unit(dimension)),
                    key=f"unit_{name}",
                )
                rules.append(ConversionRule(field=name, dimension=dimension, target_unit=unit))
        st.session_state["conversions"] = rules

    st.markdown("---")
    st.markdown("### Saved reports")
    report_name = st.text_input("Report name", "")
    if st.button("Save report") and report_name.strip():
        saved = store.save(report_name.strip(), current_config())
        if saved is None:
            st.error("Could not save report.")
        else:
            st.success(f"Saved '{saved.name}'.")
    reports = store.list_reports()
    if reports:
        by_id = {r.id: r for r in reports}
        chosen_id = st.selectbox("Reports", options=list(by_id), format_func=lambda rid: by_id[rid].name)
        r_cols = st.columns(3)
        if r_cols[0].button("Load"):
            apply_loaded_config(by_id[chosen_id].config)
            st.rerun()
        if r_cols[1].button("Delete"):
            if not store.delete(chosen_id):
                st.error("Could not delete report.")
            st.rerun()
        new_name = st.text_input("Rename to", "", key="rename_to")
        if r_cols[2].button("Rename") and new_name.strip():
            if store.rename(chosen_id, new_name.strip()) is None:
                st.error("Could not rename report.")
            st.rerun()

# ----- Main area -----
config = current_config()
ctx = prepare_context(config, data_ctx, sort=st.session_state["sort"])
if config.has_active_filters:
    st.markdown(f"<div class='chip-row'>{format_filter_summary(config.date_filter, config.field_filters)}</div>", unsafe_allow_html=True)
    suffix = " (filtered)" if ctx["filtered_count"] != ctx["total_count"] else ""
    st.caption(f"Showing {ctx['filtered_count']} of {ctx['total_count']} records{suffix}")

matrix = ctx["matrix"]
if matrix is None:
    st.info("Pick at least one row field and one value field to build the pivot table.")
    st.stop()

sort_cols = st.columns(len(matrix.row_fields) + 1)
for col, name in zip(sort_cols, matrix.row_fields):
    current_sort = st.session_state["sort"]
    arrow = ""
    if current_sort is not None and current_sort.field == name:
        arrow = " ↑" if current_sort.direction == "asc" else " ↓"
    if col.button(f"Sort by {name}{arrow}", key=f"sort_{name}"):
        st.session_state["sort"] = toggle_sort(current_sort, name)
        st.rerun()

frame = matrix_to_frame(matrix)
st.dataframe(
    display_frame(unique_columns(frame, matrix), config.conversions, config.measures),
    use_container_width=True,
    hide_index=True,
)
st.download_button(
    "Export CSV",
    data=matrix_to_csv(matrix).encode("utf-8"),
    file_name=export_filename(settings.export_prefix),
    mime="text/csv",
)

chart_kind: Optional[str] = st.radio("Chart", ["None", "Bar", "Pie"], horizontal=True)
if chart_kind == "Bar":
    bar = build_bar_chart(matrix)
    if bar is not None:
        st.altair_chart(bar, use_container_width=True)
elif chart_kind == "Pie":
    pie = build_pie_chart(matrix)
    if pie is not None:
        st.altair_chart(pie, use_container_width=True)
