from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from pivot_core.filters import PivotConfig, normalize_config
from pivot_core.pivot import SortConfig, build_matrix, sort_matrix
from pivot_core.row_filters import DATE_FIELD, apply_filters
from pivot_core.settings import get_settings
from pivot_core.values import MISSING, FieldValue, tag_value, text

logger = logging.getLogger(__name__)

Record = Dict[str, FieldValue]

SUPPORTED_SUFFIXES = {".csv", ".json", ".xlsx", ".xls"}

SAMPLE_ROWS: List[Dict[str, Any]] = [
    {"region": "North", "product": "Apples", "category": "Fruit", "quantity": 10, "sales": 100, "profit": 20, "area": 12.5, "date": "2025-01-15"},
    {"region": "South", "product": "Apples", "category": "Fruit", "quantity": 20, "sales": 200, "profit": 40, "area": 18.0, "date": "2025-02-03"},
    {"region": "North", "product": "Oranges", "category": "Fruit", "quantity": 15, "sales": 150, "profit": 30, "area": 9.75, "date": "2025-03-21"},
    {"region": "South", "product": "Oranges", "category": "Fruit", "quantity": 25, "sales": 250, "profit": 50, "area": 22.0, "date": "2025-04-08"},
    {"region": "East", "product": "Apples", "category": "Fruit", "quantity": 12, "sales": 120, "profit": 24, "area": 11.0, "date": "2025-05-12"},
    {"region": "West", "product": "Oranges", "category": "Fruit", "quantity": 18, "sales": 180, "profit": 36, "area": 16.25, "date": "2025-06-30"},
    {"region": "North", "product": "Bananas", "category": "Fruit", "quantity": 8, "sales": 80, "profit": 16, "area": 7.5, "date": "2025-07-01"},
    {"region": "South", "product": "Bananas", "category": "Fruit", "quantity": 22, "sales": 220, "profit": 44, "area": 20.0, "date": "2025-07-14"},
    {"region": "East", "product": "Carrots", "category": "Vegetable", "quantity": 30, "sales": 90, "profit": 18, "area": 30.0, "date": "2025-08-19"},
    {"region": "West", "product": "Carrots", "category": "Vegetable", "quantity": 35, "sales": 105, "profit": 21, "area": 32.5, "date": "2025-09-02"},
    {"region": "North", "product": "Lettuce", "category": "Vegetable", "quantity": 40, "sales": 120, "profit": 24, "area": 25.0, "date": "2025-10-27"},
    {"region": "South", "product": "Lettuce", "category": "Vegetable", "quantity": 45, "sales": 135, "profit": 27, "area": 27.5, "date": "2025-11-11"},
]


def to_records(rows: Iterable[Mapping[str, object]]) -> List[Record]:
    """Tag every raw value once, at ingestion."""
    return [{str(k): tag_value(v) for k, v in row.items()} for row in rows]


def _tag_text_column(series: pd.Series) -> List[FieldValue]:
    """CSV cells arrive as text; numeric-looking cells become numbers here."""
    raw = series.astype("string").str.strip()
    numeric = pd.to_numeric(raw, errors="coerce")
    out: List[FieldValue] = []
    for s, n in zip(raw.tolist(), numeric.tolist()):
        if s is None or s is pd.NA or s == "":
            out.append(MISSING)
        elif pd.isna(n):
            out.append(text(s))
        else:
            out.append(tag_value(n))
    return out


def records_from_frame(df: pd.DataFrame, *, parse_numeric_text: bool = False) -> List[Record]:
    if df.empty:
        return []
    df = df.loc[:, ~df.columns.duplicated()]
    columns: Dict[str, List[FieldValue]] = {}
    for col in df.columns:
        name = str(col).strip()
        series = df[col]
        if parse_numeric_text and name != DATE_FIELD:
            columns[name] = _tag_text_column(series)
        elif name == DATE_FIELD:
            columns[name] = [MISSING if pd.isna(v) else text(str(v).strip()) for v in series.tolist()]
        else:
            columns[name] = [tag_value(v) for v in series.tolist()]
    names = list(columns)
    return [{name: columns[name][i] for name in names} for i in range(len(df))]


def read_frame(path: Path) -> Tuple[pd.DataFrame, bool]:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype=object, keep_default_na=False), True
    if suffix == ".json":
        return pd.read_json(path, orient="records", dtype=False, convert_dates=False), False
    if suffix in {".xlsx", ".xls"}:
        return pd.read_excel(path), False
    raise ValueError(f"Unsupported data file type: {path.suffix!r}")


def load_records(path: Path | str) -> List[Record]:
    df, textual = read_frame(Path(path))
    return records_from_frame(df, parse_numeric_text=textual)


def available_fields(records: Iterable[Mapping[str, FieldValue]]) -> List[str]:
    """Union of keys across all records, in first-seen order, without ``date``."""
    fields: Dict[str, None] = {}
    for record in records:
        for key in record:
            if key != DATE_FIELD:
                fields.setdefault(key, None)
    return list(fields)


def numeric_fields(records: Iterable[Mapping[str, FieldValue]]) -> List[str]:
    records = list(records)
    return [f for f in available_fields(records) if any(r.get(f, MISSING).is_number for r in records)]


def unique_values(records: Iterable[Mapping[str, FieldValue]], field_name: str) -> List[str]:
    return sorted({r.get(field_name, MISSING).as_text() for r in records})


def file_signature(path: Path) -> Tuple[str, float]:
    return str(path), path.stat().st_mtime


# ---------------- Public API (Streamlit parity + FastAPI use) ----------------
@lru_cache(maxsize=4)
def _load_dashboard_data_cached(file_sig: Tuple[str, float]) -> Dict[str, object]:
    records = load_records(Path(file_sig[0]))
    return _dashboard_payload(Path(file_sig[0]).name, records)


def _dashboard_payload(source: str, records: List[Record]) -> Dict[str, object]:
    return {
        "source": source,
        "records": records,
        "fields": available_fields(records),
        "numeric_fields": numeric_fields(records),
    }


def sample_dashboard_data() -> Dict[str, object]:
    return _dashboard_payload("sample", to_records(SAMPLE_ROWS))


def load_dashboard_data(data_file: Optional[Path] = None) -> Dict[str, object]:
    path = data_file or get_settings().data_file
    if path is None:
        return sample_dashboard_data()
    path = Path(path)
    if not path.exists() or path.suffix.lower() not in SUPPORTED_SUFFIXES:
        logger.warning("Data file %s not found or unsupported; using sample data", path)
        return sample_dashboard_data()
    return _load_dashboard_data_cached(file_signature(path))


def prepare_context(
    config: dict | PivotConfig,
    data_ctx: Dict[str, object],
    sort: Optional[SortConfig] = None,
    now: Optional[object] = None,
) -> Dict[str, object]:
    """Filter, pivot and sort in one synchronous pass; recomputed from scratch each call."""
    cfg = normalize_config(config)
    records: List[Record] = data_ctx.get("records", []) or []  # type: ignore[assignment]

    filtered = apply_filters(records, cfg.date_filter, cfg.field_filters, now=now)

    matrix = None
    if cfg.row_fields and cfg.measures:
        matrix = build_matrix(filtered, cfg.row_fields, cfg.column_fields, cfg.measures, cfg.conversions)
        matrix = sort_matrix(matrix, sort)

    return {
        "config": cfg,
        "sort": sort,
        "filtered_records": filtered,
        "filtered_count": len(filtered),
        "total_count": len(records),
        "matrix": matrix,
    }
