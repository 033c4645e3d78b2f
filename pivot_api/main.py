from __future__ import annotations

import logging
import math
from typing import Dict, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from pivot_api.schemas import (
    MetaFieldsResponse,
    MetaListResponse,
    PivotRequest,
    PivotResponse,
    RenameReportRequest,
    ReportModel,
    SaveReportRequest,
    SortModel,
    SortToggleRequest,
)
from pivot_core.charts import build_chart_spec
from pivot_core.conversions import detect_field_type
from pivot_core.data import load_dashboard_data, prepare_context, unique_values
from pivot_core.export import export_filename, matrix_to_csv
from pivot_core.pivot import SortConfig, toggle_sort
from pivot_core.reports import FileBackend, ReportStore
from pivot_core.settings import get_settings

settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_data_context() -> Dict[str, object]:
    return load_dashboard_data()


def get_report_store() -> ReportStore:
    current = get_settings()
    return ReportStore(FileBackend(current.reports_dir), namespace=current.reports_namespace)


def _sort_from_model(model: Optional[SortModel]) -> Optional[SortConfig]:
    if model is None:
        return None
    return SortConfig(field=model.field, direction=model.direction)


def _sort_payload(sort: Optional[SortConfig]) -> Optional[Dict[str, str]]:
    if sort is None:
        return None
    return {"field": sort.field, "direction": sort.direction}


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _not_found(report_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": f"Report {report_id} not found", "type": "NotFound"})


@app.get("/meta/fields", response_model=MetaFieldsResponse)
def meta_fields(data_ctx: Dict[str, object] = Depends(get_data_context)):
    try:
        numeric = list(data_ctx.get("numeric_fields", []) or [])
        return _json(
            {
                "source": data_ctx.get("source", ""),
                "fields": list(data_ctx.get("fields", []) or []),
                "numeric_fields": numeric,
                "conversion_dimensions": {f: detect_field_type(f) for f in numeric},
                "total_count": len(data_ctx.get("records", []) or []),
            }
        )
    except Exception as exc:
        logger.exception("meta_fields failed")
        return _error(exc)


@app.get("/meta/values/{field}", response_model=MetaListResponse)
def meta_values(field: str, data_ctx: Dict[str, object] = Depends(get_data_context)):
    try:
        return _json({"values": unique_values(data_ctx.get("records", []) or [], field)})
    except Exception as exc:
        logger.exception("meta_values failed")
        return _error(exc)


@app.post("/pivot", response_model=PivotResponse)
def pivot(request: PivotRequest, data_ctx: Dict[str, object] = Depends(get_data_context)):
    try:
        ctx = prepare_context(request.config.model_dump(), data_ctx, sort=_sort_from_model(request.sort))
        matrix = ctx["matrix"]
        return _json(
            {
                "matrix": matrix.to_dict() if matrix is not None else None,
                "filtered_count": ctx["filtered_count"],
                "total_count": ctx["total_count"],
            }
        )
    except Exception as exc:
        logger.exception("pivot failed")
        return _error(exc)


@app.post("/sort/toggle")
def sort_toggle(request: SortToggleRequest):
    try:
        return _json({"sort": _sort_payload(toggle_sort(_sort_from_model(request.current), request.field))})
    except Exception as exc:
        logger.exception("sort_toggle failed")
        return _error(exc)


@app.post("/export/csv")
def export_csv(request: PivotRequest, data_ctx: Dict[str, object] = Depends(get_data_context)):
    try:
        ctx = prepare_context(request.config.model_dump(), data_ctx, sort=_sort_from_model(request.sort))
        matrix = ctx["matrix"]
        content = matrix_to_csv(matrix) if matrix is not None else ""
        filename = export_filename(get_settings().export_prefix)
        return Response(
            content=content.encode("utf-8"),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    except Exception as exc:
        logger.exception("export_csv failed")
        return _error(exc)


@app.post("/chart/{kind}")
def chart(kind: str, request: PivotRequest, data_ctx: Dict[str, object] = Depends(get_data_context)):
    if kind not in {"bar", "pie"}:
        return _error(ValueError(f"Unknown chart kind: {kind}"), status_code=422)
    try:
        ctx = prepare_context(request.config.model_dump(), data_ctx, sort=_sort_from_model(request.sort))
        matrix = ctx["matrix"]
        spec = build_chart_spec(matrix, kind) if matrix is not None else None
        return _json({"kind": kind, "spec": spec})
    except Exception as exc:
        logger.exception("chart failed")
        return _error(exc)


# ---------------- Saved reports ----------------
@app.get("/reports")
def list_reports(store: ReportStore = Depends(get_report_store)):
    try:
        return _json({"reports": [r.to_dict() for r in store.list_reports()]})
    except Exception as exc:
        logger.exception("list_reports failed")
        return _error(exc)


@app.post("/reports", response_model=ReportModel, status_code=201)
def save_report(request: SaveReportRequest, store: ReportStore = Depends(get_report_store)):
    try:
        report = store.save(request.name, request.config.model_dump())
        if report is None:
            return JSONResponse(status_code=500, content={"error": "Could not save report", "type": "StoreError"})
        return _json(report.to_dict(), status_code=201)
    except Exception as exc:
        logger.exception("save_report failed")
        return _error(exc)


@app.get("/reports/{report_id}", response_model=ReportModel)
def get_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    try:
        report = store.get(report_id)
        if report is None:
            return _not_found(report_id)
        return _json(report.to_dict())
    except Exception as exc:
        logger.exception("get_report failed")
        return _error(exc)


@app.patch("/reports/{report_id}", response_model=ReportModel)
def rename_report(report_id: str, request: RenameReportRequest, store: ReportStore = Depends(get_report_store)):
    try:
        report = store.rename(report_id, request.name)
        if report is None:
            return _not_found(report_id)
        return _json(report.to_dict())
    except Exception as exc:
        logger.exception("rename_report failed")
        return _error(exc)


@app.delete("/reports/{report_id}")
def delete_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    try:
        if not store.delete(report_id):
            return _not_found(report_id)
        return _json({"deleted": True, "id": report_id})
    except Exception as exc:
        logger.exception("delete_report failed")
        return _error(exc)
