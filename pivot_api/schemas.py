from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class MeasureModel(BaseModel):
    source_field: str
    aggregation: Literal["sum", "count", "avg", "min", "max"] = "sum"
    label: Optional[str] = None


class ConversionModel(BaseModel):
    field: str
    dimension: Literal["area", "amount"]
    target_unit: Literal["ft2", "m2", "crores", "original"]


class DateFilterModel(BaseModel):
    kind: Literal["all", "date", "exact-date", "week", "month", "year", "relative"] = "all"
    value: Optional[str] = None


class FieldFilterModel(BaseModel):
    field: str
    allowed_values: List[str] = Field(default_factory=list)


class PivotConfigModel(BaseModel):
    row_fields: List[str] = Field(default_factory=list)
    column_fields: List[str] = Field(default_factory=list)
    measures: List[MeasureModel] = Field(default_factory=list)
    conversions: List[ConversionModel] = Field(default_factory=list)
    date_filter: DateFilterModel = Field(default_factory=DateFilterModel)
    field_filters: List[FieldFilterModel] = Field(default_factory=list)


class SortModel(BaseModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class PivotRequest(BaseModel):
    config: PivotConfigModel = Field(default_factory=PivotConfigModel)
    sort: Optional[SortModel] = None


class SortToggleRequest(BaseModel):
    current: Optional[SortModel] = None
    field: str


class PivotResponse(BaseModel):
    matrix: Optional[Dict[str, Any]] = None
    filtered_count: int
    total_count: int


class SaveReportRequest(BaseModel):
    name: str = Field(min_length=1)
    config: PivotConfigModel


class RenameReportRequest(BaseModel):
    name: str = Field(min_length=1)


class ReportModel(BaseModel):
    id: str
    name: str
    created_at: str
    updated_at: str
    config: PivotConfigModel


class MetaFieldsResponse(BaseModel):
    source: str
    fields: List[str]
    numeric_fields: List[str]
    conversion_dimensions: Dict[str, Optional[str]]
    total_count: int


class MetaListResponse(BaseModel):
    values: List[str]
