from __future__ import annotations

from datetime import datetime

import pytest

from pivot_core.data import to_records
from pivot_core.filters import DateFilterConfig, FieldFilterConfig, normalize_config
from pivot_core.row_filters import apply_filters, filter_by_date, filter_by_fields, filtered_count


def _dates(rows):
    return [r["date"].as_text() for r in rows]


def test_all_and_empty_value_are_identity(scenario_records):
    assert filter_by_date(scenario_records, DateFilterConfig()) == scenario_records
    assert filter_by_date(scenario_records, DateFilterConfig(kind="month", value=None)) == scenario_records


def test_month_filter_keeps_order(scenario_records):
    kept = filter_by_date(scenario_records, DateFilterConfig(kind="month", value="2025-07"))
    assert _dates(kept) == ["2025-07-01", "2025-07-02"]


def test_exact_date_ignores_time_of_day():
    rows = to_records(
        [
            {"date": "2025-07-01T15:30:00"},
            {"date": "2025-07-01"},
            {"date": "2025-07-02"},
        ]
    )
    kept = filter_by_date(rows, DateFilterConfig(kind="date", value="2025-07-01"))
    assert len(kept) == 2


def test_week_uses_iso_numbering(scenario_records):
    kept = filter_by_date(scenario_records, DateFilterConfig(kind="week", value="2025-27"))
    assert _dates(kept) == ["2025-07-01", "2025-07-02"]
    assert filter_by_date(scenario_records, DateFilterConfig(kind="week", value="2025-W27")) == kept


def test_week_matches_iso_year_across_calendar_boundary():
    rows = to_records([{"date": "2024-12-30"}, {"date": "2024-12-29"}])
    assert _dates(filter_by_date(rows, DateFilterConfig(kind="week", value="2025-01"))) == ["2024-12-30"]
    assert filter_by_date(rows, DateFilterConfig(kind="week", value="2024-01")) == []


def test_year_filter(scenario_records):
    assert len(filter_by_date(scenario_records, DateFilterConfig(kind="year", value="2025"))) == 3
    assert filter_by_date(scenario_records, DateFilterConfig(kind="year", value="2024")) == []


@pytest.mark.parametrize(
    "kind,value",
    [
        ("week", "abc-xy"),
        ("week", "2025"),
        ("month", "2025-13"),
        ("month", "July"),
        ("year", "25"),
        ("year", "twenty"),
        ("year", "0000"),
        ("month", "0000-05"),
        ("date", "not-a-date"),
    ],
)
def test_malformed_filter_values_match_nothing(scenario_records, kind, value):
    assert filter_by_date(scenario_records, DateFilterConfig(kind=kind, value=value)) == []


def test_unparseable_row_dates_never_match():
    rows = to_records([{"date": "garbage"}, {"x": 1}, {"date": "2025-07-03"}])
    kept = filter_by_date(rows, DateFilterConfig(kind="month", value="2025-07"))
    assert _dates(kept) == ["2025-07-03"]


def test_relative_last7days_window_is_inclusive():
    rows = to_records(
        [{"date": "2025-06-27"}, {"date": "2025-06-28"}, {"date": "2025-07-05"}, {"date": "2025-07-06"}]
    )
    now = datetime(2025, 7, 5, 18, 45)
    kept = filter_by_date(rows, DateFilterConfig(kind="relative", value="last7days"), now=now)
    assert _dates(kept) == ["2025-06-28", "2025-07-05"]


def test_relative_this_month_and_year(scenario_records):
    now = datetime(2025, 7, 20)
    month = filter_by_date(scenario_records, DateFilterConfig(kind="relative", value="thisMonth"), now=now)
    year = filter_by_date(scenario_records, DateFilterConfig(kind="relative", value="thisYear"), now=now)
    assert _dates(month) == ["2025-07-01", "2025-07-02"]
    assert len(year) == 3
    assert filter_by_date(scenario_records, DateFilterConfig(kind="relative", value="nextWeek"), now=now) == []


def test_empty_allow_list_is_a_no_op(scenario_records):
    assert filter_by_fields(scenario_records, [FieldFilterConfig("region", ())]) == scenario_records
    assert filter_by_fields(scenario_records, []) == scenario_records


def test_field_filters_are_anded_and_compare_as_text(scenario_records):
    kept = filter_by_fields(scenario_records, [FieldFilterConfig("region", ("N",))])
    assert len(kept) == 2
    kept = filter_by_fields(
        scenario_records,
        [FieldFilterConfig("region", ("N",)), FieldFilterConfig("sales", ("200",))],
    )
    assert _dates(kept) == ["2025-06-01"]


def test_composition_removes_rows_failing_either_predicate(scenario_records):
    date_filter = DateFilterConfig(kind="month", value="2025-07")
    field_filters = [FieldFilterConfig("region", ("N", "S"))]
    kept = apply_filters(scenario_records, date_filter, field_filters)
    assert kept == filter_by_fields(filter_by_date(scenario_records, date_filter), field_filters)
    assert _dates(kept) == ["2025-07-01", "2025-07-02"]
    assert filtered_count(scenario_records, date_filter, [FieldFilterConfig("region", ("S",))]) == 1


def test_blank_allowed_value_selects_missing_cells():
    rows = to_records([{"region": "N"}, {"region": None}, {"other": 1}])
    config = normalize_config({"field_filters": [{"field": "region", "allowed_values": [""]}]})
    kept = filter_by_fields(rows, config.field_filters)
    assert kept == rows[1:]
