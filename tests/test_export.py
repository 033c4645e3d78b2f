from __future__ import annotations

from pivot_core.aggregation import Measure
from pivot_core.data import to_records
from pivot_core.export import export_columns, export_filename, matrix_to_csv, matrix_to_frame
from pivot_core.pivot import build_matrix


def test_csv_layout_without_column_fields(scenario_records):
    matrix = build_matrix(scenario_records, ["region"], [], [Measure("sales", "sum")])
    assert matrix_to_csv(matrix).split("\n") == [
        '"region","Total_sales_sum","Total_sales_sum"',
        '"N",300,300',
        '"S",50,50',
        '"Grand Total",350,350',
    ]


def test_csv_columns_follow_header_by_measure_order():
    records = to_records(
        [
            {"r": "N", "s": "b", "c": "Veg", "v": 1.5},
            {"r": "N", "s": "a", "c": "Fruit", "v": 2},
        ]
    )
    matrix = build_matrix(records, ["r", "s"], ["c"], [Measure("v", "sum"), Measure("v", "count")])
    assert export_columns(matrix) == [
        "r",
        "s",
        "Fruit_v_sum",
        "Fruit_v_count",
        "Veg_v_sum",
        "Veg_v_count",
        "Total_v_sum",
        "Total_v_count",
    ]
    lines = matrix_to_csv(matrix).split("\n")
    assert lines[1] == '"N","b",0,0,1.5,1,1.5,1'
    assert lines[-1] == '"Grand Total","",2,1,1.5,1,3.5,2'


def test_frame_has_one_line_per_row_plus_grand_total(scenario_records):
    matrix = build_matrix(scenario_records, ["region"], [], [Measure("sales", "avg")])
    frame = matrix_to_frame(matrix)
    assert len(frame) == len(matrix.rows) + 1
    assert frame.iloc[-1, 0] == "Grand Total"


def test_empty_matrix_exports_nothing():
    matrix = build_matrix([], ["region"], [], [Measure("sales", "sum")])
    assert matrix_to_csv(matrix) == ""


def test_export_filename():
    assert export_filename() == "pivot-table-export.csv"
    assert export_filename("north") == "north.csv"
