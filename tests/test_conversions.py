from __future__ import annotations

import pytest

from pivot_core.conversions import (
    ConversionRule,
    apply_conversions,
    convert_crores_to_amount,
    convert_value,
    default_target_unit,
    detect_field_type,
    format_value_with_unit,
    rules_by_field,
)
from pivot_core.values import number, text


def test_area_conversions():
    assert convert_value(10, "area", "ft2") == pytest.approx(107.639)
    assert convert_value(107.639, "area", "m2") == pytest.approx(10)
    assert convert_value(10, "area", "original") == 10


def test_amount_conversions():
    assert convert_value(25_000_000, "amount", "crores") == pytest.approx(2.5)
    assert convert_value(500, "amount", "original") == 500
    assert convert_crores_to_amount(2.5) == pytest.approx(25_000_000)


def test_unknown_dimension_is_identity():
    assert convert_value(3, "weight", "kg") == 3


@pytest.mark.parametrize(
    "name,expected",
    [
        ("plot_area", "area"),
        ("Size", "area"),
        ("sqft", "area"),
        ("Sales", "amount"),
        ("unit_price", "amount"),
        ("area_value", "area"),
        ("region", None),
    ],
)
def test_detect_field_type(name, expected):
    assert detect_field_type(name) == expected


def test_default_target_unit():
    assert default_target_unit("area") == "ft2"
    assert default_target_unit("amount") == "crores"


def test_format_value_with_unit():
    assert format_value_with_unit(1234.5, "area", "ft2") == "1,234.5 ft²"
    assert format_value_with_unit(100, "area", "m2") == "100 m²"
    assert format_value_with_unit(12.5, "amount", "crores") == "₹12.5 cr"
    assert format_value_with_unit(12345678, "amount", "original") == "₹1,23,45,678"


def test_apply_conversions_touches_numbers_only_and_copies_records():
    records = [{"area": number(10)}, {"area": text("n/a")}]
    out = apply_conversions(records, [ConversionRule("area", "area", "ft2")])
    assert out[0]["area"].value == pytest.approx(107.639)
    assert out[1]["area"] == text("n/a")
    assert records[0]["area"] == number(10)


def test_one_rule_per_field_last_wins():
    rules = [ConversionRule("area", "area", "ft2"), ConversionRule("area", "area", "m2")]
    assert rules_by_field(rules)["area"].target_unit == "m2"
