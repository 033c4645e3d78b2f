from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Mapping, Optional, get_args

from pivot_core.values import FieldValue, Number, number

ConversionDimension = Literal["area", "amount"]
TargetUnit = Literal["ft2", "m2", "crores", "original"]

CONVERSION_DIMENSIONS: tuple = get_args(ConversionDimension)
TARGET_UNITS: tuple = get_args(TargetUnit)

SQFT_PER_SQM = 10.7639
RUPEES_PER_CRORE = 10_000_000

AREA_KEYWORDS = ("area", "size", "sqft", "sqm", "square")
AMOUNT_KEYWORDS = ("amount", "cost", "price", "sales", "revenue", "value")

UNIT_OPTIONS: Dict[str, List[Dict[str, str]]] = {
    "area": [
        {"value": "m2", "label": "Square Meters (m²)"},
        {"value": "ft2", "label": "Square Feet (ft²)"},
    ],
    "amount": [
        {"value": "original", "label": "Original Amount"},
        {"value": "crores", "label": "Crores (₹ cr)"},
    ],
}


@dataclass(frozen=True)
class ConversionRule:
    field: str
    dimension: ConversionDimension
    target_unit: TargetUnit


def convert_area_m2_to_ft2(area_m2: float) -> float:
    return area_m2 * SQFT_PER_SQM


def convert_area_ft2_to_m2(area_ft2: float) -> float:
    return area_ft2 / SQFT_PER_SQM


def convert_amount_to_crores(amount: float) -> float:
    return amount / RUPEES_PER_CRORE


def convert_crores_to_amount(crores: float) -> float:
    return crores * RUPEES_PER_CRORE


def convert_value(value: Number, dimension: str, target_unit: str) -> Number:
    if dimension == "area":
        if target_unit == "ft2":
            return convert_area_m2_to_ft2(value)
        if target_unit == "m2":
            return convert_area_ft2_to_m2(value)
        return value
    if dimension == "amount":
        if target_unit == "crores":
            return convert_amount_to_crores(value)
        return value
    return value


def detect_field_type(field_name: str) -> Optional[ConversionDimension]:
    lowered = field_name.lower()
    if any(k in lowered for k in AREA_KEYWORDS):
        return "area"
    if any(k in lowered for k in AMOUNT_KEYWORDS):
        return "amount"
    return None


def default_target_unit(dimension: str) -> TargetUnit:
    return "ft2" if dimension == "area" else "crores"


def _group_indian(integer_digits: str) -> str:
    # 12345678 -> 1,23,45,678
    if len(integer_digits) <= 3:
        return integer_digits
    head, tail = integer_digits[:-3], integer_digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_indian_number(value: float, max_decimals: int = 2) -> str:
    sign = "-" if value < 0 else ""
    rendered = f"{abs(value):.{max_decimals}f}".rstrip("0").rstrip(".") if max_decimals else f"{abs(value):.0f}"
    integer_part, _, fraction = rendered.partition(".")
    grouped = _group_indian(integer_part)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_value_with_unit(value: float, dimension: str, target_unit: str) -> str:
    if dimension == "area":
        unit = "ft²" if target_unit == "ft2" else "m²"
        return f"{format_indian_number(value)} {unit}"
    if dimension == "amount":
        if target_unit == "crores":
            return f"₹{format_indian_number(value)} cr"
        return f"₹{format_indian_number(value, max_decimals=0)}"
    return format_indian_number(value)


def rules_by_field(rules: Iterable[ConversionRule]) -> Dict[str, ConversionRule]:
    """At most one active rule per field; a later rule replaces an earlier one."""
    out: Dict[str, ConversionRule] = {}
    for rule in rules:
        out[rule.field] = rule
    return out


def apply_conversions(
    records: Iterable[Mapping[str, FieldValue]], rules: Iterable[ConversionRule]
) -> List[Dict[str, FieldValue]]:
    """Convert source values before aggregation. Only numeric values change."""
    active = rules_by_field(rules)
    converted: List[Dict[str, FieldValue]] = []
    for record in records:
        row = dict(record)
        for field, rule in active.items():
            value = row.get(field)
            if value is not None and value.is_number:
                row[field] = number(convert_value(value.value, rule.dimension, rule.target_unit))  # type: ignore[arg-type]
        converted.append(row)
    return converted
