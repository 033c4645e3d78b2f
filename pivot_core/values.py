from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

import pandas as pd

ValueKind = Literal["number", "text", "missing"]
Number = Union[int, float]


def format_number_text(value: Number) -> str:
    """Render a number the way a user typed it: 100 not 100.0."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class FieldValue:
    kind: ValueKind
    value: Union[Number, str, None] = None

    @property
    def is_number(self) -> bool:
        return self.kind == "number"

    @property
    def number(self) -> Optional[Number]:
        return self.value if self.kind == "number" else None  # type: ignore[return-value]

    def as_text(self) -> str:
        if self.kind == "number":
            return format_number_text(self.value)  # type: ignore[arg-type]
        if self.kind == "text":
            return str(self.value)
        return ""

    def native(self) -> Union[Number, str, None]:
        return self.value

    def sort_key(self) -> Tuple[int, Union[Number, str]]:
        # numbers < text < missing
        if self.kind == "number":
            return (0, self.value)  # type: ignore[return-value]
        if self.kind == "text":
            return (1, str(self.value))
        return (2, "")


MISSING = FieldValue("missing")


def number(value: Number) -> FieldValue:
    return FieldValue("number", value)


def text(value: str) -> FieldValue:
    return FieldValue("text", value)


def tag_value(raw: object) -> FieldValue:
    """Tag a raw cell. Strings are never coerced to numbers here."""
    if isinstance(raw, FieldValue):
        return raw
    if raw is None:
        return MISSING
    if isinstance(raw, bool):
        return text(str(raw).lower())
    if isinstance(raw, int):
        return number(int(raw))
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return MISSING
        return number(float(raw))
    if isinstance(raw, str):
        return text(raw)
    if pd.api.types.is_scalar(raw) and pd.isna(raw):
        return MISSING
    if type(raw).__name__ == "bool_":
        return text(str(bool(raw)).lower())
    # numpy scalars and the like
    try:
        as_float = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return text(str(raw))
    if math.isnan(as_float) or math.isinf(as_float):
        return MISSING
    if as_float.is_integer() and "int" in type(raw).__name__:
        return number(int(as_float))
    return number(as_float)
