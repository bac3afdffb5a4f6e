"""
Field types for sheet columns.

* `FieldType` is the closed set of column types; each member resolves to one
  coercion function.
* `FieldSpec` binds a type to its default and null handling. The coercer is
  looked up once, when the field is declared.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..errors import TypeCoercionError

_TRUE = {"true", "yes", "y", "1", "on"}
_FALSE = {"false", "no", "n", "0", "off"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_string(field: str, value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeCoercionError(field, value, "string", f"unsupported {type(value).__name__}")


def to_number(field: str, value: Any) -> int | float:
    if isinstance(value, bool):
        raise TypeCoercionError(field, value, "number", "booleans are not numbers")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError as exc:
            raise TypeCoercionError(field, value, "number", "not numeric") from exc
    else:
        raise TypeCoercionError(field, value, "number")
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            raise TypeCoercionError(field, value, "number", "not finite")
        if number.is_integer():
            return int(number)
    return number


def to_boolean(field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise TypeCoercionError(field, value, "boolean")


def to_date(field: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds, as JavaScript dates are handed over
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise TypeCoercionError(field, value, "date", "timestamp out of range") from exc
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise TypeCoercionError(field, value, "date", "not ISO 8601") from exc
    raise TypeCoercionError(field, value, "date")


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"

    @property
    def coercer(self) -> Callable[[str, Any], Any]:
        return _COERCERS[self]


_COERCERS: dict[FieldType, Callable[[str, Any], Any]] = {
    FieldType.STRING: to_string,
    FieldType.NUMBER: to_number,
    FieldType.BOOLEAN: to_boolean,
    FieldType.DATE: to_date,
}


class FieldSpec(BaseModel):
    """One declared column: type, default and null handling."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    type: FieldType
    default: Any = None
    treat_null_as_missing: bool = Field(default=False, alias="treatNullAsMissing")
    required: bool = False

    _coerce: Callable[[str, Any], Any] = PrivateAttr()

    def model_post_init(self, _ctx) -> None:
        self._coerce = self.type.coercer

    @classmethod
    def parse(cls, declaration: "str | FieldType | dict[str, Any] | FieldSpec") -> "FieldSpec":
        """Accept ``"number"``, ``FieldType.NUMBER`` or ``{"type": ..., ...}``."""
        if isinstance(declaration, FieldSpec):
            return declaration
        if isinstance(declaration, (str, FieldType)):
            return cls(type=FieldType(declaration))
        if isinstance(declaration, dict):
            return cls.model_validate(declaration)
        raise ValueError(f"Unsupported field declaration: {declaration!r}")

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def coerce(self, field: str, value: Any) -> Any:
        return self._coerce(field, value)

    def resolve_default(self, field: str) -> Any:
        value = self.default
        if callable(value):
            value = value()
        elif self.type is FieldType.DATE and value == "now":
            return datetime.now(timezone.utc)
        return self.coerce(field, value)

    def encode(self, value: Any) -> Any:
        """Cell representation (JSON friendly)."""
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def decode(self, field: str, value: Any) -> Any:
        if value is None or value == "":
            return None
        return self.coerce(field, value)

    def describe(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.has_default and not callable(self.default):
            out["default"] = self.encode(self.default)
        if self.treat_null_as_missing:
            out["treatNullAsMissing"] = True
        if self.required:
            out["required"] = True
        return out
