"""
Error taxonomy for sheetdb.

Every error carries the HTTP-style ``status`` the envelope reports for it.
Only `UnknownTableError` is meant to escape the `Database` API.
"""

from __future__ import annotations

from typing import Any


class SheetDBError(Exception):
    status = 500

    def __init__(self, message: str, *, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data


class TypeCoercionError(SheetDBError):
    """A single value could not be converted to its declared field type."""

    status = 400

    def __init__(self, field: str, value: Any, type_name: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot convert {value!r} to {type_name} for '{field}'{detail}")
        self.field = field
        self.value = value
        self.type_name = type_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": repr(self.value),
            "type": self.type_name,
            "error": self.message,
        }


class ValidationError(SheetDBError):
    """A required field is missing or unusable; the write is aborted."""

    status = 400

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None):
        super().__init__(message, data=issues or [])
        self.issues = issues or []


class NotFoundError(SheetDBError):
    status = 404

    def __init__(self, table: str, record_id: int):
        super().__init__(f"Record {record_id} not found in {table}")
        self.table = table
        self.record_id = record_id


class DuplicateTableError(SheetDBError):
    status = 409

    def __init__(self, table: str):
        super().__init__(f"Table {table} is already registered")
        self.table = table


class IntegrityError(SheetDBError):
    """A junction row points at a record that is not live. Reported, never raised."""

    status = 409

    def __init__(self, table: str, record_id: int, field: str, target_table: str, value: Any):
        super().__init__(
            f"{table} row {record_id}: {field}={value!r} has no live record in {target_table}"
        )
        self.table = table
        self.record_id = record_id
        self.field = field
        self.target_table = target_table
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            "field": self.field,
            "targetTable": self.target_table,
            "value": self.value,
            "error": self.message,
        }


class LockTimeoutError(SheetDBError):
    status = 423

    def __init__(self, table: str, timeout: float):
        super().__init__(f"Could not lock {table} within {timeout:g}s, retry later")
        self.table = table
        self.timeout = timeout


class UnknownTableError(KeyError):
    """Raised for table names that were never registered (caller bug)."""

    def __init__(self, table: str):
        super().__init__(table)
        self.table = table

    def __str__(self) -> str:
        return f"Table {self.table} is not registered"
