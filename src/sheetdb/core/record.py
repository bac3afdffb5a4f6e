"""
Record and response kernel, pure Pydantic (no SQLAlchemy imports).

* `Record` is one decoded sheet row: ``id`` plus the declared fields.
* `Response` is the envelope every `Database` call returns.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .schema import ID_COLUMN, TableConfig


class Record(BaseModel):
    """Immutable row snapshot; field values live in the model extras."""

    id: int
    model_config = ConfigDict(frozen=True, extra="allow")

    @classmethod
    def from_row(cls, config: TableConfig, row: Mapping[str, Any]) -> "Record":
        """Decode a stored row (header -> cell) into typed values."""
        values = {
            name: spec.decode(name, row.get(name)) for name, spec in config.fields.items()
        }
        return cls(id=int(row[ID_COLUMN]), **values)

    def get(self, field: str, default: Any = None) -> Any:
        if field == ID_COLUMN:
            return self.id
        return (self.model_extra or {}).get(field, default)

    def values(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="python")


class Response(BaseModel):
    """Uniform envelope: ``{status, message, data, metadata?, notFound?}``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: int
    message: str
    data: Any = None
    metadata: dict[str, Any] | None = None
    not_found: list[int] | None = Field(default=None, serialization_alias="notFound")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> dict[str, Any]:
        exclude = {name for name in ("metadata", "not_found") if getattr(self, name) is None}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
