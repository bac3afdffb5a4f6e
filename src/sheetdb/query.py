"""
Pagination, type-aware sorting and the read cache.
"""

from __future__ import annotations

import json
import math
import threading
import time
from typing import Any, Callable, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .core.fields import FieldType
from .core.record import Record
from .core.schema import ID_COLUMN, TableConfig
from .errors import ValidationError


class QueryOptions(BaseModel):
    """``{page, pageSize, sortBy, sortOrder}``; every key optional."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1, alias="pageSize")
    sort_by: str | None = Field(default=None, alias="sortBy")
    sort_order: Literal["asc", "desc"] = Field(default="asc", alias="sortOrder")

    @classmethod
    def parse(cls, options: "QueryOptions | Mapping[str, Any] | None") -> "QueryOptions":
        if options is None:
            return cls()
        if isinstance(options, QueryOptions):
            return options
        raw = {k: v for k, v in dict(options).items() if v is not None}
        if isinstance(raw.get("sortOrder"), str):
            raw["sortOrder"] = raw["sortOrder"].lower()
        if isinstance(raw.get("sort_order"), str):
            raw["sort_order"] = raw["sort_order"].lower()
        try:
            return cls.model_validate(raw)
        except PydanticValidationError as exc:
            issues = [
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in exc.errors()
            ]
            raise ValidationError("Invalid query options", issues) from exc

    @property
    def paginated(self) -> bool:
        return self.page_size is not None

    def cache_key(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), sort_keys=True)


def _sort_key(config: TableConfig, field: str) -> Callable[[Record], Any]:
    if field == ID_COLUMN:
        return lambda rec: rec.id
    spec = config.fields[field]
    if spec.type is FieldType.STRING:
        return lambda rec: str(rec.get(field))
    return lambda rec: rec.get(field)


def sort_records(config: TableConfig, records: Sequence[Record], options: QueryOptions) -> list[Record]:
    """Stable sort by the declared type of ``sort_by``; empty cells go last."""
    field = options.sort_by
    if field is None:
        return list(records)
    if field != ID_COLUMN and field not in config.fields:
        raise ValidationError(
            f"Cannot sort {config.table_name} by unknown field '{field}'",
            [{"field": "sortBy", "error": f"unknown field {field}"}],
        )
    present = [rec for rec in records if rec.get(field) is not None]
    empty = [rec for rec in records if rec.get(field) is None]
    ordered = sorted(present, key=_sort_key(config, field), reverse=options.sort_order == "desc")
    return ordered + empty


def paginate(records: Sequence[Any], options: QueryOptions) -> tuple[list[Any], dict[str, Any]]:
    total = len(records)
    if not options.paginated:
        return list(records), {"total": total}
    page = options.page or 1
    size = options.page_size
    start = (page - 1) * size
    meta = {
        "total": total,
        "page": page,
        "pageSize": size,
        "totalPages": math.ceil(total / size) if total else 0,
    }
    return list(records[start : start + size]), meta


def apply_options(
    config: TableConfig, records: Sequence[Record], options: QueryOptions
) -> tuple[list[Record], dict[str, Any]]:
    return paginate(sort_records(config, records, options), options)


class ResultCache:
    """TTL cache keyed by (table, kind, options); writes drop a table's entries."""

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str, str], tuple[float, Any]] = {}
        # bumped on every invalidation; a put from an older generation is dropped
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    def generation(self, table: str) -> int:
        with self._lock:
            return self._generations.get(table, 0)

    def get(self, table: str, kind: str, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get((table, kind, key))
            if entry is None:
                return None
            expires, payload = entry
            if self._clock() >= expires:
                del self._entries[(table, kind, key)]
                return None
            return payload

    def put(self, table: str, kind: str, key: str, payload: Any, generation: int | None = None) -> bool:
        """Store ``payload`` unless the table was written since ``generation`` was read."""
        if self.ttl <= 0:
            return False
        with self._lock:
            if generation is not None and generation != self._generations.get(table, 0):
                return False
            self._entries[(table, kind, key)] = (self._clock() + self.ttl, payload)
            return True

    def invalidate(self, table: str, _payload: Any = None) -> None:
        with self._lock:
            self._generations[table] = self._generations.get(table, 0) + 1
            for entry_key in [k for k in self._entries if k[0] == table]:
                del self._entries[entry_key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
