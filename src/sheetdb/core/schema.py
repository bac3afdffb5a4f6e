"""
Table configurations and the registry that holds them.

`derive_junction_config` is a pure function: it only builds a `TableConfig`,
registering it is up to the caller.
"""

from __future__ import annotations

import threading
from typing import Any, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import DuplicateTableError, UnknownTableError
from .fields import FieldSpec, FieldType

ID_COLUMN = "id"
# key under which junction reads attach the linking row to each target record
RELATIONSHIP_KEY = "relationship"


class TableConfig(BaseModel):
    """Schema of one sheet plus the name of its history sheet."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    table_name: str = Field(alias="tableName", min_length=1)
    history_table_name: str = Field(default="", alias="historyTableName")
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    # junction tables only: foreign-key field -> referenced table
    relations: dict[str, str] = Field(default_factory=dict)

    @field_validator("fields", mode="before")
    @classmethod
    def _parse_fields(cls, value: Any) -> dict[str, FieldSpec]:
        if not isinstance(value, Mapping):
            raise ValueError("fields must be a mapping of name -> declaration")
        return {str(name): FieldSpec.parse(decl) for name, decl in value.items()}

    @model_validator(mode="after")
    def _check(self) -> "TableConfig":
        if ID_COLUMN in self.fields:
            raise ValueError(f"'{ID_COLUMN}' is implicit and cannot be declared")
        if RELATIONSHIP_KEY in self.fields:
            raise ValueError(f"'{RELATIONSHIP_KEY}' is reserved for junction reads")
        for fk_field in self.relations:
            if fk_field not in self.fields:
                raise ValueError(f"relation field '{fk_field}' is not a declared field")
        if not self.history_table_name:
            object.__setattr__(self, "history_table_name", f"DELETED_{self.table_name}")
        if self.history_table_name == self.table_name:
            raise ValueError("history table must differ from the live table")
        return self

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TableConfig":
        """Build from ``{"tableName", "historyTableName", "fields"}`` (or snake_case)."""
        return cls.model_validate(dict(raw))

    @property
    def headers(self) -> list[str]:
        return [ID_COLUMN, *self.fields]

    @property
    def is_junction(self) -> bool:
        return len(self.relations) == 2

    def fk_field_for(self, table: str) -> str | None:
        for fk_field, target in self.relations.items():
            if target == table:
                return fk_field
        return None

    def describe(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "tableName": self.table_name,
            "historyTableName": self.history_table_name,
            "fields": {name: spec.describe() for name, spec in self.fields.items()},
        }
        if self.relations:
            out["relations"] = dict(self.relations)
        return out


def _fk_name(table: str) -> str:
    return f"{table.lower()}_id"


def derive_junction_config(
    entity_a: "TableConfig | str",
    entity_b: "TableConfig | str",
    extra_fields: Mapping[str, Any] | None = None,
    table_name: str | None = None,
    history_table_name: str | None = None,
) -> TableConfig:
    """Synthesize the config of a many-to-many table between two entities.

    Key fields are ``<a>_id`` and ``<b>_id``. A self relation names the second
    key ``related_<a>_id``; extra fields that collide with a key are prefixed
    with the junction table name.
    """
    name_a = entity_a.table_name if isinstance(entity_a, TableConfig) else entity_a
    name_b = entity_b.table_name if isinstance(entity_b, TableConfig) else entity_b
    junction = table_name or f"{name_a}_{name_b}"

    fk_a = _fk_name(name_a)
    fk_b = _fk_name(name_b)
    if fk_b == fk_a:
        fk_b = f"related_{fk_a}"

    fields: dict[str, Any] = {
        fk_a: FieldSpec(type=FieldType.NUMBER, required=True),
        fk_b: FieldSpec(type=FieldType.NUMBER, required=True),
    }
    extras = dict(extra_fields or {})
    if "created_at" not in extras:
        fields["created_at"] = FieldSpec(type=FieldType.DATE, default="now")
    for field, decl in extras.items():
        if field in (fk_a, fk_b):
            field = f"{junction.lower()}_{field}"
        fields[field] = decl

    return TableConfig(
        table_name=junction,
        history_table_name=history_table_name or f"DELETED_{junction}",
        fields=fields,
        relations={fk_a: name_a, fk_b: name_b},
    )


class SchemaRegistry:
    """Registered table configs, keyed by table name."""

    def __init__(self) -> None:
        self._tables: dict[str, TableConfig] = {}
        self._lock = threading.Lock()

    def register(self, config: TableConfig) -> TableConfig:
        with self._lock:
            if config.table_name in self._tables:
                raise DuplicateTableError(config.table_name)
            self._tables[config.table_name] = config
        return config

    def get(self, table: str) -> TableConfig:
        try:
            return self._tables[table]
        except KeyError:
            raise UnknownTableError(table) from None

    def junctions_for(self, table: str) -> list[TableConfig]:
        return [
            cfg
            for cfg in self._tables.values()
            if cfg.is_junction and table in cfg.relations.values()
        ]

    def names(self) -> list[str]:
        return list(self._tables)

    def __contains__(self, table: object) -> bool:
        return table in self._tables

    def __iter__(self) -> Iterator[TableConfig]:
        return iter(list(self._tables.values()))

    def __len__(self) -> int:
        return len(self._tables)
