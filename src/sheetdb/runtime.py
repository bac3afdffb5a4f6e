"""
sheetdb.runtime  ──  the `Database` handle every caller works through.

Usage pattern
-------------
    from sheetdb import Database, Settings

    db = Database.init(Settings(database_url="sqlite:///shop.sqlite3"))
    db.register_table({"tableName": "CATEGORY", "fields": {"name": "string"}})
    db.create("CATEGORY", {"name": "Books"})

Every public method returns a `Response` envelope. Only an unregistered
table name (`UnknownTableError`) is raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import Engine

from .config import Settings
from .core.record import Record, Response
from .core.schema import ID_COLUMN, SchemaRegistry, TableConfig, derive_junction_config
from .core.validator import validate, validate_with_logs
from .errors import NotFoundError, SheetDBError, UnknownTableError, ValidationError
from .events import EVENT_TYPES, EventRegistry, OnDecorator
from .persistence.store import SheetStore
from .query import QueryOptions, ResultCache, apply_options
from .queues.guard import TableGuard, guarded
from .relations import RelationshipResolver

logger = logging.getLogger("sheetdb")

ConfigLike = TableConfig | Mapping[str, Any]


def _as_config(config: ConfigLike) -> TableConfig:
    if isinstance(config, TableConfig):
        return config
    try:
        return TableConfig.from_dict(config)
    except PydanticValidationError as exc:
        issues = [
            {"field": ".".join(str(p) for p in err["loc"]) or "config", "error": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid table config", issues) from exc


class Database:
    """Handle over one set of sheets: schema, store, locks, cache and hooks."""

    def __init__(self, store: SheetStore, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.store = store
        self.schema = SchemaRegistry()
        self.guard = TableGuard(timeout=self.settings.lock_timeout_seconds)
        self.cache = ResultCache(ttl_seconds=self.settings.cache_ttl_seconds)
        self.events = EventRegistry()
        self.on = OnDecorator(self.events)
        self.relations = RelationshipResolver(self)
        for event_type in EVENT_TYPES:
            self.events.register(event_type, (), self.cache.invalidate)

    # ---------- lifecycle ----------
    @classmethod
    def init(cls, settings: Optional[Settings] = None, *, engine: Optional[Engine] = None) -> "Database":
        from .bootstrap import init_database

        return init_database(settings or Settings(), engine=engine)

    @property
    def name(self) -> str:
        return self.settings.name

    def close(self) -> None:
        self.cache.clear()
        self.store.engine.dispose()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- helpers used by the resolver ----------
    def config(self, table: str) -> TableConfig:
        return self.schema.get(table)

    def records(self, config: TableConfig, sheet: Optional[str] = None) -> list[Record]:
        return [Record.from_row(config, row) for row in self.store.rows(sheet or config.table_name)]

    def live(self, config: TableConfig, record_id: int) -> Optional[Record]:
        row = self.store.get(config.table_name, record_id)
        return Record.from_row(config, row) if row is not None else None

    @staticmethod
    def coerce_id(value: Any) -> int:
        if isinstance(value, bool):
            value = None
        try:
            record_id = int(value)
        except (TypeError, ValueError):
            record_id = 0
        if record_id <= 0 or (isinstance(value, float) and not value.is_integer()):
            raise ValidationError(
                f"Invalid record id {value!r}",
                [{"field": ID_COLUMN, "error": "must be a positive integer"}],
            )
        return record_id

    @staticmethod
    def _encode(config: TableConfig, values: Mapping[str, Any]) -> dict[str, Any]:
        return {name: config.fields[name].encode(value) for name, value in values.items()}

    def _respond(self, fn: Callable[..., Response], *args: Any, **kwargs: Any) -> Response:
        try:
            return fn(*args, **kwargs)
        except UnknownTableError:
            raise
        except SheetDBError as exc:
            logger.info("%s failed: %s", fn.__name__.lstrip("_"), exc.message)
            return Response(status=exc.status, message=exc.message, data=exc.data)
        except Exception as exc:
            logger.exception("Unexpected failure in %s", fn.__name__.lstrip("_"))
            return Response(status=500, message=f"Unexpected error: {exc}")

    # ---------- schema ----------
    def register_table(self, config: ConfigLike) -> Response:
        """Attach a table to this handle and make sure its sheets exist."""

        def _register() -> Response:
            cfg = self.schema.register(_as_config(config))
            self.store.ensure_sheet(cfg.table_name, cfg.headers)
            self.store.ensure_sheet(cfg.history_table_name, cfg.headers)
            logger.info("Registered table %s", cfg.table_name)
            return Response(status=200, message=f"Table {cfg.table_name} registered", data=cfg.describe())

        return self._respond(_register)

    put_table_into_db_context = register_table

    def create_table(self, config: ConfigLike) -> Response:
        """Create the live and history sheets without registering the table."""

        def _create_table() -> Response:
            cfg = _as_config(config)
            created = self.store.ensure_sheet(cfg.table_name, cfg.headers)
            self.store.ensure_sheet(cfg.history_table_name, cfg.headers)
            if created:
                return Response(status=201, message=f"Table {cfg.table_name} created", data=cfg.describe())
            return Response(status=200, message=f"Table {cfg.table_name} already exists", data=cfg.describe())

        return self._respond(_create_table)

    def create_many_to_many_table_config(
        self,
        entity1_table_name: str,
        entity2_table_name: str,
        fields_related_to_both_entities: Optional[Mapping[str, Any]] = None,
        table_name: Optional[str] = None,
    ) -> Response:
        """Derive (not register) a junction config; ``data`` is the `TableConfig`."""

        def _derive() -> Response:
            cfg = derive_junction_config(
                self.config(entity1_table_name),
                self.config(entity2_table_name),
                fields_related_to_both_entities,
                table_name=table_name,
            )
            return Response(
                status=200,
                message=f"Junction config {cfg.table_name} derived",
                data=cfg,
                metadata={"fields": list(cfg.fields), "relations": dict(cfg.relations)},
            )

        return self._respond(_derive)

    # ---------- writes ----------
    def create(self, table: str, record: Mapping[str, Any], allowed_fields: Optional[Iterable[str]] = None) -> Response:
        self.config(table)
        return self._respond(self._create, table, record, allowed_fields, False)

    def create_with_logs(
        self, table: str, record: Mapping[str, Any], allowed_fields: Optional[Iterable[str]] = None
    ) -> Response:
        self.config(table)
        return self._respond(self._create, table, record, allowed_fields, True)

    def update(
        self,
        table: str,
        record_id: int,
        patch: Mapping[str, Any],
        allowed_fields: Optional[Iterable[str]] = None,
    ) -> Response:
        self.config(table)
        return self._respond(self._update, table, record_id, patch, allowed_fields, False)

    def update_with_logs(
        self,
        table: str,
        record_id: int,
        patch: Mapping[str, Any],
        allowed_fields: Optional[Iterable[str]] = None,
    ) -> Response:
        self.config(table)
        return self._respond(self._update, table, record_id, patch, allowed_fields, True)

    def remove(self, table: str, record_id: int, history_table: Optional[str] = None) -> Response:
        self.config(table)
        return self._respond(self.remove_record, table, record_id, history_table)

    def remove_with_cascade(self, table: str, record_id: int, history_table: Optional[str] = None) -> Response:
        self.config(table)
        return self._respond(self.relations.remove_with_cascade, table, record_id, history_table)

    def restore(self, table: str, record_id: int, history_table: Optional[str] = None) -> Response:
        """Move a record back from history to the live sheet under its old id."""
        self.config(table)
        return self._respond(self._restore, table, record_id, history_table)

    @guarded
    def _create(self, table, raw, allowed_fields, with_logs) -> Response:
        config = self.config(table)
        if with_logs:
            report, trace, error = validate_with_logs(config, raw, allowed_fields)
            if error is not None:
                return Response(
                    status=error.status,
                    message=error.message,
                    data=error.issues,
                    metadata={"trace": [t.model_dump(mode="json") for t in trace]},
                )
        else:
            report = validate(config, raw, allowed_fields)

        encoded = self._encode(config, report.values)
        record_id = self.store.append(table, encoded)
        record = Record.from_row(config, {ID_COLUMN: record_id, **encoded})
        logger.info("Created %s %s", table, record_id)
        self.events.emit("create", table, record)
        return Response(
            status=201,
            message=f"Record {record_id} created in {table}",
            data=record,
            metadata=self._report_metadata(report, with_logs),
        )

    @guarded
    def _update(self, table, record_id, patch, allowed_fields, with_logs) -> Response:
        config = self.config(table)
        record_id = self.coerce_id(record_id)
        current = self.live(config, record_id)
        if current is None:
            raise NotFoundError(table, record_id)

        allowed = set(config.fields) if allowed_fields is None else set(allowed_fields)
        base = {k: v for k, v in current.values().items() if k in allowed}
        merged = {**base, **{k: v for k, v in patch.items() if k != ID_COLUMN}}
        if with_logs:
            report, trace, error = validate_with_logs(config, merged, allowed_fields)
            if error is not None:
                return Response(
                    status=error.status,
                    message=error.message,
                    data=error.issues,
                    metadata={"trace": [t.model_dump(mode="json") for t in trace]},
                )
        else:
            report = validate(config, merged, allowed_fields)

        encoded = self._encode(config, {**current.values(), **report.values})
        self.store.replace(table, record_id, encoded)
        record = Record.from_row(config, {ID_COLUMN: record_id, **encoded})
        logger.info("Updated %s %s", table, record_id)
        self.events.emit("update", table, record)
        return Response(
            status=200,
            message=f"Record {record_id} updated in {table}",
            data=record,
            metadata=self._report_metadata(report, with_logs),
        )

    @guarded
    def remove_record(self, table: str, record_id: int, history_table: Optional[str] = None) -> Response:
        """Move one record to history (raises instead of returning an error envelope)."""
        config = self.config(table)
        record_id = self.coerce_id(record_id)
        history = self._history_sheet(config, history_table)
        row = self.store.move(table, history, record_id)
        record = Record.from_row(config, row)
        logger.info("Moved %s %s to %s", table, record_id, history)
        self.events.emit("remove", table, record)
        return Response(status=200, message=f"Record {record_id} moved from {table} to {history}", data=record)

    @guarded
    def _restore(self, table, record_id, history_table) -> Response:
        config = self.config(table)
        record_id = self.coerce_id(record_id)
        history = self._history_sheet(config, history_table)
        row = self.store.move(history, table, record_id)
        record = Record.from_row(config, row)
        logger.info("Restored %s %s from %s", table, record_id, history)
        self.events.emit("restore", table, record)
        return Response(status=200, message=f"Record {record_id} restored to {table}", data=record)

    def _history_sheet(self, config: TableConfig, history_table: Optional[str]) -> str:
        history = history_table or config.history_table_name
        if history == config.table_name:
            raise ValidationError(
                "History table must differ from the live table",
                [{"field": "historyTableName", "error": "same as tableName"}],
            )
        if history != config.history_table_name:
            self.store.ensure_sheet(history, config.headers)
        return history

    @staticmethod
    def _report_metadata(report, with_logs: bool) -> Optional[dict[str, Any]]:
        if with_logs or report.missing or report.errors or report.ignored:
            return report.summary(with_trace=with_logs)
        return None

    # ---------- reads ----------
    def read(self, table: str, record_id: int) -> Response:
        config = self.config(table)

        def _read() -> Response:
            rid = self.coerce_id(record_id)
            record = self.live(config, rid)
            if record is None:
                raise NotFoundError(table, rid)
            return Response(status=200, message=f"Record {rid} found in {table}", data=record)

        return self._respond(_read)

    def read_history(self, table: str, record_id: int) -> Response:
        config = self.config(table)

        def _read_history() -> Response:
            rid = self.coerce_id(record_id)
            row = self.store.get(config.history_table_name, rid)
            if row is None:
                raise NotFoundError(config.history_table_name, rid)
            return Response(
                status=200,
                message=f"Record {rid} found in {config.history_table_name}",
                data=Record.from_row(config, row),
            )

        return self._respond(_read_history)

    def read_id_list(self, table: str, ids: Iterable[Any]) -> Response:
        config = self.config(table)

        def _read_id_list() -> Response:
            wanted = [self.coerce_id(i) for i in ids]
            by_id = {rec.id: rec for rec in self.records(config)}
            found = [by_id[i] for i in wanted if i in by_id]
            missing = [i for i in wanted if i not in by_id]
            return Response(
                status=200,
                message=f"Found {len(found)} of {len(wanted)} records in {table}",
                data=found,
                not_found=missing,
            )

        return self._respond(_read_id_list)

    def get_all(
        self,
        table: str,
        options: QueryOptions | Mapping[str, Any] | None = None,
        use_cache: bool = False,
    ) -> Response:
        config = self.config(table)

        def _get_all() -> Response:
            opts = QueryOptions.parse(options)
            if use_cache:
                hit = self.cache.get(table, "all", opts.cache_key())
                if hit is not None:
                    data, meta = hit
                    logger.debug("Cache hit for %s %s", table, opts.cache_key())
                    return Response(
                        status=200,
                        message=f"Fetched {len(data)} records from {table} (cached)",
                        data=data,
                        metadata={**meta, "cached": True},
                    )
            generation = self.cache.generation(table)
            data, meta = apply_options(config, self.records(config), opts)
            if use_cache:
                self.cache.put(table, "all", opts.cache_key(), (data, meta), generation)
            return Response(
                status=200,
                message=f"Fetched {len(data)} records from {table}",
                data=data,
                metadata={**meta, "cached": False},
            )

        return self._respond(_get_all)

    def get_related_records(
        self,
        foreign_key: Any,
        child_table: str,
        fk_field: str,
        options: QueryOptions | Mapping[str, Any] | None = None,
        use_cache: bool = False,
    ) -> Response:
        self.config(child_table)
        return self._respond(
            self.relations.get_related_records, foreign_key, child_table, fk_field, options, use_cache
        )

    def get_junction_records(
        self,
        junction_table: str,
        source_table: str,
        target_table: str,
        source_id: int,
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> Response:
        for table in (junction_table, source_table, target_table):
            self.config(table)
        return self._respond(
            self.relations.get_junction_records,
            junction_table,
            source_table,
            target_table,
            source_id,
            options,
        )

    def check_table_integrity(self, junction_table: str, history_table: Optional[str] = None) -> Response:
        self.config(junction_table)
        return self._respond(self.relations.check_table_integrity, junction_table, history_table)
