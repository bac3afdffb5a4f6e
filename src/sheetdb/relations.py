"""
One-to-many and many-to-many lookups, cascade delete and junction integrity.

Every lookup is a linear scan of the sheet, as a spreadsheet range would be
read. Junction tables are undirected: the caller picks the direction by
choosing which entity is the source.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from .core.record import Record, Response
from .core.schema import RELATIONSHIP_KEY, TableConfig
from .errors import IntegrityError, NotFoundError, ValidationError
from .query import QueryOptions, apply_options

if TYPE_CHECKING:
    from .runtime import Database

logger = logging.getLogger("sheetdb.relations")


def junction_keys(junction: TableConfig, source: str, target: str) -> tuple[str, str]:
    """(source key field, target key field) of ``junction`` for this direction."""
    if source == target:
        keys = [field for field, table in junction.relations.items() if table == source]
        if len(keys) == 2:
            return keys[0], keys[1]
    else:
        source_key = junction.fk_field_for(source)
        target_key = junction.fk_field_for(target)
        if source_key and target_key:
            return source_key, target_key
    raise ValidationError(
        f"{junction.table_name} does not link {source} and {target}",
        [{"field": "junctionTable", "error": f"no keys for {source} -> {target}"}],
    )


class RelationshipResolver:
    """Relationship operations over the sheets of one `Database`."""

    def __init__(self, db: "Database"):
        self.db = db

    def get_related_records(
        self,
        foreign_key: Any,
        child_table: str,
        fk_field: str,
        options: QueryOptions | Mapping[str, Any] | None = None,
        use_cache: bool = False,
    ) -> Response:
        config = self.db.config(child_table)
        if fk_field not in config.fields:
            raise ValidationError(
                f"{child_table} has no field '{fk_field}'",
                [{"field": fk_field, "error": "unknown field"}],
            )
        wanted = config.fields[fk_field].coerce(fk_field, foreign_key)
        opts = QueryOptions.parse(options)
        kind = f"related:{fk_field}={wanted!r}"

        if use_cache:
            hit = self.db.cache.get(child_table, kind, opts.cache_key())
            if hit is not None:
                data, meta = hit
                return Response(
                    status=200,
                    message=f"Fetched {len(data)} related records from {child_table} (cached)",
                    data=data,
                    metadata={**meta, "cached": True},
                )

        generation = self.db.cache.generation(child_table)
        matches = [rec for rec in self.db.records(config) if rec.get(fk_field) == wanted]
        data, meta = apply_options(config, matches, opts)
        meta = {**meta, "foreignKey": fk_field, "value": wanted}
        if use_cache:
            self.db.cache.put(child_table, kind, opts.cache_key(), (data, meta), generation)
        logger.debug("%s.%s=%r matched %d rows", child_table, fk_field, wanted, len(matches))
        return Response(
            status=200,
            message=f"Fetched {len(data)} related records from {child_table}",
            data=data,
            metadata={**meta, "cached": False},
        )

    def get_junction_records(
        self,
        junction_table: str,
        source_table: str,
        target_table: str,
        source_id: int,
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> Response:
        junction = self.db.config(junction_table)
        target_cfg = self.db.config(target_table)
        source_key, target_key = junction_keys(junction, source_table, target_table)
        source_id = self.db.coerce_id(source_id)
        if self.db.live(self.db.config(source_table), source_id) is None:
            raise NotFoundError(source_table, source_id)

        targets = {rec.id: rec for rec in self.db.records(target_cfg)}
        merged: list[Record] = []
        missing: list[int] = []
        for row in self.db.records(junction):
            if row.get(source_key) != source_id:
                continue
            target = targets.get(row.get(target_key))
            if target is None:
                missing.append(row.id)
                continue
            values = {**target.values(), RELATIONSHIP_KEY: row.to_dict()}
            merged.append(Record(id=target.id, **values))

        data, meta = apply_options(target_cfg, merged, QueryOptions.parse(options))
        metadata = {
            **meta,
            "junctionTable": junction_table,
            "sourceTable": source_table,
            "targetTable": target_table,
            "sourceId": source_id,
            "sourceKey": source_key,
            "targetKey": target_key,
            "missingTargets": missing,
        }
        return Response(
            status=200,
            message=f"Fetched {len(data)} {target_table} records linked to {source_table} {source_id}",
            data=data,
            metadata=metadata,
        )

    def remove_with_cascade(self, table: str, record_id: int, history_table: str | None = None) -> Response:
        """Junction rows first, then the record itself."""
        config = self.db.config(table)
        record_id = self.db.coerce_id(record_id)
        if self.db.live(config, record_id) is None:
            raise NotFoundError(table, record_id)

        removed: dict[str, list[int]] = {}
        for junction in self.db.schema.junctions_for(table):
            keys = [field for field, target in junction.relations.items() if target == table]
            with self.db.guard.hold(junction.table_name):
                ids = [
                    row.id
                    for row in self.db.records(junction)
                    if any(row.get(key) == record_id for key in keys)
                ]
                if ids:
                    moved = self.db.store.move_many(
                        junction.table_name, junction.history_table_name, ids
                    )
                    for row in moved:
                        self.db.events.emit("remove", junction.table_name, Record.from_row(junction, row))
                    logger.info(
                        "Cascade from %s %s moved %s rows of %s to history",
                        table, record_id, len(ids), junction.table_name,
                    )
            removed[junction.table_name] = ids

        response = self.db.remove_record(table, record_id, history_table)
        response.message = f"{response.message}, cascade cleaned {sum(map(len, removed.values()))} junction rows"
        response.metadata = {"cascade": removed}
        return response

    def check_table_integrity(self, junction_table: str, history_table: str | None = None) -> Response:
        junction = self.db.config(junction_table)
        if not junction.is_junction:
            raise ValidationError(
                f"{junction_table} is not a junction table",
                [{"field": "junctionTable", "error": "no relations declared"}],
            )
        history = history_table or junction.history_table_name
        if history != junction.history_table_name:
            self.db.store.ensure_sheet(history, junction.headers)

        with self.db.guard.hold(junction_table):
            live_ids = {
                table: {rec.id for rec in self.db.records(self.db.config(table))}
                for table in set(junction.relations.values())
            }
            rows = self.db.records(junction)
            issues: list[IntegrityError] = []
            orphans: list[int] = []
            for row in rows:
                broken = [
                    IntegrityError(junction_table, row.id, field, table, row.get(field))
                    for field, table in junction.relations.items()
                    if row.get(field) not in live_ids[table]
                ]
                if broken:
                    issues.extend(broken)
                    orphans.append(row.id)

            for record_id in orphans:
                moved = self.db.store.move(junction_table, history, record_id)
                self.db.events.emit("remove", junction_table, Record.from_row(junction, moved))

        for issue in issues:
            logger.warning("Integrity: %s", issue.message)
        return Response(
            status=200,
            message=f"Checked {len(rows)} rows of {junction_table}, moved {len(orphans)} to {history}",
            data={"checked": len(rows), "removed": orphans},
            metadata={"issues": [issue.to_dict() for issue in issues]},
        )
