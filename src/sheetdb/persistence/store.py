"""
Thin data-access layer around the `sheets` / `sheet_rows` tables.

Rows go in and out as plain dicts keyed by header name; typing is the
caller's business. Every public write runs in its own transaction.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Any, Iterable, Iterator, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from .models import Base, SheetMeta, SheetRow

logger = logging.getLogger("sheetdb.store")

ID_COLUMN = "id"


class SheetStore:
    """Sheets persisted through SQLAlchemy, one JSON cell list per row."""

    def __init__(self, engine: Engine):
        self.engine = engine
        # SQLite has a single writer; overlapping sessions only trade locks
        self._serial = threading.RLock() if engine.dialect.name == "sqlite" else None

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._serial if self._serial is not None else nullcontext():
            with Session(self.engine, future=True) as s:
                try:
                    yield s
                    s.commit()
                except Exception:
                    s.rollback()
                    raise

    # ---- sheets ---------------------------------------------------------
    def ensure_sheet(self, name: str, headers: Sequence[str]) -> bool:
        """Create the sheet or append missing header columns. True if created."""
        with self._session() as s:
            meta = s.get(SheetMeta, name)
            if meta is None:
                s.add(SheetMeta(name=name, headers=list(headers), next_id=1))
                logger.info("Created sheet %s", name)
                return True
            missing = [h for h in headers if h not in meta.headers]
            if missing:
                meta.headers = [*meta.headers, *missing]
                logger.info("Sheet %s: appended columns %s", name, missing)
            return False

    def headers(self, name: str) -> list[str] | None:
        with self._session() as s:
            meta = s.get(SheetMeta, name)
            return list(meta.headers) if meta else None

    # ---- reads ----------------------------------------------------------
    def rows(self, name: str) -> list[dict[str, Any]]:
        """All rows of a sheet, in insertion order."""
        with self._session() as s:
            meta = s.get(SheetMeta, name)
            if meta is None:
                return []
            q = select(SheetRow).where(SheetRow.sheet == name).order_by(SheetRow.position)
            return [self._to_dict(meta.headers, row.cells) for (row,) in s.execute(q)]

    def get(self, name: str, record_id: int) -> dict[str, Any] | None:
        with self._session() as s:
            meta = s.get(SheetMeta, name)
            if meta is None:
                return None
            row = self._find(s, name, record_id)
            return self._to_dict(meta.headers, row.cells) if row else None

    # ---- writes ---------------------------------------------------------
    def append(self, name: str, values: dict[str, Any]) -> int:
        """Insert a row under the next identifier and return it."""
        with self._session() as s:
            meta = self._meta(s, name)
            record_id = meta.next_id
            meta.next_id = record_id + 1
            self._insert_row(s, meta, record_id, values)
            return record_id

    def replace(self, name: str, record_id: int, values: dict[str, Any]) -> None:
        with self._session() as s:
            meta = self._meta(s, name)
            row = self._find(s, name, record_id)
            if row is None:
                raise NotFoundError(name, record_id)
            row.cells = self._to_cells(meta.headers, record_id, values)

    def move(self, source: str, target: str, record_id: int) -> dict[str, Any]:
        """Move one row between sheets atomically; returns the moved row."""
        return self.move_many(source, target, [record_id])[0]

    def move_many(self, source: str, target: str, record_ids: Iterable[int]) -> list[dict[str, Any]]:
        """Move rows in one transaction: all of them or none."""
        moved: list[dict[str, Any]] = []
        with self._session() as s:
            src_meta = self._meta(s, source)
            dst_meta = self._meta(s, target)
            for record_id in record_ids:
                row = self._find(s, source, record_id)
                if row is None:
                    raise NotFoundError(source, record_id)
                values = self._to_dict(src_meta.headers, row.cells)
                self._insert_row(s, dst_meta, record_id, values)
                s.delete(row)
                moved.append(values)
            s.flush()
        return moved

    # ---- helpers --------------------------------------------------------
    def _meta(self, s: Session, name: str) -> SheetMeta:
        meta = s.get(SheetMeta, name)
        if meta is None:
            raise LookupError(f"Sheet {name} does not exist")
        return meta

    @staticmethod
    def _find(s: Session, name: str, record_id: int) -> SheetRow | None:
        q = select(SheetRow).where(SheetRow.sheet == name, SheetRow.record_id == record_id)
        return s.execute(q).scalar_one_or_none()

    def _insert_row(self, s: Session, meta: SheetMeta, record_id: int, values: dict[str, Any]) -> None:
        s.add(
            SheetRow(
                sheet=meta.name,
                record_id=record_id,
                cells=self._to_cells(meta.headers, record_id, values),
            )
        )
        if record_id >= meta.next_id:
            meta.next_id = record_id + 1
        s.flush()

    @staticmethod
    def _to_cells(headers: Sequence[str], record_id: int, values: dict[str, Any]) -> list[Any]:
        return [record_id if h == ID_COLUMN else values.get(h) for h in headers]

    @staticmethod
    def _to_dict(headers: Sequence[str], cells: Sequence[Any]) -> dict[str, Any]:
        padded = list(cells) + [None] * (len(headers) - len(cells))
        return dict(zip(headers, padded))
