"""
Two-table layout: one row per sheet, one row per sheet row.

Cells are a JSON list aligned with the sheet's header row, the way a
spreadsheet range reads.
"""

import datetime as dt

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def now_utc() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


class SheetMeta(Base):
    """Header row and identifier high-water mark of a sheet."""

    __tablename__ = "sheets"

    name = Column(String, primary_key=True)
    headers = Column(JSON, nullable=False)
    next_id = Column(Integer, nullable=False, default=1)
    created_ts = Column(DateTime(timezone=True), default=now_utc, nullable=False)


class SheetRow(Base):
    """A data row; ``position`` keeps insertion order."""

    __tablename__ = "sheet_rows"
    __table_args__ = (UniqueConstraint("sheet", "record_id", name="uq_sheet_record"),)

    position = Column(Integer, primary_key=True, autoincrement=True)
    sheet = Column(String, ForeignKey("sheets.name"), nullable=False, index=True)
    record_id = Column(Integer, nullable=False)
    cells = Column(JSON, nullable=False)
    written_ts = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)
