"""
Single entry-point that wires SQLAlchemy into a `Database` handle.
Call once at start-up, e.g. in a FastAPI lifespan.
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from .config import Settings, logger
from .persistence.store import SheetStore
from .runtime import Database


def create_sheet_engine(database_url: str) -> Engine:
    """Engine for ``database_url``; SQLite gets thread-friendly connect args."""
    url = make_url(database_url)
    kwargs: dict = {"future": True}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


def init_database(settings: Settings, engine: Optional[Engine] = None) -> Database:
    """
    Create the sheet tables if needed and return a fresh `Database` handle.
    Tables still have to be registered on the handle.
    """
    engine = engine or create_sheet_engine(settings.database_url)
    store = SheetStore(engine)
    store.create_all()
    logger.info("Database %s ready on %s", settings.name, engine.url.render_as_string(hide_password=True))
    return Database(store, settings)
