"""
sheetdb.events  ──  write hooks per table

    db.on.create("CATEGORY")(handler)      # handler(table, record)
    db.on.remove("*")(handler)             # every table

Handlers run after the write committed, still inside the table lock.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger("sheetdb.events")

EVENT_TYPES = ("create", "update", "remove", "restore")
ALL_TABLES = "*"

Handler = Callable[[str, Any], None]


class EventRegistry:
    """Maps event type -> table name -> handlers (in registration order)."""

    def __init__(self):
        self._handlers: Dict[str, Dict[str, List[Handler]]] = {
            event_type: defaultdict(list) for event_type in EVENT_TYPES
        }

    def register(self, event_type: str, tables: tuple[str, ...], handler: Handler) -> None:
        if event_type not in self._handlers:
            raise ValueError(f"Unknown event type {event_type!r}")
        for table in tables or (ALL_TABLES,):
            if handler not in self._handlers[event_type][table]:
                self._handlers[event_type][table].append(handler)

    def emit(self, event_type: str, table: str, payload: Any) -> None:
        by_table = self._handlers[event_type]
        for handler in [*by_table.get(table, ()), *by_table.get(ALL_TABLES, ())]:
            try:
                handler(table, payload)
            except Exception:
                # the write already committed
                logger.exception("%s handler %r failed for %s", event_type, handler, table)


class OnDecorator:
    """Decorator namespace bound to one registry."""

    def __init__(self, registry: EventRegistry):
        self._registry = registry

    def _decorator(self, event_type: str, tables: tuple[str, ...]) -> Callable:
        def decorator(func: Handler) -> Handler:
            self._registry.register(event_type, tables, func)
            return func

        return decorator

    def create(self, *tables: str) -> Callable:
        return self._decorator("create", tables)

    def update(self, *tables: str) -> Callable:
        return self._decorator("update", tables)

    def remove(self, *tables: str) -> Callable:
        return self._decorator("remove", tables)

    def restore(self, *tables: str) -> Callable:
        return self._decorator("restore", tables)

    def write(self, *tables: str) -> Callable:
        """Any of create/update/remove/restore."""

        def decorator(func: Handler) -> Handler:
            for event_type in EVENT_TYPES:
                self._registry.register(event_type, tables, func)
            return func

        return decorator
