"""
Public surface for sheetdb.
Importing this module does **not** touch the database; call
`sheetdb.Database.init(settings)` during application start-up.
"""

from .config import Settings
from .core.fields import FieldSpec, FieldType
from .core.record import Record, Response
from .core.schema import SchemaRegistry, TableConfig, derive_junction_config
from .errors import (
    DuplicateTableError,
    IntegrityError,
    LockTimeoutError,
    NotFoundError,
    SheetDBError,
    TypeCoercionError,
    UnknownTableError,
    ValidationError,
)
from .query import QueryOptions
from .runtime import Database

__all__ = [
    "Database",
    "Settings",
    "Record",
    "Response",
    "TableConfig",
    "FieldSpec",
    "FieldType",
    "SchemaRegistry",
    "QueryOptions",
    "derive_junction_config",
    "SheetDBError",
    "ValidationError",
    "TypeCoercionError",
    "NotFoundError",
    "DuplicateTableError",
    "IntegrityError",
    "LockTimeoutError",
    "UnknownTableError",
]
