"""
The shop schema served by the demo web app.

CATEGORY 1-n PRODUCT, CUSTOMER 1-n ORDER, ORDER n-m PRODUCT via ORDER_DETAIL.
"""

from __future__ import annotations

from .core.schema import TableConfig, derive_junction_config
from .runtime import Database

CATEGORY = TableConfig.from_dict(
    {
        "tableName": "CATEGORY",
        "historyTableName": "DELETED_CATEGORY",
        "fields": {
            # default + treatNullAsMissing: a null name becomes "default_name"
            "name": {"type": "string", "default": "default_name", "treatNullAsMissing": True},
            "created_at": "date",
        },
    }
)

PRODUCT = TableConfig.from_dict(
    {
        "tableName": "PRODUCT",
        "historyTableName": "DELETED_PRODUCT",
        "fields": {
            "name": "string",
            "price": "number",
            "category_fk": "number",
            "created_at": "date",
        },
    }
)

CUSTOMER = TableConfig.from_dict(
    {
        "tableName": "CUSTOMER",
        "historyTableName": "DELETED_CUSTOMER",
        "fields": {
            "first_name": "string",
            "last_name": "string",
            "email": "string",
            "address": "string",
            "created_at": "date",
        },
    }
)

ORDER = TableConfig.from_dict(
    {
        "tableName": "ORDER",
        "historyTableName": "DELETED_ORDER",
        "fields": {
            "customer_fk": "number",
            "created_at": "date",
        },
    }
)

ORDER_DETAIL = derive_junction_config(
    ORDER,
    PRODUCT,
    {"quantity": "number"},
    table_name="ORDER_DETAIL",
)

SHOP_TABLES = (CATEGORY, PRODUCT, CUSTOMER, ORDER, ORDER_DETAIL)


def register_shop_schema(db: Database) -> Database:
    for config in SHOP_TABLES:
        if config.table_name not in db.schema:
            response = db.register_table(config)
            if not response.ok:
                raise RuntimeError(f"Could not register {config.table_name}: {response.message}")
    return db
