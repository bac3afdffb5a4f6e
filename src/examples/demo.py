"""
demo.py – One-shot walk through the shop sheets.

Uses $SHEETDB_DATABASE_URL when set, otherwise a throwaway in-memory SQLite.
"""

import os
from pprint import pprint

from dotenv import load_dotenv

from sheetdb import Database, Settings
from sheetdb.config import configure_logging
from sheetdb.shop import register_shop_schema

load_dotenv()

settings = Settings(
    name="sheetdb-demo",
    database_url=os.environ.get("SHEETDB_DATABASE_URL", "sqlite:///:memory:"),
)


def show(title, response):
    print(f"\n→ {title}  [{response.status}] {response.message}")
    pprint(response.to_dict()["data"], width=100)


def main():
    configure_logging("WARNING")
    db = register_shop_schema(Database.init(settings))

    @db.on.write()
    def log_write(table, record):
        print(f"   hook: {table} #{record.id}")

    # ── 1. A catalogue ────────────────────────────────────────────────────
    books = db.create("CATEGORY", {"name": "Books", "created_at": "2024-01-01"}).data
    unnamed = db.create("CATEGORY", {"name": None})
    show("null name falls back to the default", unnamed)

    novel = db.create("PRODUCT", {"name": "Novel", "price": "12.50", "category_fk": books.id}).data
    atlas = db.create("PRODUCT", {"name": "Atlas", "price": 40, "category_fk": books.id}).data
    show("products in Books, priciest first",
         db.get_related_records(books.id, "PRODUCT", "category_fk", {"sortBy": "price", "sortOrder": "desc"}))

    # ── 2. An order linking both products ─────────────────────────────────
    ada = db.create("CUSTOMER", {"first_name": "Ada", "email": "ada@example.com"}).data
    order = db.create("ORDER", {"customer_fk": ada.id}).data
    db.create("ORDER_DETAIL", {"order_id": order.id, "product_id": novel.id, "quantity": 1})
    db.create("ORDER_DETAIL", {"order_id": order.id, "product_id": atlas.id, "quantity": 3})
    show("products of the order", db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", order.id))

    # ── 3. Cascade delete, then restore ───────────────────────────────────
    removed = db.remove_with_cascade("PRODUCT", novel.id)
    show("novel removed with its order lines", removed)
    pprint(removed.metadata, width=100)
    show("history copy", db.read_history("PRODUCT", novel.id))
    show("novel restored", db.restore("PRODUCT", novel.id))

    # ── 4. Orphan check and paging ────────────────────────────────────────
    db.remove("PRODUCT", atlas.id)
    show("integrity check after a plain delete", db.check_table_integrity("ORDER_DETAIL"))
    show("first page of products", db.get_all("PRODUCT", {"page": 1, "pageSize": 1}))

    db.close()


if __name__ == "__main__":
    main()
