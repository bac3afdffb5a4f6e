import pytest

from sheetdb import Database, Settings
from sheetdb.shop import register_shop_schema


@pytest.fixture
def settings(tmp_path):
    """File-backed SQLite so worker threads get their own connections."""
    return Settings(
        name="test-shop",
        database_url=f"sqlite:///{tmp_path / 'sheets.sqlite3'}",
        lock_timeout_seconds=2.0,
        cache_ttl_seconds=60.0,
    )


@pytest.fixture
def db(settings):
    handle = register_shop_schema(Database.init(settings))
    yield handle
    handle.close()


@pytest.fixture
def shop(db):
    """A category, two products, a customer with one order holding both products."""
    category = db.create("CATEGORY", {"name": "Books", "created_at": "2024-01-01"}).data
    novel = db.create(
        "PRODUCT", {"name": "Novel", "price": 12.5, "category_fk": category.id}
    ).data
    atlas = db.create(
        "PRODUCT", {"name": "Atlas", "price": 40, "category_fk": category.id}
    ).data
    customer = db.create(
        "CUSTOMER", {"first_name": "Ada", "last_name": "Byron", "email": "ada@example.com"}
    ).data
    order = db.create("ORDER", {"customer_fk": customer.id}).data
    db.create("ORDER_DETAIL", {"order_id": order.id, "product_id": novel.id, "quantity": 1})
    db.create("ORDER_DETAIL", {"order_id": order.id, "product_id": atlas.id, "quantity": 3})
    return {
        "category": category,
        "novel": novel,
        "atlas": atlas,
        "customer": customer,
        "order": order,
    }
