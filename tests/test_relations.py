"""One-to-many lookups, junction reads, cascade delete and integrity checks."""

from __future__ import annotations

import threading

from sheetdb.relations import junction_keys
from sheetdb.shop import ORDER_DETAIL


class TestRelated:
    def test_children_by_foreign_key(self, db, shop):
        response = db.get_related_records(shop["category"].id, "PRODUCT", "category_fk")
        assert response.status == 200
        assert [rec.get("name") for rec in response.data] == ["Novel", "Atlas"]
        assert response.metadata["foreignKey"] == "category_fk"

    def test_foreign_key_is_coerced(self, db, shop):
        response = db.get_related_records(str(shop["category"].id), "PRODUCT", "category_fk")
        assert len(response.data) == 2

    def test_sorted_and_paginated(self, db, shop):
        response = db.get_related_records(
            shop["category"].id,
            "PRODUCT",
            "category_fk",
            {"sortBy": "price", "sortOrder": "desc", "pageSize": 1},
        )
        assert [rec.get("name") for rec in response.data] == ["Atlas"]
        assert response.metadata["totalPages"] == 2

    def test_no_children(self, db, shop):
        response = db.get_related_records(999, "PRODUCT", "category_fk")
        assert response.status == 200
        assert response.data == []

    def test_unknown_field_is_400(self, db, shop):
        assert db.get_related_records(1, "PRODUCT", "owner_fk").status == 400

    def test_uncoercible_key_is_400(self, db, shop):
        assert db.get_related_records("abc", "PRODUCT", "category_fk").status == 400

    def test_cached_until_child_write(self, db, shop):
        category = shop["category"].id
        db.get_related_records(category, "PRODUCT", "category_fk", use_cache=True)
        hit = db.get_related_records(category, "PRODUCT", "category_fk", use_cache=True)
        assert hit.metadata["cached"] is True
        db.create("PRODUCT", {"name": "Guide", "category_fk": category})
        fresh = db.get_related_records(category, "PRODUCT", "category_fk", use_cache=True)
        assert fresh.metadata["cached"] is False
        assert len(fresh.data) == 3


class TestJunction:
    def test_keys_follow_direction(self):
        assert junction_keys(ORDER_DETAIL, "ORDER", "PRODUCT") == ("order_id", "product_id")
        assert junction_keys(ORDER_DETAIL, "PRODUCT", "ORDER") == ("product_id", "order_id")

    def test_products_of_an_order(self, db, shop):
        response = db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", shop["order"].id)
        assert response.status == 200
        assert [rec.get("name") for rec in response.data] == ["Novel", "Atlas"]
        quantities = [rec.get("relationship")["quantity"] for rec in response.data]
        assert quantities == [1, 3]
        assert response.metadata["sourceKey"] == "order_id"
        assert response.metadata["missingTargets"] == []

    def test_orders_of_a_product(self, db, shop):
        response = db.get_junction_records("ORDER_DETAIL", "PRODUCT", "ORDER", shop["atlas"].id)
        assert [rec.id for rec in response.data] == [shop["order"].id]
        assert response.data[0].get("relationship")["quantity"] == 3

    def test_sorted_by_target_field(self, db, shop):
        response = db.get_junction_records(
            "ORDER_DETAIL", "ORDER", "PRODUCT", shop["order"].id, {"sortBy": "price", "sortOrder": "desc"}
        )
        assert [rec.get("name") for rec in response.data] == ["Atlas", "Novel"]

    def test_missing_source_is_404(self, db, shop):
        assert db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", 404).status == 404

    def test_unlinked_tables_are_400(self, db, shop):
        response = db.get_junction_records("ORDER_DETAIL", "CUSTOMER", "PRODUCT", shop["customer"].id)
        assert response.status == 400

    def test_removed_target_is_reported(self, db, shop):
        db.remove("PRODUCT", shop["novel"].id)
        response = db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", shop["order"].id)
        assert [rec.get("name") for rec in response.data] == ["Atlas"]
        assert len(response.metadata["missingTargets"]) == 1

    def test_both_directions_see_the_same_links(self, db, shop):
        pairs_from_orders = {
            (order.id, rec.id)
            for order in db.get_all("ORDER").data
            for rec in db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", order.id).data
        }
        pairs_from_products = {
            (rec.id, product.id)
            for product in db.get_all("PRODUCT").data
            for rec in db.get_junction_records("ORDER_DETAIL", "PRODUCT", "ORDER", product.id).data
        }
        stored = {(row.get("order_id"), row.get("product_id")) for row in db.get_all("ORDER_DETAIL").data}
        assert pairs_from_orders == pairs_from_products == stored

    def test_target_field_named_relationship_is_refused(self, db):
        response = db.register_table({"tableName": "BADGE", "fields": {"relationship": "string"}})
        assert response.status == 400
        assert "BADGE" not in db.schema

    def test_serialises_to_json(self, db, shop):
        response = db.get_junction_records("ORDER_DETAIL", "ORDER", "PRODUCT", shop["order"].id)
        body = response.to_dict()
        assert body["data"][0]["relationship"]["order_id"] == shop["order"].id


class TestCascade:
    def test_removes_junction_rows_first(self, db, shop):
        novel = shop["novel"].id
        response = db.remove_with_cascade("PRODUCT", novel)
        assert response.status == 200
        assert len(response.metadata["cascade"]["ORDER_DETAIL"]) == 1
        assert db.read("PRODUCT", novel).status == 404
        remaining = db.get_all("ORDER_DETAIL").data
        assert [row.get("product_id") for row in remaining] == [shop["atlas"].id]
        moved = response.metadata["cascade"]["ORDER_DETAIL"][0]
        assert db.read_history("ORDER_DETAIL", moved).status == 200

    def test_without_links(self, db, shop):
        response = db.remove_with_cascade("CATEGORY", shop["category"].id)
        assert response.status == 200
        assert response.metadata == {"cascade": {}}

    def test_missing_record_touches_nothing(self, db, shop):
        assert db.remove_with_cascade("PRODUCT", 99).status == 404
        assert len(db.get_all("ORDER_DETAIL").data) == 2

    def test_failed_cleanup_aborts_the_delete(self, db, shop, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("sheet unavailable")

        monkeypatch.setattr(db.store, "move_many", boom)
        response = db.remove_with_cascade("ORDER", shop["order"].id)
        assert response.status == 500
        monkeypatch.undo()
        assert db.read("ORDER", shop["order"].id).status == 200
        assert len(db.get_all("ORDER_DETAIL").data) == 2

    def test_busy_junction_is_423(self, db, shop):
        db.guard.timeout = 0.1
        started, release = threading.Event(), threading.Event()

        def holder():
            with db.guard.hold("ORDER_DETAIL"):
                started.set()
                release.wait(5)

        thread = threading.Thread(target=holder, daemon=True)
        thread.start()
        started.wait(5)
        try:
            assert db.remove_with_cascade("PRODUCT", shop["novel"].id).status == 423
        finally:
            release.set()
            thread.join()
        assert db.read("PRODUCT", shop["novel"].id).status == 200


class TestIntegrity:
    def test_clean_junction(self, db, shop):
        response = db.check_table_integrity("ORDER_DETAIL")
        assert response.status == 200
        assert response.data == {"checked": 2, "removed": []}
        assert response.metadata["issues"] == []

    def test_orphans_move_to_history(self, db, shop):
        db.remove("PRODUCT", shop["novel"].id)
        response = db.check_table_integrity("ORDER_DETAIL")
        assert len(response.data["removed"]) == 1
        issue = response.metadata["issues"][0]
        assert issue["field"] == "product_id"
        assert issue["targetTable"] == "PRODUCT"
        assert len(db.get_all("ORDER_DETAIL").data) == 1

    def test_row_with_two_broken_keys_is_moved_once(self, db, shop):
        db.create("ORDER_DETAIL", {"order_id": 50, "product_id": 60, "quantity": 1})
        response = db.check_table_integrity("ORDER_DETAIL")
        assert len(response.data["removed"]) == 1
        assert len(response.metadata["issues"]) == 2

    def test_plain_table_is_400(self, db, shop):
        assert db.check_table_integrity("PRODUCT").status == 400


def test_hooks_see_writes(db):
    seen = []

    @db.on.create("CATEGORY")
    def on_category(table, record):
        seen.append((table, record.get("name")))

    @db.on.remove()
    def on_any_remove(table, record):
        seen.append((table, "removed", record.id))

    created = db.create("CATEGORY", {"name": "Books"}).data
    db.create("PRODUCT", {"name": "Pen"})
    db.remove("CATEGORY", created.id)
    assert seen == [("CATEGORY", "Books"), ("CATEGORY", "removed", created.id)]


def test_failing_hook_does_not_fail_the_write(db):
    @db.on.update("CATEGORY")
    def broken(table, record):
        raise RuntimeError("hook bug")

    created = db.create("CATEGORY", {"name": "Books"}).data
    assert db.update("CATEGORY", created.id, {"name": "Maps"}).status == 200
