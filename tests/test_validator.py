"""Tests for defaults, null handling and coercion reports."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from sheetdb import TableConfig, ValidationError
from sheetdb.core.validator import validate, validate_with_logs
from sheetdb.shop import CATEGORY, PRODUCT

BOOK = TableConfig(
    table_name="BOOK",
    fields={
        "title": {"type": "string", "required": True},
        "pages": "number",
        "in_print": {"type": "boolean", "default": True},
    },
)


def _actions(report):
    return {t.field: t.action for t in report.trace}


def test_missing_field_takes_default():
    report = validate(CATEGORY, {})
    assert report.values["name"] == "default_name"
    assert _actions(report)["name"] == "defaulted"


def test_null_treated_as_missing():
    report = validate(CATEGORY, {"name": None})
    assert report.values["name"] == "default_name"


def test_null_kept_without_the_flag():
    report = validate(PRODUCT, {"name": None})
    assert report.values["name"] is None
    assert _actions(report)["name"] == "null"


def test_missing_without_default_is_flagged():
    report = validate(CATEGORY, {"name": "Books"})
    assert report.missing == ["created_at"]
    assert report.values["created_at"] is None


def test_values_are_coerced():
    report = validate(PRODUCT, {"price": "19.99", "category_fk": "2", "created_at": "2024-05-01"})
    assert report.values["price"] == 19.99
    assert report.values["category_fk"] == 2
    assert report.values["created_at"] == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert _actions(report)["price"] == "coerced"


def test_coercion_failures_are_collected_not_raised():
    report = validate(PRODUCT, {"name": "Pen", "price": "cheap", "category_fk": "x"})
    assert [err.field for err in report.errors] == ["price", "category_fk"]
    assert report.values["price"] is None
    assert report.values["name"] == "Pen"


def test_required_field_missing_aborts():
    with pytest.raises(ValidationError) as excinfo:
        validate(BOOK, {"pages": 10})
    assert excinfo.value.issues[0]["field"] == "title"
    assert excinfo.value.status == 400


def test_required_field_bad_value_aborts():
    with pytest.raises(ValidationError):
        validate(BOOK, {"title": {"not": "a string"}})


def test_undeclared_and_disallowed_keys_are_ignored():
    report = validate(PRODUCT, {"name": "Pen", "colour": "red", "price": 2}, allowed_fields=["name"])
    assert set(report.ignored) == {"colour", "price"}
    assert report.values == {"name": "Pen"}


def test_id_in_input_is_not_reported():
    report = validate(PRODUCT, {"id": 9, "name": "Pen"})
    assert "id" not in report.ignored


def test_with_logs_returns_trace_on_success():
    report, trace, error = validate_with_logs(BOOK, {"title": "Dune", "pages": "412"})
    assert error is None
    assert report.values["in_print"] is True
    assert {t.field: t.action for t in trace} == {
        "title": "provided",
        "pages": "coerced",
        "in_print": "defaulted",
    }


def test_with_logs_returns_trace_on_failure():
    report, trace, error = validate_with_logs(BOOK, {"pages": "many"})
    assert report is None
    assert isinstance(error, ValidationError)
    actions = {t.field: t.action for t in trace}
    assert actions["title"] == "missing"
    assert actions["pages"] == "coercion_failed"


def test_summary_shape():
    report = validate(PRODUCT, {"name": "Pen", "price": "cheap"})
    summary = report.summary(with_trace=True)
    assert summary["missingFields"] == ["category_fk", "created_at"]
    assert summary["coercionErrors"][0]["field"] == "price"
    assert len(summary["trace"]) == 4
