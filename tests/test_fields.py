"""Tests for field types and their coercions."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from sheetdb import FieldSpec, FieldType, TypeCoercionError
from sheetdb.core.fields import to_boolean, to_date, to_number, to_string


class TestNumber:
    def test_integral_strings_become_ints(self):
        assert to_number("price", "42") == 42
        assert isinstance(to_number("price", "42"), int)

    def test_large_integer_strings_keep_precision(self):
        assert to_number("price", "12345678901234567891") == 12345678901234567891
        assert to_number("price", " -7 ") == -7

    def test_fractional_values_stay_floats(self):
        assert to_number("price", "3.5") == 3.5
        assert to_number("price", 2.0) == 2

    @pytest.mark.parametrize("value", [True, "abc", "", None, float("nan"), float("inf"), [1]])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(TypeCoercionError) as excinfo:
            to_number("price", value)
        assert excinfo.value.field == "price"
        assert excinfo.value.status == 400


class TestBoolean:
    @pytest.mark.parametrize("value", [True, 1, "true", "YES", " on "])
    def test_truthy(self, value):
        assert to_boolean("active", value) is True

    @pytest.mark.parametrize("value", [False, 0, "false", "No", "0"])
    def test_falsy(self, value):
        assert to_boolean("active", value) is False

    def test_rejects_other_numbers(self):
        with pytest.raises(TypeCoercionError):
            to_boolean("active", 2)


class TestDate:
    def test_iso_with_zulu_suffix(self):
        value = to_date("created_at", "2024-03-01T10:30:00Z")
        assert value == datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc)

    def test_naive_values_are_taken_as_utc(self):
        value = to_date("created_at", datetime(2024, 3, 1, 10, 30))
        assert value.tzinfo is timezone.utc

    def test_plain_date_is_midnight(self):
        assert to_date("created_at", date(2024, 3, 1)) == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert to_date("created_at", 86_400_000) == datetime(1970, 1, 2, tzinfo=timezone.utc)

    def test_rejects_garbage(self):
        with pytest.raises(TypeCoercionError):
            to_date("created_at", "next tuesday")


def test_string_accepts_scalars():
    assert to_string("name", 5) == "5"
    assert to_string("name", False) == "false"
    with pytest.raises(TypeCoercionError):
        to_string("name", {"nested": True})


class TestFieldSpec:
    def test_parse_bare_type_name(self):
        spec = FieldSpec.parse("number")
        assert spec.type is FieldType.NUMBER
        assert not spec.has_default

    def test_parse_mapping_with_camel_case_flag(self):
        spec = FieldSpec.parse({"type": "string", "default": "x", "treatNullAsMissing": True})
        assert spec.treat_null_as_missing is True
        assert spec.resolve_default("name") == "x"

    def test_now_default_for_dates(self):
        spec = FieldSpec(type=FieldType.DATE, default="now")
        value = spec.resolve_default("created_at")
        assert isinstance(value, datetime)
        assert value.tzinfo is not None

    def test_callable_default(self):
        spec = FieldSpec(type=FieldType.NUMBER, default=lambda: "7")
        assert spec.resolve_default("quantity") == 7

    def test_unknown_type_name(self):
        with pytest.raises(ValueError):
            FieldSpec.parse("currency")

    def test_encode_decode_dates(self):
        spec = FieldSpec(type=FieldType.DATE)
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        cell = spec.encode(moment)
        assert cell == "2024-01-01T00:00:00+00:00"
        assert spec.decode("created_at", cell) == moment
        assert spec.decode("created_at", "") is None
