from __future__ import annotations

import datetime as dt

import pytest
import sqlalchemy as sa
from sqlalchemy.dialects import sqlite
from sqlalchemy.engine import Dialect

from sqla_entities import Field
from sqla_entities.types import DEFAULT_STRING_LENGTH, from_storage_value, sa_type, to_storage_value


@pytest.fixture
def dialect() -> Dialect:
    return sqlite.dialect()


class TestSaType:
    def test_string_default_length(self) -> None:
        result = sa_type("string")

        assert isinstance(result, sa.String)
        assert result.length == DEFAULT_STRING_LENGTH

    def test_string_length(self) -> None:
        assert sa_type("string", 20).length == 20

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("integer", sa.Integer),
            ("boolean", sa.Boolean),
            ("datetime", sa.DateTime),
            ("json", sa.JSON),
            ("simple_array", sa.Text),
            ("object", sa.Text),
        ],
    )
    def test_mapping(self, name: str, expected: type) -> None:
        assert isinstance(sa_type(name), expected)

    def test_cached(self) -> None:
        assert sa_type("integer") is sa_type("integer")

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown field type 'money'"):
            sa_type("money")

    def test_unknown_type_fails_at_declaration(self) -> None:
        with pytest.raises(ValueError):
            Field("money")


class TestStorageValues:
    def test_none_passes_through(self, dialect: Dialect) -> None:
        assert to_storage_value("datetime", None, dialect) is None
        assert from_storage_value("datetime", None, dialect) is None

    def test_datetime(self, dialect: Dialect) -> None:
        value = dt.datetime(2024, 1, 10, 12, 30)
        stored = to_storage_value("datetime", value, dialect)

        assert isinstance(stored, str)
        assert stored.startswith("2024-01-10 12:30:00")
        assert from_storage_value("datetime", stored, dialect) == value

    def test_date(self, dialect: Dialect) -> None:
        assert to_storage_value("date", dt.date(2024, 3, 1), dialect) == "2024-03-01"
        assert from_storage_value("date", "2024-03-01", dialect) == dt.date(2024, 3, 1)

    def test_boolean(self, dialect: Dialect) -> None:
        assert to_storage_value("boolean", True, dialect) == 1
        assert from_storage_value("boolean", 0, dialect) is False

    def test_simple_array(self, dialect: Dialect) -> None:
        assert to_storage_value("simple_array", ["python", "orm"], dialect) == "python,orm"
        assert from_storage_value("simple_array", "python,orm", dialect) == ["python", "orm"]
        assert from_storage_value("simple_array", "", dialect) == []

    def test_object(self, dialect: Dialect) -> None:
        stored = to_storage_value("object", {"views": 10}, dialect)

        assert stored == '{"views": 10}'
        assert from_storage_value("object", stored, dialect) == {"views": 10}

    def test_object_keeps_invalid_json(self, dialect: Dialect) -> None:
        assert from_storage_value("object", "not json", dialect) == "not json"

    def test_serialized_strings_are_not_serialized_again(self, dialect: Dialect) -> None:
        assert to_storage_value("object", '{"a": 1}', dialect) == '{"a": 1}'
