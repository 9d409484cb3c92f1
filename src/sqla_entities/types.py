"""Conversion between Python values and their storage representation.

Field types are mapped onto SQLAlchemy types and values go through the
dialect's own bind/result processors, so e.g. SQLite stores ``datetime`` as
ISO text while PostgreSQL receives it untouched. The ``array``,
``simple_array`` and ``object`` types predate native JSON columns and are
kept as serialized text.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Final

import sqlalchemy as sa
from sqlalchemy.engine import Dialect

from .datastructures import frozendict


DEFAULT_STRING_LENGTH: Final[int] = 255
LEGACY_TYPES: Final[frozenset[str]] = frozenset({"array", "simple_array", "object"})

_TYPES: Final[frozendict[str, type[sa.types.TypeEngine[Any]]]] = frozendict({
    "integer": sa.Integer,
    "smallint": sa.SmallInteger,
    "bigint": sa.BigInteger,
    "string": sa.String,
    "text": sa.Text,
    "boolean": sa.Boolean,
    "float": sa.Float,
    "decimal": sa.Numeric,
    "date": sa.Date,
    "datetime": sa.DateTime,
    "time": sa.Time,
    "json": sa.JSON,
    "array": sa.Text,
    "simple_array": sa.Text,
    "object": sa.Text,
})


@lru_cache(maxsize=256)
def sa_type(field_type: str, length: int | None = None) -> sa.types.TypeEngine[Any]:
    """Return the SQLAlchemy type instance for a field type name.

    Raises:
        ValueError: If *field_type* is unknown.
    """
    try:
        type_cls = _TYPES[field_type]
    except KeyError:
        raise ValueError(
            f"Unknown field type {field_type!r}. Available: {sorted(_TYPES)}"
        ) from None

    if type_cls is sa.String:
        return sa.String(length or DEFAULT_STRING_LENGTH)

    return type_cls()


def _serialize_legacy(field_type: str, value: Any) -> Any:
    if isinstance(value, str):
        return value
    if field_type == "simple_array":
        return ",".join(str(item) for item in value)

    return json.dumps(value)


def _deserialize_legacy(field_type: str, raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    if field_type == "simple_array":
        return raw.split(",") if raw else []
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def to_storage_value(field_type: str, value: Any, dialect: Dialect) -> Any:
    """Convert *value* into what the driver should receive for *field_type*."""
    if value is None:
        return None
    if field_type in LEGACY_TYPES:
        value = _serialize_legacy(field_type, value)

    processor = sa_type(field_type).dialect_impl(dialect).bind_processor(dialect)

    return processor(value) if processor is not None else value


def from_storage_value(field_type: str, raw: Any, dialect: Dialect) -> Any:
    """Convert a value read from the driver back into its Python form."""
    if raw is None:
        return None

    processor = sa_type(field_type).dialect_impl(dialect).result_processor(dialect, None)
    value = processor(raw) if processor is not None else raw
    if field_type in LEGACY_TYPES:
        value = _deserialize_legacy(field_type, value)

    return value
