from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from .config import CONNECTIVES, DEFAULT_CONNECTIVE
from .operators import Fragment, OperatorRegistry, default_registry, is_array


ColumnResolver = Callable[[str], str]
ValueConverter = Callable[[str, Any], Any]

_TEMPORAL_TYPES = (dt.date, dt.time)


@lru_cache(maxsize=1024)
def _parse_condition_key(key: str) -> tuple[str, str]:
    """Split ``"field op"`` into ``(field, op)``; the operator is the last token."""
    parts = key.split()
    if not parts:
        raise ValueError("Condition key must not be empty")
    if len(parts) == 1:
        return parts[0], "="

    return " ".join(parts[:-1]), parts[-1].lower()


def _column_as_is(name: str) -> str:
    return name


def _value_as_is(name: str, value: Any) -> Any:
    return value


def normalize_connective(connective: str) -> str:
    result = connective.strip().upper()
    if result not in CONNECTIVES:
        raise ValueError(f"Connective must be one of {sorted(CONNECTIVES)}, got {connective!r}")

    return result


class ConditionCompiler:
    """Compile ``{"field op": value}`` mappings into :class:`Fragment` predicates.

    Args:
        registry: Operator table to resolve tokens against.
        column: Turns a field name into the column expression written into SQL
            (alias lookup, table qualification, quoting).
        converter: Converts temporal values to their storage representation,
            called as ``converter(field, value)``.
        dialect: Backend dialect name forwarded to operator builders.
    """

    __slots__ = ("column", "converter", "dialect", "registry")

    def __init__(
        self,
        registry: OperatorRegistry | None = None,
        *,
        column: ColumnResolver | None = None,
        converter: ValueConverter | None = None,
        dialect: str = "default",
    ) -> None:
        self.registry = default_registry if registry is None else registry
        self.column = column or _column_as_is
        self.converter = converter or _value_as_is
        self.dialect = dialect

    def fragment(self, key: str, value: Any) -> Fragment:
        field, token = _parse_condition_key(key)
        builder = self.registry.resolve(token)

        return builder(self.column(field), self._convert(field, value), self.dialect)

    def fragments(self, conditions: Mapping[str, Any]) -> list[Fragment]:
        """Return one fragment per condition, in mapping order."""
        return [self.fragment(key, value) for key, value in conditions.items()]

    def compile(self, conditions: Mapping[str, Any], connective: str = DEFAULT_CONNECTIVE) -> Fragment:
        """Compile *conditions* and join them with *connective* (``AND`` or ``OR``).

        Example:
            >>> ConditionCompiler().compile({"age :gte": 18, "status": None})
            Fragment(sql='age >= ? AND status IS NULL', params=(18,))
        """
        return Fragment.join(self.fragments(conditions), normalize_connective(connective))

    def _convert(self, field: str, value: Any) -> Any:
        if isinstance(value, _TEMPORAL_TYPES):
            return self.converter(field, value)
        if is_array(value) and any(isinstance(item, _TEMPORAL_TYPES) for item in value):
            return [self.converter(field, item) for item in value]

        return value
