"""WHERE-clause operators.

Every condition key (``"age :gte"``) resolves to an operator token (``":gte"``)
and the token to a *builder*: a callable that receives the already resolved
column expression, the value and the backend dialect name and returns a
:class:`Fragment`. Builders are registered by class and instantiated once per
registry, so stateless builders are shared between all compilations.

Custom operators are added at start-up::

    class Between:
        def __call__(self, column, value, dialect):
            low, high = value
            return Fragment(f"{column} BETWEEN ? AND ?", (low, high))

    register_operator(":between", Between)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Protocol, Union

from .datastructures import frozendict
from .exceptions import InvalidOperandError, OperatorAlreadyRegistered, UnsupportedOperator


ARRAY_TYPES: Final[tuple[type, ...]] = (list, tuple, set, frozenset)


def is_array(value: Any) -> bool:
    return isinstance(value, ARRAY_TYPES)


@dataclass(slots=True, frozen=True)
class Fragment:
    """SQL text with ``?`` positional placeholders and the values bound to them.

    Array params are expanded by the backend into one placeholder per item,
    so ``Fragment("id IN (?)", ([1, 2],))`` runs as ``id IN (1, 2)``.
    """

    sql: str = ""
    params: tuple[Any, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.sql)

    @classmethod
    def join(cls, fragments: Sequence[Fragment], connective: str) -> Fragment:
        """Join predicates with *connective*, skipping empty ones."""
        parts = [fragment for fragment in fragments if fragment]
        if len(parts) == 1:
            return parts[0]

        return cls(
            f" {connective} ".join(part.sql for part in parts),
            tuple(param for part in parts for param in part.params),
        )

    def combine(self, other: Fragment, connective: str) -> Fragment:
        """Group ``self`` and *other* in parentheses and join them with *connective*."""
        if not self:
            return other
        if not other:
            return self

        return type(self)(f"({self.sql}) {connective} ({other.sql})", self.params + other.params)


class OperatorBuilder(Protocol):
    def __call__(self, column: str, value: Any, dialect: str) -> Fragment: ...


class Equals:
    """``=``; arrays become ``IN`` and ``None`` or an empty array become ``IS NULL``."""

    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if value is None or (is_array(value) and not value):
            return Fragment(f"{column} IS NULL")
        if is_array(value):
            return Fragment(f"{column} IN (?)", (list(value),))

        return Fragment(f"{column} = ?", (value,))


class Not:
    """Inverse of :class:`Equals`."""

    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if value is None or (is_array(value) and not value):
            return Fragment(f"{column} IS NOT NULL")
        if is_array(value):
            return Fragment(f"{column} NOT IN (?)", (list(value),))

        return Fragment(f"{column} != ?", (value,))


class _Comparison:
    sql_operator: str = ""

    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if is_array(value):
            raise InvalidOperandError(
                f"Operator {self.sql_operator!r} expects a scalar value, got {type(value).__name__}"
            )

        return Fragment(f"{column} {self.sql_operator} ?", (value,))


class LessThan(_Comparison):
    sql_operator = "<"


class LessThanOrEqual(_Comparison):
    sql_operator = "<="


class GreaterThan(_Comparison):
    sql_operator = ">"


class GreaterThanOrEqual(_Comparison):
    sql_operator = ">="


class In:
    """Explicit membership; the value must be an array."""

    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if not is_array(value):
            raise InvalidOperandError(
                f"Use of IN operator expects value to be array. Got {type(value).__name__}."
            )
        if not value:
            return Fragment("1 = 0")

        return Fragment(f"{column} IN (?)", (list(value),))


class Like(_Comparison):
    sql_operator = "LIKE"


class NotLike(_Comparison):
    sql_operator = "NOT LIKE"


class RegExp:
    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if dialect == "postgresql":
            return Fragment(f"{column} ~ ?", (value,))

        return Fragment(f"{column} REGEXP ?", (value,))


class FullText:
    """Natural-language full text search in the dialect's own syntax."""

    boolean: bool = False

    def __call__(self, column: str, value: Any, dialect: str) -> Fragment:
        if dialect == "postgresql":
            function = "to_tsquery" if self.boolean else "plainto_tsquery"
            return Fragment(f"to_tsvector({column}) @@ {function}(?)", (value,))
        if dialect == "sqlite":
            return Fragment(f"{column} MATCH ?", (value,))

        mode = " IN BOOLEAN MODE" if self.boolean else ""
        return Fragment(f"MATCH({column}) AGAINST (?{mode})", (value,))


class FullTextBoolean(FullText):
    boolean = True


BuilderSpec = Union[type[OperatorBuilder], OperatorBuilder, Callable[[str, Any, str], Fragment]]

BUILTIN_OPERATORS: Final[frozendict[str, BuilderSpec]] = frozendict({
    "=": Equals,
    ":eq": Equals,
    "<": LessThan,
    ":lt": LessThan,
    "<=": LessThanOrEqual,
    ":lte": LessThanOrEqual,
    ">": GreaterThan,
    ":gt": GreaterThan,
    ">=": GreaterThanOrEqual,
    ":gte": GreaterThanOrEqual,
    "~=": RegExp,
    "=~": RegExp,
    ":regex": RegExp,
    ":like": Like,
    ":notlike": NotLike,
    ":fulltext": FullText,
    ":fulltext_boolean": FullTextBoolean,
    "in": In,
    ":in": In,
    "<>": Not,
    "!=": Not,
    ":ne": Not,
    ":not": Not,
})


class OperatorRegistry:
    """Token to builder table.

    Registration is append-only; writes replace the table under a lock so
    lookups never need one.
    """

    __slots__ = ("_builders", "_instances", "_lock")

    def __init__(self, builders: Mapping[str, BuilderSpec] | None = None) -> None:
        self._builders: frozendict[str, BuilderSpec] = frozendict({
            token.lower(): builder
            for token, builder in (BUILTIN_OPERATORS if builders is None else builders).items()
        })
        self._instances: dict[Any, OperatorBuilder] = {}
        self._lock = threading.Lock()

    def register(self, token: str, builder: BuilderSpec) -> None:
        """Register *builder* for *token*.

        Args:
            token: Operator token as written in condition keys, e.g. ``":between"``.
            builder: Builder class (instantiated once, lazily) or callable.

        Raises:
            OperatorAlreadyRegistered: If *token* is already taken.
        """
        key = token.lower()
        with self._lock:
            if key in self._builders:
                raise OperatorAlreadyRegistered(token)
            self._builders = self._builders.merge({key: builder})

    def resolve(self, token: str) -> OperatorBuilder:
        """Return the builder instance for *token* (case-insensitive).

        Raises:
            UnsupportedOperator: If no builder is registered for *token*.
        """
        builder = self._builders.get(token.lower())
        if builder is None:
            raise UnsupportedOperator(token)

        if not isinstance(builder, type):
            return builder

        instance = self._instances.get(builder)
        if instance is None:
            instance = self._instances.setdefault(builder, builder())

        return instance

    def tokens(self) -> frozenset[str]:
        return frozenset(self._builders)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and token.lower() in self._builders


default_registry: Final[OperatorRegistry] = OperatorRegistry()


def register_operator(token: str, builder: BuilderSpec) -> None:
    """Register a custom operator on the process-wide registry.

    Example:
        >>> register_operator(":between", Between)
        >>> mapper.where({"age :between": (18, 30)})
    """
    default_registry.register(token, builder)
