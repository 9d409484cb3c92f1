from __future__ import annotations

import functools
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from .conditions import normalize_connective
from .config import DEFAULT_CONNECTIVE
from .context import LoadContext
from .datastructures import frozendict
from .eager import validate_paths
from .exceptions import NoSuchMethod
from .operators import Fragment


if TYPE_CHECKING:
    from .collection import Collection
    from .entity import Entity
    from .mapper import Mapper


ORDER_DIRECTIONS: Final[frozenset[str]] = frozenset({"ASC", "DESC"})
MODIFIERS: Final[frozenset[str]] = frozenset({
    "where",
    "or_where",
    "where_sql",
    "order",
    "limit",
    "offset",
    "with_",
    "scope",
})


def _normalize_paths(paths: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(paths, str):
        return (paths,)

    return tuple(paths)


class Query:
    """Generative SELECT over one entity type.

    Every modifier returns a new query; the receiver is never changed, so
    queries can be shared and extended freely.

    Example:
        >>> posts = (
        ...     locator.mapper(Post)
        ...     .where({"status": "published", "created_at :gte": since})
        ...     .order({"created_at": "DESC"})
        ...     .limit(10)
        ...     .with_(["author", "comments"])
        ...     .execute()
        ... )
    """

    __slots__ = ("_context", "_limit", "_mapper", "_offset", "_order", "_paths", "_where")

    def __init__(self, mapper: Mapper, *, context: LoadContext | None = None) -> None:
        self._mapper = mapper
        self._context = context
        self._where: Fragment = Fragment()
        self._order: tuple[tuple[str, str], ...] = ()
        self._limit: int | None = None
        self._offset: int | None = None
        self._paths: tuple[str, ...] = ()

    def _clone(self, **changes: Any) -> Query:
        clone = object.__new__(type(self))
        for name in Query.__slots__:
            object.__setattr__(clone, name, getattr(self, name))
        for name, value in changes.items():
            object.__setattr__(clone, f"_{name}", value)

        return clone

    @property
    def mapper(self) -> Mapper:
        return self._mapper

    @property
    def entity(self) -> type[Entity]:
        return self._mapper.entity

    @property
    def table(self) -> str:
        return self._mapper.table()

    @property
    def context(self) -> LoadContext:
        if self._context is None:
            return self._mapper.new_context()

        return self._context

    @property
    def limit_value(self) -> int | None:
        return self._limit

    @property
    def offset_value(self) -> int | None:
        return self._offset

    @property
    def with_paths(self) -> tuple[str, ...]:
        return self._paths

    # modifiers

    def where(self, conditions: Mapping[str, Any], connective: str = DEFAULT_CONNECTIVE) -> Query:
        """AND the compiled *conditions* onto the query.

        *connective* joins the conditions of this call with each other.
        """
        fragment = self._mapper.compiler.compile(conditions, connective)

        return self._clone(where=self._where.combine(fragment, "AND"))

    def or_where(self, conditions: Mapping[str, Any], connective: str = DEFAULT_CONNECTIVE) -> Query:
        """OR the compiled *conditions* onto the query."""
        fragment = self._mapper.compiler.compile(conditions, connective)

        return self._clone(where=self._where.combine(fragment, "OR"))

    def where_sql(self, sql: str, *params: Any, connective: str = DEFAULT_CONNECTIVE) -> Query:
        """Add a raw ``?``-placeholder predicate.

        Every ``?`` in *sql* is taken as a placeholder, including one inside a
        quoted literal or a PostgreSQL JSON operator such as ``?|``. Pass such
        text as a parameter instead, or use the ``jsonb_exists`` functions.

        Raises:
            ValueError: If the placeholder count does not match *params*.
        """
        if sql.count("?") != len(params):
            raise ValueError(f"Expected {sql.count('?')} params for {sql!r}, got {len(params)}")

        return self._clone(
            where=self._where.combine(Fragment(sql, params), normalize_connective(connective))
        )

    def order(self, ordering: Mapping[str, str]) -> Query:
        """Append ``{field: "ASC" | "DESC"}`` sort keys.

        Raises:
            ValueError: On any other direction.
        """
        order = list(self._order)
        for name, direction in ordering.items():
            normalized = direction.strip().upper()
            if normalized not in ORDER_DIRECTIONS:
                raise ValueError(
                    f"Invalid order direction {direction!r} for {name!r}; use 'ASC' or 'DESC'"
                )
            order.append((name, normalized))

        return self._clone(order=tuple(order))

    def limit(self, limit: int | None, offset: int | None = None) -> Query:
        """Cap the row count; ``None`` or a non-positive value removes the cap."""
        changes: dict[str, Any] = {"limit": limit if limit and limit > 0 else None}
        if offset is not None:
            changes["offset"] = offset

        return self._clone(**changes)

    def offset(self, offset: int | None) -> Query:
        return self._clone(offset=offset or None)

    def with_(self, paths: str | Iterable[str]) -> Query:
        """Eager-load relation *paths* (dot notation for nesting) on execution."""
        merged = dict.fromkeys(self._paths)
        merged.update(dict.fromkeys(_normalize_paths(paths)))

        return self._clone(paths=tuple(merged))

    def scope(self, name: str, *args: Any, **kwargs: Any) -> Query:
        """Apply the named scope of the queried entity.

        Raises:
            NoSuchMethod: If the entity defines no scope *name*.
        """
        scopes = self._mapper.scopes()
        if name not in scopes:
            raise NoSuchMethod(f"Scope {name!r} is not defined on {self.entity.__name__}")

        return scopes[name](self, *args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        if name in self._mapper.scopes():
            return functools.partial(self.scope, name)

        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # compilation

    def where_fragment(self) -> Fragment:
        return self._where

    def order_clauses(self) -> list[str]:
        return [f"{self._mapper.column_expression(name)} {direction}" for name, direction in self._order]

    # execution

    def execute(self) -> Collection[Any]:
        if self._paths:
            validate_paths(self._mapper, self._paths)
        rows = self._mapper.backend.execute_read(self)

        return self._mapper.collection(rows, with_=self._paths, context=self.context)

    def first(self) -> Any:
        return self.limit(1).execute().first()

    def count(self) -> int:
        return self._mapper.backend.execute_count(self)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.execute())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.table} where={self._where.sql!r}>"


@dataclass(slots=True, frozen=True)
class QueryModifier:
    """One deferred call on a :class:`Query`, replayed with :meth:`apply`."""

    name: str
    args: tuple[Any, ...] = field(default=())
    kwargs: frozendict[str, Any] = field(default_factory=frozendict)

    def __post_init__(self) -> None:
        if self.name not in MODIFIERS:
            raise ValueError(f"{self.name!r} is not a query modifier. Available: {sorted(MODIFIERS)}")

    def apply(self, query: Query) -> Query:
        return getattr(query, self.name)(*self.args, **self.kwargs)
