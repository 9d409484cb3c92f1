from __future__ import annotations

import functools
import warnings
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, Final

from .collection import Collection
from .datastructures import frozendict
from .exceptions import NoSuchMethod
from .query import QueryModifier


if TYPE_CHECKING:
    from .context import LoadContext
    from .entity import Entity
    from .query import Query
    from .relations import Relation

_PENDING: Final = object()


class RelationProxy:
    """Lazy handle on one relation of one entity.

    The proxy moves strictly forward through three states: *unbuilt* (only
    modifiers queued), *built* (query constructed, modifiers applied) and
    *executed* (result cached for the proxy's lifetime).

    Modifier calls (:meth:`where`, :meth:`order`, ...) made while the owning
    context is auto-loading are dropped. Attribute access that is neither a
    modifier nor a scope of the target entity executes the relation and is
    forwarded to the result.

    Example:
        >>> post.comments.where({"approved": True}).order({"id": "DESC"})
        >>> [comment.body for comment in post.comments]
    """

    __slots__ = ("_context", "_modifiers", "_query", "_relation", "_result")

    def __init__(self, relation: Relation, context: LoadContext) -> None:
        self._relation = relation
        self._context = context
        self._modifiers: list[QueryModifier] = []
        self._query: Query | None = None
        self._result: Any = _PENDING

    @property
    def relation(self) -> Relation:
        return self._relation

    @property
    def modifiers(self) -> tuple[QueryModifier, ...]:
        return tuple(self._modifiers)

    @property
    def built(self) -> bool:
        return self._query is not None

    @property
    def executed(self) -> bool:
        return self._result is not _PENDING

    @property
    def result(self) -> Any:
        return self.execute()

    # modifiers

    def _modify(self, name: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> RelationProxy:
        if self._context.auto_loading:
            return self

        modifier = QueryModifier(name, args, frozendict(kwargs))
        if self.executed:
            warnings.warn(
                f"{self._relation.kind.label} relation to {self._relation.target.__name__} "
                f"already executed; {name}() is ignored",
                RuntimeWarning,
                stacklevel=3,
            )
        elif self._query is None:
            self._modifiers.append(modifier)
        else:
            self._query = modifier.apply(self._query)

        return self

    def where(self, conditions: Mapping[str, Any], connective: str = "AND") -> RelationProxy:
        return self._modify("where", (conditions, connective), {})

    def or_where(self, conditions: Mapping[str, Any], connective: str = "AND") -> RelationProxy:
        return self._modify("or_where", (conditions, connective), {})

    def where_sql(self, sql: str, *params: Any) -> RelationProxy:
        return self._modify("where_sql", (sql, *params), {})

    def order(self, ordering: Mapping[str, str]) -> RelationProxy:
        return self._modify("order", (ordering,), {})

    def limit(self, limit: int | None, offset: int | None = None) -> RelationProxy:
        return self._modify("limit", (limit, offset), {})

    def offset(self, offset: int | None) -> RelationProxy:
        return self._modify("offset", (offset,), {})

    def with_(self, paths: str | Iterable[str]) -> RelationProxy:
        return self._modify("with_", (paths if isinstance(paths, str) else tuple(paths),), {})

    def scope(self, name: str, *args: Any, **kwargs: Any) -> RelationProxy:
        return self._modify("scope", (name, *args), kwargs)

    # execution

    def query(self) -> Query:
        """Build (once) and return the query with every queued modifier applied."""
        if self._query is None:
            query = self._relation.build_query()
            for modifier in self._modifiers:
                query = modifier.apply(query)
            self._query = query

        return self._query

    def _empty(self) -> Any:
        if self._relation.kind.many:
            return Collection(entity_cls=self._relation.target)

        return None

    def execute(self) -> Any:
        """Run the relation query once and cache the entity, collection or ``None``."""
        if self._result is _PENDING:
            if not self._relation.has_identity:
                self._result = self._empty()
            else:
                collection = self.query().execute()
                self._result = collection if self._relation.kind.many else collection.first()

        return self._result

    def entity(self) -> Entity | None:
        return self.execute()

    def count(self) -> int:
        if self._result is _PENDING:
            if not self._relation.has_identity:
                return 0
            return self.query().count()

        if self._result is None:
            return 0

        return len(self._result) if self._relation.kind.many else 1

    def eager_load_on_collection(self, name: str, collection: Collection[Any]) -> Collection[Any]:
        return self._relation.eager_load_on_collection(name, collection, self.modifiers)

    # result passthrough

    def __iter__(self) -> Iterator[Any]:
        result = self.execute()
        if result is None:
            return iter(())
        if isinstance(result, Collection):
            return iter(result)

        return iter((result,))

    def __len__(self) -> int:
        result = self.execute()
        if result is None:
            return 0

        return len(result) if isinstance(result, Collection) else 1

    def __getitem__(self, index: Any) -> Any:
        result = self.execute()
        if isinstance(result, Collection):
            return result[index]
        if result is None:
            raise KeyError(index)

        return result.get(index)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        relation = self._relation
        if name in relation.target_mapper.scopes():
            return functools.partial(self.scope, name)

        result = self.execute()
        try:
            return getattr(result, name)
        except AttributeError:
            raise NoSuchMethod(
                f"{relation.kind.label} relation to {relation.target.__name__} "
                f"has no attribute or scope {name!r}"
            ) from None

    def __repr__(self) -> str:
        state = "executed" if self.executed else "built" if self.built else "unbuilt"
        return f"<{type(self).__name__} {self._relation.kind.label} {self._relation.target.__name__} {state}>"
