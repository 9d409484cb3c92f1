from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from functools import lru_cache
from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from .entity import Entity
    from .query import Query

E = TypeVar("E", bound="Entity")


@lru_cache
def _get_primary_key(entity: type[Entity]) -> str | None:
    """Return the name of the first primary-key field of *entity* (cached)."""
    return next((name for name, field in entity.__fields__.items() if field.is_primary), None)


@lru_cache
def _get_table_name(entity: type[Entity]) -> str:
    """Return ``__tablename__`` of *entity* (cached)."""
    result = getattr(entity, "__tablename__", None)
    if not result:
        raise ValueError(f"Cannot determine tablename for {entity}")

    return result


def get_table_name(entity: type[Entity]) -> str:
    """Get the table name for an entity class.

    Args:
        entity: Entity class.

    Returns:
        The table name as a string.

    Raises:
        ValueError: If the entity declares no ``__tablename__``.
    """
    return _get_table_name(entity)


def get_primary_key(entity: type[Entity]) -> str | None:
    """Get the primary-key field name of an entity class, ``None`` if it has none."""
    return _get_primary_key(entity)


def add_conditions(
    conditions: Mapping[str, Any], connective: str = "AND"
) -> Callable[[Query], Query]:
    """Create a function that adds WHERE conditions to a query.

    Handy for declaring scopes.

    Example:
        >>> class Post(Entity):
        ...     @classmethod
        ...     def scopes(cls):
        ...         return {"published": add_conditions({"status": "published"})}
        >>> mapper.select().published().execute()
    """

    def _add(query: Query) -> Query:
        return query.where(conditions, connective)

    return _add


def unique_entities(entities: Iterable[E]) -> list[E]:
    """De-duplicate *entities* by type and primary key, keeping first occurrences.

    Entities without a primary key value are all kept.
    """
    seen: set[tuple[type, Any]] = set()
    result: list[E] = []
    for entity in entities:
        pk = entity.primary_key()
        if pk is not None:
            key = (type(entity), pk)
            if key in seen:
                continue
            seen.add(key)
        result.append(entity)

    return result


def _caches() -> tuple[Any, ...]:
    from .conditions import _parse_condition_key
    from .eager import _partition_paths
    from .types import sa_type

    return (_partition_paths, _parse_condition_key, sa_type, _get_primary_key, _get_table_name)


def cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    return {fn.__name__: fn.cache_info() for fn in _caches()}


def cache_clear() -> None:
    """Clear all internal LRU caches."""
    for fn in _caches():
        fn.cache_clear()
