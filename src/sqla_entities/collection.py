from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload


if TYPE_CHECKING:
    from .entity import Entity

E = TypeVar("E", bound="Entity")
_R = TypeVar("_R")


def _identities(entities: Iterable[Entity]) -> tuple[Any, ...]:
    seen: dict[Any, None] = {}
    for entity in entities:
        pk = entity.primary_key()
        if pk is not None:
            seen.setdefault(pk)

    return tuple(seen)


class Collection(Generic[E]):
    """Ordered result set.

    ``identities`` holds the de-duplicated primary keys of the entities the
    collection was built with and does not change when entities are added
    later; relation batching keys its queries on it.
    """

    __slots__ = ("_entities", "_entity_cls", "_identities")

    def __init__(
        self,
        entities: Iterable[E] = (),
        identities: Iterable[Any] | None = None,
        entity_cls: type[E] | None = None,
    ) -> None:
        self._entities: list[E] = list(entities)
        self._identities: tuple[Any, ...] = (
            _identities(self._entities) if identities is None else tuple(identities)
        )
        if entity_cls is None and self._entities:
            entity_cls = type(self._entities[0])
        self._entity_cls = entity_cls

    @property
    def identities(self) -> tuple[Any, ...]:
        return self._identities

    @property
    def entity_cls(self) -> type[E] | None:
        return self._entity_cls

    def first(self) -> E | None:
        return self._entities[0] if self._entities else None

    def add(self, entity: E) -> None:
        self._entities.append(entity)

    def to_list(self, field: str | None = None) -> list[Any]:
        """Entities as dicts, or the values of *field* when given."""
        if field is None:
            return [entity.to_dict() for entity in self._entities]

        return [entity.get(field) for entity in self._entities]

    def to_mapping(self, key: str, value: str | None = None) -> dict[Any, Any]:
        """``{entity[key]: entity[value]}``, or ``{entity[key]: entity}`` without *value*."""
        if value is None:
            return {entity.get(key): entity for entity in self._entities}

        return {entity.get(key): entity.get(value) for entity in self._entities}

    def map(self, func: Callable[[E], _R]) -> list[_R]:
        return [func(entity) for entity in self._entities]

    def filter(self, func: Callable[[E], bool]) -> Collection[E]:
        return type(self)(
            (entity for entity in self._entities if func(entity)), entity_cls=self._entity_cls
        )

    def merge(self, other: Iterable[E], only_unique: bool = True) -> Collection[E]:
        """Append the entities of *other*, skipping already present ones when *only_unique*."""
        for entity in other:
            if only_unique and entity in self:
                continue
            self.add(entity)

        return self

    def __contains__(self, entity: object) -> bool:
        if any(entity is existing for existing in self._entities):
            return True

        pk = getattr(entity, "primary_key", lambda: None)()
        if pk is None:
            return False

        return any(
            type(existing) is type(entity) and existing.primary_key() == pk
            for existing in self._entities
        )

    def __iter__(self) -> Iterator[E]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    @overload
    def __getitem__(self, index: int) -> E: ...

    @overload
    def __getitem__(self, index: slice) -> list[E]: ...

    def __getitem__(self, index: int | slice) -> E | list[E]:
        return self._entities[index]

    def __repr__(self) -> str:
        name = self._entity_cls.__name__ if self._entity_cls else "?"
        return f"<{type(self).__name__}[{name}] {len(self._entities)} entities>"
