"""Relation descriptors.

A :class:`Relation` is an immutable description of how one owner entity (or,
after :meth:`Relation.identity_values_from_collection`, a batch of owners)
reaches its related rows. The four kinds differ only in which side holds the
key and whether the result is one entity or many; a single distribution
algorithm covers them all:

* ``HAS_ONE`` / ``HAS_MANY``: the target row holds ``foreign_key`` pointing
  at the owner's ``local_key`` (its primary key).
* ``BELONGS_TO``: the owner holds ``local_key`` pointing at the target's
  primary key, stored as ``foreign_key``.
* ``HAS_MANY_THROUGH``: pivot rows of the ``through`` entity hold
  ``through_key`` (pointing at the owner) and ``foreign_key`` (pointing at
  the target).
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from .collection import Collection
from .exceptions import MissingPrimaryKey


if TYPE_CHECKING:
    from .context import LoadContext
    from .entity import Entity
    from .mapper import Mapper
    from .proxy import RelationProxy
    from .query import Query, QueryModifier

logger = logging.getLogger(__name__)


class KeyDirection(enum.Enum):
    FORWARD = "forward"
    INVERSE = "inverse"


class RelationKind(enum.Enum):
    HAS_ONE = ("has_one", KeyDirection.FORWARD, False, False)
    BELONGS_TO = ("belongs_to", KeyDirection.INVERSE, False, False)
    HAS_MANY = ("has_many", KeyDirection.FORWARD, True, False)
    HAS_MANY_THROUGH = ("has_many_through", KeyDirection.FORWARD, True, True)

    def __init__(self, label: str, direction: KeyDirection, many: bool, through: bool) -> None:
        self.label = label
        self.direction = direction
        self.many = many
        self.through = through


def _unique(values: Iterable[Any]) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(value for value in values if value is not None))


@dataclasses.dataclass(frozen=True, slots=True, eq=False)
class Relation:
    """How an owner reaches related entities.

    Attributes:
        kind: Relation topology.
        mapper: Mapper of the owner entity.
        target: Related entity class.
        foreign_key: Key on the target side (see module docstring).
        local_key: Owner field matched against related rows.
        identity: Owner key value, or a tuple of values once scoped to a batch.
        through: Pivot entity class for ``HAS_MANY_THROUGH``.
        through_key: Pivot field pointing at the owner.
        depth: Hydration depth of the entities this relation loads.
    """

    kind: RelationKind
    mapper: Mapper
    target: type[Entity]
    foreign_key: str
    local_key: str
    identity: Any
    through: type[Entity] | None = None
    through_key: str | None = None
    depth: int = 1

    @property
    def target_mapper(self) -> Mapper:
        return self.mapper.get_mapper(self.target)

    @property
    def through_mapper(self) -> Mapper:
        if self.through is None:
            raise TypeError(f"{self.kind.label} relation has no pivot entity")

        return self.mapper.get_mapper(self.through)

    @property
    def is_batch(self) -> bool:
        return isinstance(self.identity, tuple)

    @property
    def has_identity(self) -> bool:
        if self.is_batch:
            return bool(self.identity)

        return self.identity is not None

    def _context(self) -> LoadContext:
        return self.mapper.new_context().at_depth(self.depth)

    # queries

    def through_rows(self) -> Collection[Any]:
        """Pivot entities linking the owner identity to targets."""
        query = self.through_mapper.select(context=self._context())

        return query.where({self.through_key: self.identity}).execute()

    def _target_query(self, key: str, values: Any) -> Query:
        return self.target_mapper.select(context=self._context()).where({key: values})

    def build_query(self, pivot: Collection[Any] | None = None) -> Query:
        """Query for the related rows of the current identity.

        For ``HAS_MANY_THROUGH`` the pivot query runs first unless *pivot*
        rows are supplied.
        """
        if not self.kind.through:
            return self._target_query(self.foreign_key, self.identity)

        if pivot is None:
            pivot = self.through_rows()
        target_ids = list(_unique(pivot.to_list(self.foreign_key)))

        return self._target_query(f"{self.target_mapper.primary_key_field()} :in", target_ids)

    def identity_values_from_collection(self, collection: Collection[Any]) -> Relation:
        """Return a copy of this relation scoped to every owner in *collection*."""
        if self.kind.direction is KeyDirection.INVERSE:
            identity = _unique(entity.get(self.local_key) for entity in collection)
        else:
            if not self.mapper.has_primary_key:
                raise MissingPrimaryKey(self.mapper.entity)
            identity = tuple(collection.identities)

        return dataclasses.replace(self, identity=identity)

    # eager loading

    def eager_load_on_collection(
        self,
        name: str,
        collection: Collection[Any],
        modifiers: Sequence[QueryModifier] = (),
    ) -> Collection[Any]:
        """Load *name* for every owner in *collection* with one query.

        ``HAS_MANY_THROUGH`` takes two: the pivot rows, then the targets.
        Owners without related rows get ``None`` (single kinds) or an empty
        collection (many kinds).
        """
        scoped = self.identity_values_from_collection(collection)
        grouped: dict[Any, list[Any]] = {}

        if scoped.has_identity:
            pivot = scoped.through_rows() if self.kind.through else None
            query = scoped.build_query(pivot)
            for modifier in modifiers:
                query = modifier.apply(query)
            related = query.execute()
            logger.debug(
                "eager %s.%s: %d owners, %d related",
                self.mapper.entity.__name__,
                name,
                len(collection),
                len(related),
            )

            if pivot is None:
                for entity in related:
                    grouped.setdefault(entity.get(self.foreign_key), []).append(entity)
            else:
                by_pk = {entity.primary_key(): entity for entity in related}
                for link in pivot:
                    entity = by_pk.get(link.get(self.foreign_key))
                    if entity is not None:
                        grouped.setdefault(link.get(self.through_key), []).append(entity)

        for owner in collection:
            self._assign(owner, name, grouped.get(owner.get(self.local_key), []))

        return collection

    def _assign(self, owner: Entity, name: str, matches: list[Any]) -> None:
        if self.kind.many:
            owner.attach(name, Collection(matches, entity_cls=self.target))
        elif matches:
            owner.attach(name, matches[0])
        else:
            owner.attach(name, None)

    # persistence

    def save(self, entity: Entity, name: str, **options: Any) -> Any:
        """Persist the value assigned to relation *name* of *entity*.

        Only values the caller assigned are saved; loaded values and proxies,
        executed or not, are skipped. ``None`` detaches every stored row.
        """
        from .proxy import RelationProxy

        if not entity.is_assigned(name):
            return None

        value = entity.relation(name)
        if isinstance(value, RelationProxy):
            return None

        if self.kind is RelationKind.HAS_MANY:
            return self._save_has_many(entity, value, options)
        if self.kind is RelationKind.HAS_ONE:
            return self._save_has_one(entity, value, options)
        if self.kind is RelationKind.BELONGS_TO:
            return self._save_belongs_to(entity, value, options)

        return self._save_through(entity, value, options)

    def _detach(self, conditions: dict[str, Any]) -> int:
        mapper = self.target_mapper
        field = mapper.fields().get(self.foreign_key)
        if field is not None and field.is_notnull:
            return mapper.delete(conditions)

        return mapper.update_where({self.foreign_key: None}, conditions)

    def _save_has_many(self, entity: Entity, related: Any, options: dict[str, Any]) -> Any:
        mapper = self.target_mapper
        owner_pk = entity.primary_key()
        result = None

        if related is None:
            return self._detach({self.foreign_key: owner_pk})

        kept = []
        for item in related:
            if item.is_new or item.is_modified() or item.get(self.foreign_key) != owner_pk:
                item.set(self.foreign_key, owner_pk)
                result = mapper.save(item, **options)
            kept.append(item.primary_key())

        stored = mapper.where({self.foreign_key: owner_pk}).execute()
        removed = [pk for pk in stored.identities if pk not in kept]
        if removed:
            self._detach({
                self.foreign_key: owner_pk,
                f"{mapper.primary_key_field()} :in": removed,
            })

        return result

    def _save_has_one(self, entity: Entity, related: Any, options: dict[str, Any]) -> Any:
        owner_pk = entity.primary_key()
        if related is None or related.get(self.foreign_key) != owner_pk:
            self._detach({self.foreign_key: owner_pk})
            if related is not None:
                related.set(self.foreign_key, owner_pk)

        if related is not None and (related.is_new or related.is_modified()):
            return self.target_mapper.save(related, **options)

        return None

    def _save_belongs_to(self, entity: Entity, related: Any, options: dict[str, Any]) -> Any:
        if related is None:
            entity.set(self.local_key, None)
            return None

        result = None
        if related.is_new or related.is_modified():
            result = self.target_mapper.save(related, **options)
        if entity.get(self.local_key) != related.primary_key():
            entity.set(self.local_key, related.primary_key())

        return result

    def _save_through(self, entity: Entity, related: Any, options: dict[str, Any]) -> Any:
        through_mapper = self.through_mapper
        owner_pk = entity.primary_key()

        if related is None:
            return through_mapper.delete({self.through_key: owner_pk})

        mapper = self.target_mapper
        result = None
        candidates = []
        for item in related:
            if item.is_new or item.is_modified():
                result = mapper.save(item, **options)
            candidates.append(item.primary_key())

        linked = set(through_mapper.where({self.through_key: owner_pk}).execute().to_list(self.foreign_key))
        for target_pk in dict.fromkeys(candidates):
            if target_pk not in linked:
                result = through_mapper.create({self.through_key: owner_pk, self.foreign_key: target_pk})

        removed = [pk for pk in linked if pk not in candidates]
        if removed:
            through_mapper.delete({self.through_key: owner_pk, f"{self.foreign_key} :in": removed})

        return result


class RelationFactory:
    """Builds relation proxies for one owner entity.

    Passed to :meth:`Entity.relations`; the proxies it returns are registered
    on the entity during hydration or resolved on demand.
    """

    __slots__ = ("_context", "_entity", "_mapper")

    def __init__(self, mapper: Mapper, entity: Entity, context: LoadContext) -> None:
        self._mapper = mapper
        self._entity = entity
        self._context = context

    @property
    def auto_loading(self) -> bool:
        """True while relations are registered automatically during hydration."""
        return self._context.auto_loading

    @property
    def mapper(self) -> Mapper:
        return self._mapper

    def _proxy(self, relation: Relation) -> RelationProxy:
        from .proxy import RelationProxy

        return RelationProxy(relation, self._context)

    def _relation(self, kind: RelationKind, target: type[Entity], **fields: Any) -> RelationProxy:
        return self._proxy(Relation(
            kind=kind,
            mapper=self._mapper,
            target=target,
            depth=self._context.depth,
            **fields,
        ))

    def has_many(
        self, target: type[Entity], foreign_key: str, local_value: Any = None
    ) -> RelationProxy:
        """Target rows whose *foreign_key* equals the owner's primary key (or *local_value*)."""
        local_key = self._mapper.primary_key_field()
        identity = self._entity.get(local_key) if local_value is None else local_value

        return self._relation(
            RelationKind.HAS_MANY, target, foreign_key=foreign_key, local_key=local_key, identity=identity
        )

    def has_one(self, target: type[Entity], foreign_key: str) -> RelationProxy:
        """The target row whose *foreign_key* equals the owner's primary key."""
        local_key = self._mapper.primary_key_field()

        return self._relation(
            RelationKind.HAS_ONE,
            target,
            foreign_key=foreign_key,
            local_key=local_key,
            identity=self._entity.get(local_key),
        )

    def belongs_to(self, target: type[Entity], local_key: str) -> RelationProxy:
        """The target row whose primary key equals the owner's *local_key*."""
        return self._relation(
            RelationKind.BELONGS_TO,
            target,
            foreign_key=self._mapper.get_mapper(target).primary_key_field(),
            local_key=local_key,
            identity=self._entity.get(local_key),
        )

    def has_many_through(
        self, target: type[Entity], through: type[Entity], select_field: str, where_field: str
    ) -> RelationProxy:
        """Targets linked through pivot rows of *through*.

        Args:
            target: Related entity class.
            through: Pivot entity class.
            select_field: Pivot field holding the target primary key.
            where_field: Pivot field holding the owner primary key.
        """
        local_key = self._mapper.primary_key_field()

        return self._relation(
            RelationKind.HAS_MANY_THROUGH,
            target,
            foreign_key=select_field,
            local_key=local_key,
            identity=self._entity.get(local_key),
            through=through,
            through_key=where_field,
        )
