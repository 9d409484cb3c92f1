from __future__ import annotations

import logging
import warnings
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .collection import Collection
from .conditions import ConditionCompiler
from .context import LoadContext
from .datastructures import frozendict
from .eager import eager_load
from .entity import Entity, Field
from .exceptions import MissingPrimaryKey, UnknownRelation
from .operators import default_registry
from .query import Query
from .relations import KeyDirection, Relation, RelationFactory
from .tools import get_primary_key, get_table_name
from .types import from_storage_value, to_storage_value


if TYPE_CHECKING:
    from .backend import Backend
    from .config import Config
    from .locator import Locator
    from .proxy import RelationProxy

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class Mapper(Generic[E]):
    """Reads, writes and hydrates one entity type.

    Mappers are obtained from a :class:`~sqla_entities.Locator`, which binds
    them to a backend and a :class:`~sqla_entities.Config`. An entity class
    can name a ``Mapper`` subclass in ``__mapper__`` to add custom finders.

    Example:
        >>> posts = locator.mapper(Post)
        >>> post = posts.create({"title": "Hello", "author_id": 1})
        >>> posts.where({"title :like": "Hel%"}).with_("comments").execute()
    """

    def __init__(self, locator: Locator, entity: type[E]) -> None:
        if not (isinstance(entity, type) and issubclass(entity, Entity)) or entity is Entity:
            raise TypeError(f"entity must be an Entity subclass, got {entity!r}")

        self.locator = locator
        self.entity = entity
        self._compiler: ConditionCompiler | None = None
        self._relation_definitions: frozendict[str, Relation] | None = None
        self._columns = frozendict({field.column_name: name for name, field in entity.__fields__.items()})

    # metadata

    @property
    def backend(self) -> Backend:
        return self.locator.backend

    @property
    def config(self) -> Config:
        return self.locator.config

    def get_mapper(self, entity: type[Entity]) -> Mapper[Any]:
        return self.locator.mapper(entity)

    def table(self) -> str:
        return get_table_name(self.entity)

    def fields(self) -> frozendict[str, Field]:
        return self.entity.__fields__

    @property
    def has_primary_key(self) -> bool:
        return get_primary_key(self.entity) is not None

    def primary_key_field(self) -> str:
        """Name of the primary-key field.

        Raises:
            MissingPrimaryKey: If the entity declares none.
        """
        name = get_primary_key(self.entity)
        if name is None:
            raise MissingPrimaryKey(self.entity)

        return name

    def primary_key(self, entity: E) -> Any:
        return entity.get(self.primary_key_field())

    def scopes(self) -> Mapping[str, Any]:
        return self.entity.scopes()

    def new_context(self) -> LoadContext:
        return LoadContext(max_depth=self.config.max_relation_depth)

    # conditions

    @property
    def compiler(self) -> ConditionCompiler:
        if self._compiler is None:
            self._compiler = ConditionCompiler(
                default_registry,
                column=self.column_expression,
                converter=self._condition_value,
                dialect=self.backend.dialect_name,
            )

        return self._compiler

    def column_expression(self, name: str) -> str:
        """Table-qualified, quoted column for field *name*.

        Expressions (anything with a space, parenthesis or dot) pass through unchanged.
        """
        if any(char in name for char in " (."):
            return name

        field = self.fields().get(name)
        column = field.column_name if field is not None else name
        quote = self.backend.quote_identifier

        return f"{quote(self.table())}.{quote(column)}"

    def _condition_value(self, name: str, value: Any) -> Any:
        field = self.fields().get(name)
        if field is None:
            return value

        return to_storage_value(field.type, value, self.backend.dialect)

    # conversion

    def convert_to_storage(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """``{field: value}`` to ``{column: storage value}``."""
        fields = self.fields()
        dialect = self.backend.dialect

        return {
            fields[name].column_name: to_storage_value(fields[name].type, value, dialect)
            for name, value in data.items()
        }

    def convert_from_storage(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """``{column: raw value}`` to ``{field: value}``; unknown columns are kept as is."""
        fields = self.fields()
        dialect = self.backend.dialect
        result: dict[str, Any] = {}
        for column, raw in row.items():
            name = self._columns.get(column)
            if name is None:
                result[column] = raw
            else:
                result[name] = from_storage_value(fields[name].type, raw, dialect)

        return result

    # reading

    def select(self, *, context: LoadContext | None = None) -> Query:
        return Query(self, context=context)

    def all(self) -> Query:
        return self.select()

    def where(self, conditions: Mapping[str, Any], connective: str = "AND") -> Query:
        return self.select().where(conditions, connective)

    def first(self, conditions: Mapping[str, Any] | None = None) -> E | None:
        return self.where(conditions or {}).first()

    def get(self, identity: Any) -> E | None:
        """Entity with primary key *identity*, or ``None``."""
        return self.first({self.primary_key_field(): identity})

    def build(self, data: Mapping[str, Any] | None = None) -> E:
        """New, unsaved entity bound to this mapper."""
        entity = self.entity()
        object.__setattr__(entity, "_mapper", self)
        entity.set_data(data or {})

        return entity

    def hydrate(self, row: Mapping[str, Any], context: LoadContext) -> E:
        entity = self.entity()
        object.__setattr__(entity, "_mapper", self)
        object.__setattr__(entity, "_depth", context.depth)
        entity.set_data(self.convert_from_storage(row), modified=False)
        entity.is_new = False
        self.load_relations(entity, context)

        return entity

    def collection(
        self,
        rows: Iterable[Mapping[str, Any]],
        with_: Iterable[str] = (),
        context: LoadContext | None = None,
    ) -> Collection[E]:
        """Hydrate *rows* and eager-load *with_* on the result."""
        context = context or self.new_context()
        collection = Collection([self.hydrate(row, context) for row in rows], entity_cls=self.entity)
        paths = tuple(with_)
        if paths and collection:
            eager_load(self, collection, paths, context)

        return collection

    # relations

    def load_relations(self, entity: E, context: LoadContext) -> None:
        """Register relation proxies on *entity* unless the context is too deep."""
        if context.exhausted:
            logger.debug(
                "skip relations of %s at depth %d", self.entity.__name__, context.depth
            )
            return

        with context.registering():
            factory = RelationFactory(self, entity, context)
            for name, proxy in self.entity.relations(factory, entity).items():
                entity.attach(name, proxy)

    def resolve_relation(
        self, entity: E, name: str, context: LoadContext | None = None
    ) -> RelationProxy:
        """Fresh proxy for relation *name* of *entity*, honoring its modifiers.

        Raises:
            UnknownRelation: If the entity type defines no relation *name*.
        """
        if context is None:
            context = self.new_context().at_depth(entity._depth + 1)

        relations = self.entity.relations(RelationFactory(self, entity, context), entity)
        if name not in relations:
            raise UnknownRelation(self.entity, name)

        return relations[name]

    def relation_definitions(self) -> frozendict[str, Relation]:
        """``{name: Relation}`` as defined for a blank entity (cached per mapper)."""
        if self._relation_definitions is None:
            context = self.new_context()
            with context.registering():
                blank = self.entity()
                proxies = self.entity.relations(RelationFactory(self, blank, context), blank)
            self._relation_definitions = frozendict({
                name: proxy.relation for name, proxy in proxies.items()
            })

        return self._relation_definitions

    def save_has_relations(self, entity: E, **options: Any) -> Any:
        """Save every has-one, has-many and through relation assigned on *entity*."""
        result = None
        for name, relation in self.relation_definitions().items():
            if relation.kind.direction is KeyDirection.FORWARD and entity.has_relation(name):
                result = relation.save(entity, name, **options)

        return result

    def save_belongs_to_relations(self, entity: E, **options: Any) -> Any:
        """Save every belongs-to relation assigned on *entity*."""
        result = None
        for name, relation in self.relation_definitions().items():
            if relation.kind.direction is KeyDirection.INVERSE and entity.has_relation(name):
                result = relation.save(entity, name, **options)

        return result

    # writing

    def _writable(self, data: Mapping[str, Any], strict: bool | None, action: str) -> dict[str, Any]:
        fields = self.fields()
        extra = [name for name in data if name not in fields]
        if extra:
            message = (
                f"{action} error: Unknown fields provided for {self.entity.__name__}: "
                + ", ".join(repr(name) for name in extra)
            )
            if self.config.strict if strict is None else strict:
                raise ValueError(message)
            warnings.warn(message, UserWarning, stacklevel=4)

        return {name: value for name, value in data.items() if name in fields}

    def insert(
        self, entity: E | Mapping[str, Any], *, relations: bool = False, strict: bool | None = None
    ) -> Any:
        """Insert *entity* (or a new entity built from a mapping) and return its primary key."""
        if not isinstance(entity, Entity):
            entity = self.build(entity)
        elif entity._mapper is not self:
            entity._bind(self)

        if relations:
            self.save_belongs_to_relations(entity, relations=relations, strict=strict)

        data = self._writable(entity.data(), strict, "Insert")
        pk_field = get_primary_key(self.entity)
        if pk_field is not None and data.get(pk_field) is None:
            data.pop(pk_field, None)

        column = self.fields()[pk_field].column_name if pk_field is not None else None
        result = self.backend.execute_write(
            self.table(), self.convert_to_storage(data), primary_key=column
        )
        logger.debug("inserted %s %r", self.entity.__name__, result)

        if pk_field is not None:
            entity.set(pk_field, result)
        entity.set_data(entity.data(), modified=False)
        entity.is_new = False

        if relations:
            self.save_has_relations(entity, relations=relations, strict=strict)

        return result

    def update(self, entity: E, *, relations: bool = False, strict: bool | None = None) -> int:
        """Write the modified fields of *entity*; returns the affected row count."""
        if entity._mapper is not self:
            entity._bind(self)
        pk = self.primary_key(entity)
        if relations:
            self.save_belongs_to_relations(entity, relations=relations, strict=strict)

        modified = {
            name: value
            for name, value in entity.data_modified().items()
            if entity.is_modified(name) is not False
        }
        data = self._writable(modified, strict, "Update")

        result = 0
        if data:
            where = self.compiler.compile({self.primary_key_field(): pk})
            result = self.backend.execute_write(self.table(), self.convert_to_storage(data), where)
            entity.set_data(entity.data(), modified=False)

        if relations:
            self.save_has_relations(entity, relations=relations, strict=strict)

        return result

    def save(self, entity: E, *, relations: bool = False, strict: bool | None = None) -> Any:
        """Insert new entities, update stored ones."""
        if entity.is_new:
            return self.insert(entity, relations=relations, strict=strict)

        return self.update(entity, relations=relations, strict=strict)

    def create(
        self, data: Mapping[str, Any], *, relations: bool = False, strict: bool | None = None
    ) -> E:
        """Build, insert and return a new entity."""
        entity = self.build(data)
        self.insert(entity, relations=relations, strict=strict)

        return entity

    def update_where(self, data: Mapping[str, Any], conditions: Mapping[str, Any]) -> int:
        """Set *data* on every row matching *conditions*."""
        return self.backend.execute_write(
            self.table(),
            self.convert_to_storage(self._writable(data, True, "Update")),
            self.compiler.compile(conditions),
        )

    def delete(self, target: E | Mapping[str, Any] | None = None) -> int:
        """Delete one entity, or every row matching a conditions mapping.

        Without *target* every row of the table is deleted.
        """
        if isinstance(target, Entity):
            conditions: Mapping[str, Any] = {self.primary_key_field(): self.primary_key(target)}
        else:
            conditions = target or {}

        result = self.backend.execute_delete(self.table(), self.compiler.compile(conditions))
        logger.debug("deleted %d %s rows", result, self.entity.__name__)

        return result
