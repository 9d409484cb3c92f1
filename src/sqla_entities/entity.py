from __future__ import annotations

import copy
import sys
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Final, final

import sqlalchemy as sa

from .datastructures import frozendict
from .types import sa_type


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from .mapper import Mapper
    from .relations import RelationFactory


_MUTABLE_TYPES: Final[tuple[type, ...]] = (list, dict, set, bytearray)


@final
class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


class Field:
    """Declarative field on an :class:`Entity` subclass.

    Example:
        >>> class Post(Entity):
        ...     __tablename__ = "posts"
        ...     id = Field("integer", primary=True, autoincrement=True)
        ...     title = Field("string", required=True, length=200)
        ...     author_id = Field("integer", column="author")
    """

    __slots__ = (
        "autoincrement",
        "column",
        "default",
        "index",
        "length",
        "name",
        "notnull",
        "primary",
        "required",
        "type",
        "unique",
    )

    def __init__(
        self,
        type: str = "string",  # noqa: A002
        *,
        primary: bool = False,
        autoincrement: bool = False,
        required: bool = False,
        notnull: bool | None = None,
        unique: bool = False,
        index: bool = False,
        default: Any = None,
        column: str | None = None,
        length: int | None = None,
    ) -> None:
        sa_type(type, length)
        self.type = type
        self.primary = primary
        self.autoincrement = autoincrement
        self.required = required
        self.notnull = notnull
        self.unique = unique
        self.index = index
        self.default = default
        self.column = column
        self.length = length
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Entity | None, owner: type | None = None) -> Any:
        if obj is None:
            return self

        return obj.get(self.name)

    def __set__(self, obj: Entity, value: Any) -> None:
        obj.set(self.name, value)

    @property
    def is_primary(self) -> bool:
        return self.primary or self.autoincrement

    @property
    def is_notnull(self) -> bool:
        if self.notnull is not None:
            return self.notnull

        return self.required or self.is_primary

    @property
    def column_name(self) -> str:
        return self.column or self.name

    def to_column(self) -> sa.Column[Any]:
        return sa.Column(
            self.column_name,
            sa_type(self.type, self.length),
            primary_key=self.is_primary,
            autoincrement=True if self.autoincrement else "auto",
            nullable=not self.is_notnull,
            unique=self.unique or None,
            index=self.index or None,
        )

    def __repr__(self) -> str:
        return f"Field({self.type!r}, name={self.name!r})"


class Entity:
    """Base class for mapped records.

    Subclasses declare ``__tablename__`` and :class:`Field` attributes, and
    optionally override :meth:`relations` and :meth:`scopes`. Values read from
    storage live in the *original* view; assignments land in the *modified*
    view until the mapper persists them. Mutable values are copied into the
    modified view on first read so the two views never share an object.

    Relation values (lazy proxies, loaded entities, collections) are kept per
    instance, apart from field data, and never serialized by :meth:`data`.
    """

    __tablename__: ClassVar[str]
    __fields__: ClassVar[frozendict[str, Field]] = frozendict()
    __mapper__: ClassVar[type[Mapper] | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        fields: dict[str, Field] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Field):
                    fields[name] = value

        reserved = sorted(name for name in fields if hasattr(Entity, name))
        if reserved:
            raise TypeError(f"{cls.__name__}: field names shadow Entity attributes: {reserved}")

        cls.__fields__ = frozendict(fields)

    def __init__(self, data: Mapping[str, Any] | None = None, **values: Any) -> None:
        object.__setattr__(self, "_data", {
            name: copy.deepcopy(field.default) for name, field in self.__fields__.items()
        })
        object.__setattr__(self, "_modified", {})
        object.__setattr__(self, "_relations", {})
        object.__setattr__(self, "_assigned", set())
        object.__setattr__(self, "_errors", {})
        object.__setattr__(self, "_is_new", True)
        object.__setattr__(self, "_mapper", None)
        object.__setattr__(self, "_depth", 0)

        self.set_data({**(data or {}), **values})

    @classmethod
    def relations(cls, factory: RelationFactory, entity: Self) -> Mapping[str, Any]:
        """Return ``{name: relation proxy}`` for *entity*.

        Example:
            >>> @classmethod
            ... def relations(cls, factory, entity):
            ...     return {
            ...         "author": factory.belongs_to(Author, "author_id"),
            ...         "comments": factory.has_many(Comment, "post_id").order({"id": "ASC"}),
            ...     }
        """
        return {}

    @classmethod
    def scopes(cls) -> Mapping[str, Any]:
        """Return ``{name: callable(query, *args) -> query}`` named query modifiers."""
        return {}

    @classmethod
    def to_table(cls, metadata: sa.MetaData) -> sa.Table:
        """Describe the entity as a ``sa.Table`` registered on *metadata*."""
        from .tools import get_table_name

        return sa.Table(
            get_table_name(cls),
            metadata,
            *(field.to_column() for field in cls.__fields__.values()),
        )

    # field data

    def get(self, name: str) -> Any:
        """Return field *name*, or relation *name* when no such field exists."""
        if name in self._modified:
            return self._modified[name]

        if name not in self._data and self._is_relation_name(name):
            return getattr(self, name)

        value = self._data.get(name)
        if isinstance(value, _MUTABLE_TYPES):
            value = copy.deepcopy(value)
            self._modified[name] = value

        return value

    def set(self, name: str, value: Any, modified: bool = True) -> None:
        """Assign field *name*, or relation *name* when no such field exists.

        Assigning ``None`` to a relation marks it as explicitly empty: saving
        with ``relations=True`` then detaches every stored related row.
        """
        if name not in self._data and self._is_relation_name(name):
            if value is None:
                self.detach(name)
            else:
                self.relation(name, value)
            return

        if modified:
            self._modified[name] = value
        else:
            self._data[name] = value
            self._modified.pop(name, None)

    def set_data(self, values: Mapping[str, Any], *, modified: bool = True) -> Self:
        for name, value in values.items():
            self.set(name, value, modified)

        return self

    def data(self) -> dict[str, Any]:
        """Merged original and modified values, without relations."""
        return {name: self.get(name) for name in {**self._data, **self._modified}}

    def data_modified(self, name: str | None = None) -> Any:
        if name is not None:
            return self._modified.get(name)

        return dict(self._modified)

    def data_unmodified(self, name: str | None = None) -> Any:
        if name is not None:
            return self._data.get(name)

        return dict(self._data)

    def is_modified(self, name: str | None = None) -> bool | None:
        """Whether *name* (or any field) differs from its original value.

        Returns ``None`` for a name the entity has never seen.
        """
        if name is None:
            return any(self.is_modified(key) for key in self._modified)

        if name in self._modified:
            return self._modified[name] != self._data.get(name)
        if name in self._data:
            return False

        return None

    @property
    def is_new(self) -> bool:
        return self._is_new

    @is_new.setter
    def is_new(self, value: bool) -> None:
        object.__setattr__(self, "_is_new", value)

    def primary_key_field(self) -> str | None:
        from .tools import get_primary_key

        return get_primary_key(type(self))

    def primary_key(self) -> Any:
        field = self.primary_key_field()

        return None if field is None else self.get(field)

    # relations

    def relation(self, name: str, value: Any = None) -> Any:
        """Get, set or clear the relation slot *name*.

        ``relation(name)`` returns the stored proxy/entity/collection (``None``
        if absent), ``relation(name, value)`` stores *value* and
        ``relation(name, UNSET)`` removes the slot.
        """
        if value is UNSET:
            self._relations.pop(name, None)
            self._assigned.discard(name)
            return None
        if value is None:
            return self._relations.get(name)

        self._relations[name] = value
        self._assigned.add(name)
        return value

    def attach(self, name: str, value: Any) -> None:
        """Store a value loaded from storage in relation slot *name*.

        Unlike :meth:`relation`, the value does not count as an assignment,
        so saving with ``relations=True`` leaves the relation untouched.
        """
        self._relations[name] = value
        self._assigned.discard(name)

    def detach(self, name: str) -> None:
        """Mark relation *name* as explicitly empty, so saving it detaches stored rows."""
        self._relations[name] = None
        self._assigned.add(name)

    def is_assigned(self, name: str) -> bool:
        """Whether relation *name* holds a value set by the caller rather than loaded."""
        return name in self._assigned

    def has_relation(self, name: str) -> bool:
        return name in self._relations

    def _is_relation_name(self, name: str) -> bool:
        if name in self.__fields__:
            return False
        if name in self._relations:
            return True

        mapper = self._mapper
        return mapper is not None and name in mapper.relation_definitions()

    def _bind(self, mapper: Mapper) -> None:
        # values assigned before a mapper knew the relation names sit in the field views
        object.__setattr__(self, "_mapper", mapper)
        for name in mapper.relation_definitions():
            if name in self._modified and name not in self.__fields__:
                self.set(name, self._modified.pop(name))

    def loaded_relations(self) -> dict[str, Any]:
        return dict(self._relations)

    # errors

    def errors(self, name: str | None = None) -> Any:
        if name is not None:
            return list(self._errors.get(name, ()))

        return {key: list(messages) for key, messages in self._errors.items()}

    def add_error(self, name: str, message: str) -> None:
        self._errors.setdefault(name, []).append(message)

    def has_errors(self, name: str | None = None) -> bool:
        if name is not None:
            return bool(self._errors.get(name))

        return any(self._errors.values())

    # serialization

    def to_dict(self, load_relations: bool = True) -> dict[str, Any]:
        """Field values plus already resolved relations.

        Lazy proxies are skipped, so serializing never issues queries. Related
        entities are serialized without their own relations.
        """
        from .collection import Collection

        result = self.data()
        if not load_relations:
            return result

        for name, value in self._relations.items():
            if value is None:
                result[name] = None
            elif isinstance(value, Entity):
                result[name] = value.to_dict(load_relations=False)
            elif isinstance(value, Collection):
                result[name] = [entity.to_dict(load_relations=False) for entity in value]

        return result

    # attribute access

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        if name in self._relations:
            return self._relations[name]

        mapper = self._mapper
        if mapper is not None and name in mapper.relation_definitions():
            proxy = mapper.resolve_relation(self, name)
            self._relations[name] = proxy
            return proxy

        if name in self._modified or name in self._data:
            return self.get(name)

        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name in self.__fields__ or hasattr(type(self), name):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.primary_key_field()}={self.primary_key()!r}>"
