"""Entity mapping with batched, depth-limited relation loading on SQLAlchemy Core.

Declare entities with :class:`Field` attributes and a ``relations`` hook,
obtain a :class:`Mapper` from a :class:`Locator` bound to a
:class:`SQLAlchemyBackend`, and query with ``where({"field op": value})``.
Relations load lazily through proxies or eagerly with ``with_([...])``:
one query per relation level, never one per entity.
"""

from ._version import __version__, __version_tuple__
from .backend import Backend, SQLAlchemyBackend
from .collection import Collection
from .conditions import ConditionCompiler
from .config import DEFAULT_MAX_RELATION_DEPTH, Config
from .context import LoadContext
from .datastructures import frozendict
from .eager import eager_load
from .entity import UNSET, Entity, Field
from .exceptions import (
    InvalidOperandError,
    MissingPrimaryKey,
    NoSuchMethod,
    OperatorAlreadyRegistered,
    SqlaEntitiesError,
    UnknownRelation,
    UnsupportedOperator,
)
from .locator import Locator
from .mapper import Mapper
from .operators import Fragment, OperatorRegistry, default_registry, register_operator
from .proxy import RelationProxy
from .query import Query, QueryModifier
from .relations import KeyDirection, Relation, RelationFactory, RelationKind
from .tools import add_conditions, cache_clear, cache_info, get_primary_key, get_table_name, unique_entities


__all__ = (
    "DEFAULT_MAX_RELATION_DEPTH",
    "UNSET",
    "Backend",
    "Collection",
    "ConditionCompiler",
    "Config",
    "Entity",
    "Field",
    "Fragment",
    "InvalidOperandError",
    "KeyDirection",
    "LoadContext",
    "Locator",
    "Mapper",
    "MissingPrimaryKey",
    "NoSuchMethod",
    "OperatorAlreadyRegistered",
    "OperatorRegistry",
    "Query",
    "QueryModifier",
    "Relation",
    "RelationFactory",
    "RelationKind",
    "RelationProxy",
    "SQLAlchemyBackend",
    "SqlaEntitiesError",
    "UnknownRelation",
    "UnsupportedOperator",
    "__version__",
    "__version_tuple__",
    "add_conditions",
    "cache_clear",
    "cache_info",
    "default_registry",
    "eager_load",
    "frozendict",
    "get_primary_key",
    "get_table_name",
    "register_operator",
    "unique_entities",
)
