"""Batched eager loading of relation paths.

``eager_load(mapper, posts, ["author", "comments.author"])`` attaches every
post's author with one query, every post's comments with one more, and then
the comment authors (de-duplicated across all posts) with a third.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from .collection import Collection
from .datastructures import frozendict
from .exceptions import UnknownRelation
from .tools import unique_entities


if TYPE_CHECKING:
    from .context import LoadContext
    from .entity import Entity
    from .mapper import Mapper

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1024)
def _partition_paths(paths: tuple[str, ...]) -> tuple[tuple[str, ...], frozendict[str, tuple[str, ...]]]:
    """Split dotted *paths* into top-level names and ``{name: sub-paths}``.

    Names are ordered by first appearance, prefixes of dotted paths included:
    ``("comments.author", "tags")`` gives ``("comments", "tags")`` and
    ``{"comments": ("author",)}``.
    """
    top: dict[str, None] = {}
    nested: dict[str, dict[str, None]] = {}
    for path in paths:
        head, sep, rest = path.strip().partition(".")
        if not head:
            raise ValueError(f"Invalid relation path {path!r}")
        top.setdefault(head)
        if sep and rest:
            nested.setdefault(head, {}).setdefault(rest)

    return tuple(top), frozendict({name: tuple(subpaths) for name, subpaths in nested.items()})


def validate_paths(mapper: Mapper, paths: Sequence[str]) -> None:
    """Check every segment of *paths* against relation definitions.

    Raises:
        UnknownRelation: On the first segment the entity type does not define.
    """
    top, nested = _partition_paths(tuple(paths))
    definitions = mapper.relation_definitions()
    for name in top:
        relation = definitions.get(name)
        if relation is None:
            raise UnknownRelation(mapper.entity, name)
        if name in nested:
            validate_paths(mapper.get_mapper(relation.target), nested[name])


def _attached(collection: Collection[Any], name: str) -> list[Entity]:
    from .entity import Entity

    related: list[Entity] = []
    for owner in collection:
        value = owner.relation(name)
        if isinstance(value, Collection):
            related.extend(value)
        elif isinstance(value, Entity):
            related.append(value)

    return related


def _load(mapper: Mapper, collection: Collection[Any], paths: tuple[str, ...]) -> None:
    top, nested = _partition_paths(paths)
    owner = collection.first()
    for name in top:
        proxy = mapper.resolve_relation(owner, name)
        logger.debug("eager load %s.%s on %d entities", mapper.entity.__name__, name, len(collection))
        proxy.eager_load_on_collection(name, collection)

        subpaths = nested.get(name)
        if not subpaths:
            continue

        related = unique_entities(_attached(collection, name))
        if related:
            target = proxy.relation.target
            _load(mapper.get_mapper(target), Collection(related, entity_cls=target), subpaths)


def eager_load(
    mapper: Mapper,
    collection: Collection[Any],
    paths: str | Iterable[str],
    context: LoadContext | None = None,
) -> Collection[Any]:
    """Attach the relations named by *paths* to every entity of *collection*.

    All paths are validated before the first query runs, so an unknown name
    leaves the collection untouched. Nothing happens for an empty collection,
    no paths, or a *context* that is auto-loading.

    Raises:
        UnknownRelation: If any path segment is not a defined relation.
    """
    paths = (paths,) if isinstance(paths, str) else tuple(paths)
    if not paths or not collection or (context is not None and context.auto_loading):
        return collection

    validate_paths(mapper, paths)
    _load(mapper, collection, paths)

    return collection
