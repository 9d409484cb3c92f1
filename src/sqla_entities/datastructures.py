from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import Any, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only, hashable mapping.

    Entity field declarations, the built-in operator table and the relation
    definition cache are stored in ``frozendict`` instances so they can be
    shared between mappers without copying and used as ``lru_cache``
    arguments.

    The hash is computed lazily because field metadata may hold unhashable
    defaults; hashing such a mapping raises ``TypeError`` like a tuple would.

    Example:
        >>> fields = frozendict(id=Field("integer", primary=True))
        >>> "id" in fields
        True
        >>> fields.copy(title=Field("string"))
        <frozendict {'id': ..., 'title': ...}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def copy(self, **add_or_replace: Any) -> Self:
        """Return a new mapping with *add_or_replace* merged over this one."""
        return type(self)(self, **add_or_replace)

    def merge(self, other: Mapping[K, V]) -> Self:
        """Return a new mapping with the items of *other* taking precedence.

        Unlike :meth:`copy`, keys are not limited to valid identifiers, so
        operator tokens such as ``":gte"`` can be merged.
        """
        merged = dict(self._dict)
        merged.update(other)
        return type(self)(merged)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash
