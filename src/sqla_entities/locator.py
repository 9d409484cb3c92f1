from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, TypeVar, final

from .config import Config
from .entity import Entity


if TYPE_CHECKING:
    from .backend import Backend
    from .mapper import Mapper

E = TypeVar("E", bound=Entity)


@final
class Locator:
    """Registry of mappers sharing one backend and one :class:`Config`.

    Mappers are created on first request and reused afterwards. An entity
    class may name a ``Mapper`` subclass in ``__mapper__``; otherwise the
    plain :class:`~sqla_entities.mapper.Mapper` is used.

    Example:
        >>> engine = sa.create_engine("sqlite://")
        >>> locator = Locator(SQLAlchemyBackend(engine), Config(max_relation_depth=2))
        >>> posts = locator.mapper(Post).where({"status": "published"}).execute()
    """

    __slots__ = ("_backend", "_config", "_lock", "_mappers")

    def __init__(self, backend: Backend, config: Config | None = None) -> None:
        self._backend = backend
        self._config = config or Config()
        self._mappers: dict[type[Entity], Mapper[Any]] = {}
        self._lock = threading.Lock()

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def config(self) -> Config:
        return self._config

    def mapper(self, entity: type[E]) -> Mapper[E]:
        """Get (or create) the mapper for *entity*.

        Raises:
            TypeError: If *entity* is not an ``Entity`` subclass, or its
                ``__mapper__`` is not a ``Mapper`` subclass.
        """
        mapper = self._mappers.get(entity)
        if mapper is not None:
            return mapper

        from .mapper import Mapper

        mapper_cls = getattr(entity, "__mapper__", None) or Mapper
        if not (isinstance(mapper_cls, type) and issubclass(mapper_cls, Mapper)):
            raise TypeError(f"{entity!r}.__mapper__ must be a Mapper subclass, got {mapper_cls!r}")

        with self._lock:
            return self._mappers.setdefault(entity, mapper_cls(self, entity))

    def __getitem__(self, entity: type[E]) -> Mapper[E]:
        return self.mapper(entity)

    def __contains__(self, entity: object) -> bool:
        return entity in self._mappers

    def reset(self) -> None:
        """Forget every created mapper (primarily for tests)."""
        with self._lock:
            self._mappers.clear()
