"""Persistence backends.

The mapper layer talks to storage only through :class:`Backend`: reads take a
:class:`~sqla_entities.query.Query`, writes take plain column/value mappings
and a :class:`~sqla_entities.operators.Fragment` for the WHERE clause.
:class:`SQLAlchemyBackend` runs everything through SQLAlchemy Core, so any
dialect SQLAlchemy supports works without further glue.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final

import sqlalchemy as sa
from sqlalchemy.engine import Dialect

from .operators import Fragment, is_array


if TYPE_CHECKING:
    from .query import Query

logger = logging.getLogger(__name__)

_PLACEHOLDER: Final[re.Pattern[str]] = re.compile(r"\?")


def to_text_clause(fragment: Fragment) -> sa.TextClause:
    """Turn a ``?``-placeholder fragment into a ``sa.text`` clause with named binds.

    Array params are expanded into one bind per item.
    Every ``?`` is rewritten, quoted or not.

    Raises:
        ValueError: If placeholder and param counts differ.
    """
    params = fragment.params
    placeholders = fragment.sql.count("?")
    if placeholders != len(params):
        raise ValueError(
            f"Fragment {fragment.sql!r} has {placeholders} placeholders but {len(params)} params"
        )

    values: dict[str, Any] = {}
    positions = iter(range(len(params)))

    def _bind(_: re.Match[str]) -> str:
        index = next(positions)
        value = params[index]
        if is_array(value):
            names = [f"p{index}_{n}" for n in range(len(value))]
            values.update(zip(names, value))
            return ", ".join(f":{name}" for name in names)

        values[f"p{index}"] = value
        return f":p{index}"

    sql = _PLACEHOLDER.sub(_bind, fragment.sql)

    return sa.text(sql).bindparams(**values)


class Backend(ABC):
    """Storage contract used by mappers."""

    @property
    @abstractmethod
    def dialect(self) -> Dialect: ...

    @property
    def dialect_name(self) -> str:
        return self.dialect.name

    def quote_identifier(self, name: str) -> str:
        """Quote *name* if the dialect requires it (reserved words, mixed case)."""
        return self.dialect.identifier_preparer.quote(name)

    @abstractmethod
    def execute_read(self, query: Query) -> list[dict[str, Any]]:
        """Run *query* and return one ``{column: value}`` dict per row."""

    @abstractmethod
    def execute_count(self, query: Query) -> int:
        """Count rows matching *query*, ignoring its order, limit and offset."""

    @abstractmethod
    def execute_write(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Fragment | None = None,
        *,
        primary_key: str | None = None,
    ) -> Any:
        """Insert (``where`` is ``None``) or update rows.

        Returns:
            The new row's primary key for inserts, the affected row count for
            updates.
        """

    @abstractmethod
    def execute_delete(self, table: str, where: Fragment) -> int:
        """Delete rows matching *where*; an empty fragment deletes every row."""


class SQLAlchemyBackend(Backend):
    """Backend over a SQLAlchemy ``Engine`` or ``Connection``.

    With an ``Engine`` every call runs in its own ``engine.begin()`` block.
    With a ``Connection`` statements run on it directly and transaction
    control stays with the caller.

    Example:
        >>> engine = sa.create_engine("sqlite://")
        >>> locator = Locator(SQLAlchemyBackend(engine))
    """

    __slots__ = ("_bind",)

    def __init__(self, bind: sa.Engine | sa.Connection) -> None:
        self._bind = bind

    @property
    def bind(self) -> sa.Engine | sa.Connection:
        return self._bind

    @property
    def dialect(self) -> Dialect:
        return self._bind.dialect

    @contextmanager
    def connect(self) -> Iterator[sa.Connection]:
        if isinstance(self._bind, sa.Connection):
            yield self._bind
        else:
            with self._bind.begin() as conn:
                yield conn

    def build_select(self, query: Query) -> sa.Select[Any]:
        """Return the ``SELECT`` statement :meth:`execute_read` would run for *query*."""
        stmt = sa.select(sa.text("*")).select_from(sa.table(query.table))

        where = query.where_fragment()
        if where:
            stmt = stmt.where(to_text_clause(where))

        order = query.order_clauses()
        if order:
            stmt = stmt.order_by(*(sa.text(clause) for clause in order))

        if query.limit_value is not None:
            stmt = stmt.limit(query.limit_value)
        if query.offset_value:
            stmt = stmt.offset(query.offset_value)

        return stmt

    def build_count(self, query: Query) -> sa.Select[Any]:
        stmt = sa.select(sa.func.count()).select_from(sa.table(query.table))

        where = query.where_fragment()
        if where:
            stmt = stmt.where(to_text_clause(where))

        return stmt

    def execute_read(self, query: Query) -> list[dict[str, Any]]:
        stmt = self.build_select(query)
        logger.debug("read %s: %s", query.table, stmt)
        with self.connect() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings()]

    def execute_count(self, query: Query) -> int:
        stmt = self.build_count(query)
        logger.debug("count %s: %s", query.table, stmt)
        with self.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def execute_write(
        self,
        table: str,
        data: Mapping[str, Any],
        where: Fragment | None = None,
        *,
        primary_key: str | None = None,
    ) -> Any:
        columns = dict.fromkeys(data)
        if primary_key is not None:
            columns.setdefault(primary_key)
        target = sa.table(table, *(sa.column(name) for name in columns))

        if where is not None:
            update = sa.update(target).values(dict(data))
            if where:
                update = update.where(to_text_clause(where))
            logger.debug("update %s: %s", table, update)
            with self.connect() as conn:
                return conn.execute(update).rowcount

        insert = sa.insert(target).values(dict(data))
        use_returning = primary_key is not None and self.dialect.insert_returning
        if use_returning:
            insert = insert.returning(target.c[primary_key])

        logger.debug("insert %s: %s", table, insert)
        with self.connect() as conn:
            result = conn.execute(insert)
            if primary_key is None:
                return result.rowcount
            if use_returning:
                return result.scalar_one()

            return data.get(primary_key, result.lastrowid)

    def execute_delete(self, table: str, where: Fragment) -> int:
        delete = sa.delete(sa.table(table))
        if where:
            delete = delete.where(to_text_clause(where))

        logger.debug("delete %s: %s", table, delete)
        with self.connect() as conn:
            return conn.execute(delete).rowcount
