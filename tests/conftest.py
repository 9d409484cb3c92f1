from __future__ import annotations

import datetime as dt
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import pytest
import sqlalchemy as sa

from sqla_entities import Entity, Locator, SQLAlchemyBackend, cache_clear

from .models import (
    Author,
    Category,
    Comment,
    Event,
    EventSearch,
    Post,
    PostTag,
    Profile,
    Tag,
    build_metadata,
)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(autouse=True)
def _skip_postgres_only(request: pytest.FixtureRequest, db_backend: str) -> None:
    if request.node.get_closest_marker("postgres") and db_backend != "postgres":
        pytest.skip("PostgreSQL-only test")


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:16")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+psycopg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> Iterator[sa.Engine]:
    engine = sa.create_engine(db_config, echo=False)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def metadata() -> sa.MetaData:
    return build_metadata()


@pytest.fixture(scope="session")
def _create_tables(engine: sa.Engine, metadata: sa.MetaData) -> Iterator[None]:
    with engine.begin() as conn:
        metadata.create_all(conn)
    yield
    with engine.begin() as conn:
        metadata.drop_all(conn)


@pytest.fixture
def connection(engine: sa.Engine, _create_tables: None) -> Iterator[sa.Connection]:
    with engine.connect() as conn:
        trans = conn.begin()
        yield conn
        trans.rollback()


@pytest.fixture
def locator(connection: sa.Connection) -> Locator:
    return Locator(SQLAlchemyBackend(connection))


@dataclass
class QueryLog:
    """SQL statements executed on the test connection."""

    statements: list[str] = field(default_factory=list)

    @property
    def selects(self) -> list[str]:
        return [sql for sql in self.statements if sql.lstrip().upper().startswith("SELECT")]

    def reset(self) -> None:
        self.statements.clear()

    def __len__(self) -> int:
        return len(self.statements)


@pytest.fixture
def queries(connection: sa.Connection) -> Iterator[QueryLog]:
    log = QueryLog()

    def _record(conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        log.statements.append(statement)

    sa.event.listen(connection, "before_cursor_execute", _record)
    yield log
    sa.event.remove(connection, "before_cursor_execute", _record)


@pytest.fixture
def seed_data(locator: Locator) -> dict[str, list[Entity]]:
    authors = locator.mapper(Author)
    alice = authors.create({"name": "alice", "email": "alice@example.com"})
    bob = authors.create({"name": "bob", "email": "bob@example.com"})
    carol = authors.create({"name": "carol", "email": "carol@example.com"})

    profile = locator.mapper(Profile).create({
        "bio": "Alice bio",
        "author_id": alice.id,
        "settings": {"theme": "dark"},
    })

    posts = locator.mapper(Post)
    post1 = posts.create({
        "title": "Alice Post 1",
        "body": "body1",
        "status": "published",
        "author_id": alice.id,
        "published_at": dt.datetime(2024, 1, 10, 12, 30),
        "keywords": ["python", "orm"],
        "meta": {"views": 10},
    })
    post2 = posts.create({"title": "Alice Post 2", "body": "body2", "status": "published", "author_id": alice.id})
    post3 = posts.create({"title": "Alice Post 3", "body": "body3", "author_id": alice.id})
    post4 = posts.create({"title": "Bob Post 1", "body": "body4", "status": "published", "author_id": bob.id})

    comments_mapper = locator.mapper(Comment)
    comments = []
    for post in (post1, post2, post3):
        for n in range(3):
            comments.append(comments_mapper.create({
                "post_id": post.id,
                "author_id": bob.id if n % 2 else alice.id,
                "body": f"{post.title} comment {n}",
                "approved": n == 0,
                "created_at": dt.datetime(2024, 2, 1 + n, 9, 0),
            }))

    tags_mapper = locator.mapper(Tag)
    python = tags_mapper.create({"name": "python"})
    sqlalchemy = tags_mapper.create({"name": "sqlalchemy"})
    testing = tags_mapper.create({"name": "testing"})

    links = locator.mapper(PostTag)
    for post, tag in ((post1, python), (post1, sqlalchemy), (post2, python), (post4, testing)):
        links.create({"post_id": post.id, "tag_id": tag.id})

    categories = locator.mapper(Category)
    root = categories.create({"name": "root"})
    child1 = categories.create({"name": "child_1", "parent_id": root.id})
    child2 = categories.create({"name": "child_2", "parent_id": root.id})
    grandchild = categories.create({"name": "grandchild", "parent_id": child1.id})

    launch = locator.mapper(Event).create({
        "title": "Launch",
        "starts_at": dt.datetime(2024, 3, 1, 18, 0),
        "day": dt.date(2024, 3, 1),
    })
    retro = locator.mapper(Event).create({
        "title": "Retro",
        "starts_at": dt.datetime(2024, 4, 1, 10, 0),
        "day": dt.date(2024, 4, 1),
    })
    search = locator.mapper(EventSearch).create({"event_id": launch.id, "body": "launch party"})

    return {
        "authors": [alice, bob, carol],
        "profiles": [profile],
        "posts": [post1, post2, post3, post4],
        "comments": comments,
        "tags": [python, sqlalchemy, testing],
        "categories": [root, child1, child2, grandchild],
        "events": [launch, retro],
        "event_search": [search],
    }


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    cache_clear()
