from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_entities import Fragment, Locator, NoSuchMethod, Query, QueryModifier, SQLAlchemyBackend
from sqla_entities.backend import to_text_clause

from ..models import Comment, Event, Post


@pytest.fixture
def backend() -> SQLAlchemyBackend:
    return SQLAlchemyBackend(sa.create_engine("sqlite://"))


@pytest.fixture
def locator(backend: SQLAlchemyBackend) -> Locator:
    return Locator(backend)


def _sql(stmt: sa.ClauseElement) -> str:
    return " ".join(str(stmt).split())


class TestToTextClause:
    def test_scalar_params(self) -> None:
        clause = to_text_clause(Fragment("a = ? AND b > ?", (1, 2)))

        assert str(clause) == "a = :p0 AND b > :p1"
        assert clause.compile().params == {"p0": 1, "p1": 2}

    def test_array_params_expand(self) -> None:
        clause = to_text_clause(Fragment("id IN (?) AND status = ?", ([3, 4], "x")))

        assert str(clause) == "id IN (:p0_0, :p0_1) AND status = :p1"
        assert clause.compile().params == {"p0_0": 3, "p0_1": 4, "p1": "x"}

    def test_count_mismatch(self) -> None:
        with pytest.raises(ValueError, match="placeholders"):
            to_text_clause(Fragment("a = ?", ()))

    def test_quoted_question_mark_is_a_placeholder(self) -> None:
        clause = to_text_clause(Fragment("title = '?' AND id = ?", ("x", 1)))

        assert str(clause) == "title = ':p0' AND id = :p1"

    def test_literal_question_mark_goes_in_params(self) -> None:
        clause = to_text_clause(Fragment("title = ?", ("what?",)))

        assert clause.compile().params == {"p0": "what?"}


class TestQueryModifiers:
    def test_queries_are_immutable(self, locator: Locator) -> None:
        base = locator.mapper(Post).select()
        filtered = base.where({"status": "published"})

        assert isinstance(filtered, Query)
        assert not base.where_fragment()
        assert filtered.where_fragment() == Fragment("posts.status = ?", ("published",))

    def test_where_calls_are_anded(self, locator: Locator) -> None:
        query = locator.mapper(Post).where({"status": "published"}).where({"author_id": 1})

        assert query.where_fragment().sql == "(posts.status = ?) AND (posts.author_id = ?)"

    def test_or_where(self, locator: Locator) -> None:
        query = locator.mapper(Post).where({"status": "published"}).or_where({"author_id": 1})

        assert query.where_fragment() == Fragment(
            "(posts.status = ?) OR (posts.author_id = ?)", ("published", 1)
        )

    def test_where_sql(self, locator: Locator) -> None:
        query = locator.mapper(Post).where({"status": "draft"}).where_sql("length(title) > ?", 3, connective="or")

        assert query.where_fragment() == Fragment("(posts.status = ?) OR (length(title) > ?)", ("draft", 3))

    def test_where_sql_param_mismatch(self, locator: Locator) -> None:
        with pytest.raises(ValueError):
            locator.mapper(Post).select().where_sql("id = ? OR id = ?", 1)

    def test_where_sql_counts_quoted_question_marks(self, locator: Locator) -> None:
        with pytest.raises(ValueError, match="Expected 2 params"):
            locator.mapper(Post).select().where_sql("title = '?' AND id = ?", 1)

    def test_column_alias(self, locator: Locator) -> None:
        query = locator.mapper(Event).where({"title :like": "Launch%"})

        assert query.where_fragment().sql == "events.event_title LIKE ?"

    def test_expressions_pass_through(self, locator: Locator) -> None:
        query = locator.mapper(Post).where({"lower(title)": "hello"})

        assert query.where_fragment().sql == "lower(title) = ?"

    def test_order(self, locator: Locator) -> None:
        query = locator.mapper(Post).select().order({"published_at": "desc"}).order({"id": "ASC"})

        assert query.order_clauses() == ["posts.published_at DESC", "posts.id ASC"]

    def test_invalid_order(self, locator: Locator) -> None:
        with pytest.raises(ValueError, match="sideways"):
            locator.mapper(Post).select().order({"id": "sideways"})

    @pytest.mark.parametrize(("limit", "expected"), [(5, 5), (0, None), (-1, None), (None, None)])
    def test_limit(self, locator: Locator, limit: int | None, expected: int | None) -> None:
        assert locator.mapper(Post).select().limit(limit).limit_value == expected

    def test_limit_with_offset(self, locator: Locator) -> None:
        query = locator.mapper(Post).select().limit(10, 20)

        assert (query.limit_value, query.offset_value) == (10, 20)
        assert query.offset(None).offset_value is None

    def test_with_merges_paths(self, locator: Locator) -> None:
        query = locator.mapper(Post).select().with_("comments").with_(["author", "comments"])

        assert query.with_paths == ("comments", "author")

    def test_scope_by_name(self, locator: Locator) -> None:
        query = locator.mapper(Post).select().scope("by_author", 7)

        assert query.where_fragment() == Fragment("posts.author_id = ?", (7,))

    def test_scope_as_method(self, locator: Locator) -> None:
        query = locator.mapper(Comment).select().approved()

        assert query.where_fragment() == Fragment("comments.approved = ?", (True,))

    def test_unknown_scope(self, locator: Locator) -> None:
        with pytest.raises(NoSuchMethod, match="unpublished"):
            locator.mapper(Post).select().scope("unpublished")
        with pytest.raises(AttributeError):
            locator.mapper(Post).select().unpublished()

    def test_custom_finder(self, locator: Locator) -> None:
        query = locator.mapper(Post).published()

        assert query.where_fragment().params == ("published",)
        assert query.order_clauses() == ["posts.id ASC"]


class TestQueryModifier:
    def test_unknown_name(self) -> None:
        with pytest.raises(ValueError, match="execute"):
            QueryModifier("execute")

    def test_apply(self, locator: Locator) -> None:
        query = QueryModifier("limit", (3,)).apply(locator.mapper(Post).select())

        assert query.limit_value == 3

    def test_apply_kwargs(self, locator: Locator) -> None:
        modifier = QueryModifier("where_sql", ("id > ?", 1), {"connective": "OR"})  # type: ignore[arg-type]

        assert modifier.apply(locator.mapper(Post).select()).where_fragment().sql == "id > ?"


class TestBuildSelect:
    def test_full_select(self, backend: SQLAlchemyBackend, locator: Locator) -> None:
        query = (
            locator.mapper(Post)
            .where({"status": "published", "id :in": [1, 2]})
            .order({"id": "DESC"})
            .limit(5, 10)
        )

        sql = _sql(backend.build_select(query))

        assert sql.startswith("SELECT * FROM posts WHERE posts.status = :p0 AND posts.id IN (:p1_0, :p1_1)")
        assert "ORDER BY posts.id DESC" in sql
        assert "LIMIT" in sql
        assert "OFFSET" in sql

    def test_plain_select(self, backend: SQLAlchemyBackend, locator: Locator) -> None:
        assert _sql(backend.build_select(locator.mapper(Post).select())) == "SELECT * FROM posts"

    def test_count_ignores_order_and_limit(self, backend: SQLAlchemyBackend, locator: Locator) -> None:
        query = locator.mapper(Post).where({"status": "draft"}).order({"id": "ASC"}).limit(1)

        sql = _sql(backend.build_count(query))

        assert sql == "SELECT count(*) AS count_1 FROM posts WHERE posts.status = :p0"

    def test_quote_identifier(self, backend: SQLAlchemyBackend) -> None:
        assert backend.quote_identifier("posts") == "posts"
        assert backend.quote_identifier("order") == '"order"'
        assert backend.dialect_name == "sqlite"
