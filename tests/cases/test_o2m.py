from __future__ import annotations

from sqla_entities import Collection, Entity, Locator

from ..conftest import QueryLog
from ..models import Author, Event, Post


class TestHasManyEager:
    def test_one_query_per_level(
        self, locator: Locator, seed_data: dict[str, list[Entity]], queries: QueryLog
    ) -> None:
        alice = seed_data["authors"][0]
        queries.reset()

        posts = locator.mapper(Post).where({"author_id": alice.id}).with_("comments").execute()

        assert len(posts) == 3
        assert len(queries.selects) == 2
        assert sum(len(post.relation("comments")) for post in posts) == 9

    def test_related_rows_are_grouped_by_owner(
        self, locator: Locator, seed_data: dict[str, list[Entity]]
    ) -> None:
        posts = locator.mapper(Post).where({"author_id": seed_data["authors"][0].id}).with_("comments").execute()

        for post in posts:
            comments = post.relation("comments")
            assert isinstance(comments, Collection)
            assert {comment.post_id for comment in comments} == {post.id}

    def test_modifiers_of_definition_apply(
        self, locator: Locator, seed_data: dict[str, list[Entity]]
    ) -> None:
        post = locator.mapper(Post).where({"id": seed_data["posts"][0].id}).with_("comments").first()

        ids = post.relation("comments").to_list("id")
        assert ids == sorted(ids)

    def test_owner_without_rows_gets_empty_collection(
        self, locator: Locator, seed_data: dict[str, list[Entity]]
    ) -> None:
        authors = locator.mapper(Author).select().order({"id": "ASC"}).with_("posts").execute()
        carol = next(author for author in authors if author.name == "carol")

        assert isinstance(carol.relation("posts"), Collection)
        assert len(carol.relation("posts")) == 0
        assert len(authors[0].relation("posts")) == 3

    def test_empty_result_runs_no_relation_query(
        self, locator: Locator, seed_data: dict[str, list[Entity]], queries: QueryLog
    ) -> None:
        queries.reset()

        posts = locator.mapper(Post).where({"status": "archived"}).with_("comments").execute()

        assert len(posts) == 0
        assert len(queries.selects) == 1


class TestHasManyLazy:
    def test_proxy_loads_on_iteration(
        self, locator: Locator, seed_data: dict[str, list[Entity]], queries: QueryLog
    ) -> None:
        alice = locator.mapper(Author).get(seed_data["authors"][0].id)
        queries.reset()

        titles = [post.title for post in alice.posts]

        assert sorted(titles) == ["Alice Post 1", "Alice Post 2", "Alice Post 3"]
        assert len(queries.selects) == 1

    def test_new_entity_has_no_rows(self, locator: Locator, queries: QueryLog) -> None:
        author = locator.mapper(Author).build({"name": "dave"})
        queries.reset()

        assert len(author.posts) == 0
        assert isinstance(author.posts.result, Collection)
        assert len(queries) == 0


class TestHasOne:
    def test_eager(self, locator: Locator, seed_data: dict[str, list[Entity]], queries: QueryLog) -> None:
        queries.reset()

        events = locator.mapper(Event).select().order({"id": "ASC"}).with_("search").execute()
        launch, retro = events

        assert len(queries.selects) == 2
        assert launch.relation("search").body == "launch party"
        assert retro.relation("search") is None
        assert retro.has_relation("search")

    def test_lazy(self, locator: Locator, seed_data: dict[str, list[Entity]]) -> None:
        alice, bob, _ = seed_data["authors"]
        authors = locator.mapper(Author)

        assert authors.get(alice.id).profile.entity().bio == "Alice bio"
        assert authors.get(bob.id).profile.entity() is None
        assert not authors.get(bob.id).profile
