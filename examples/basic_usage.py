"""Basic sqla-entities usage examples.

Demonstrates setup, lazy relation proxies, eager and dotted loading,
where operators, scopes and saving relations.

NOTE: This file is illustrative; the functions expect seeded data.
"""

from __future__ import annotations

import datetime as dt
import logging

import sqlalchemy as sa

from sqla_entities import Collection, Config, Fragment, Locator, SQLAlchemyBackend, register_operator

from .models import Post, Tag, User, create_schema


# ── 1. Initialize once at startup ────────────────────────────────────

engine = sa.create_engine("sqlite:///:memory:")


def setup() -> Locator:
    create_schema(engine)
    logging.getLogger("sqla_entities").setLevel(logging.DEBUG)

    return Locator(SQLAlchemyBackend(engine), Config(max_relation_depth=1))


# ── 2. Lazy relations ────────────────────────────────────────────────


def print_user_posts(locator: Locator, user_id: int) -> None:
    user = locator.mapper(User).get(user_id)
    if user is None:
        return

    # one query, issued on first iteration
    for post in user.posts:
        print(post.title)


def get_latest_comment_bodies(locator: Locator, post_id: int) -> list[str]:
    post = locator.mapper(Post).get(post_id)

    return post.comments.order({"id": "DESC"}).limit(3).to_list("body")


# ── 3. Eager and dotted paths ───────────────────────────────────────


def get_users_with_posts(locator: Locator) -> Collection[User]:
    return locator.mapper(User).select().with_("posts").execute()


def get_users_deep(locator: Locator) -> Collection[User]:
    # users, posts, comments, pivot rows, tags: five queries in total
    return locator.mapper(User).select().with_(["posts.comments", "posts.tags"]).execute()


# ── 4. Where operators ──────────────────────────────────────────────


def get_recent_posts(locator: Locator, since: dt.datetime) -> Collection[Post]:
    return (
        locator.mapper(Post)
        .where({"created_at :gte": since, "status :in": ["published", "featured"]})
        .or_where({"title :like": "Pinned%"})
        .order({"created_at": "DESC"})
        .limit(10)
        .execute()
    )


class Between:
    def __call__(self, column: str, value: tuple[object, object], dialect: str) -> Fragment:
        low, high = value
        return Fragment(f"{column} BETWEEN ? AND ?", (low, high))


def register_custom_operators() -> None:
    register_operator(":between", Between)


def get_posts_in_range(locator: Locator, low: int, high: int) -> Collection[Post]:
    return locator.mapper(Post).where({"id :between": (low, high)}).execute()


# ── 5. Scopes and custom finders ────────────────────────────────────


def get_published(locator: Locator) -> Collection[Post]:
    return locator.mapper(Post).select().published().execute()


def get_active_users(locator: Locator) -> Collection[User]:
    return locator.mapper(User).active().execute()


# ── 6. Saving with relations ────────────────────────────────────────


def publish_with_tags(locator: Locator, user_id: int, title: str, tag_names: list[str]) -> Post:
    posts = locator.mapper(Post)
    tags = locator.mapper(Tag)

    post = posts.build({"title": title, "status": "published", "author_id": user_id})
    post.tags = [tags.first({"name": name}) or tags.build({"name": name}) for name in tag_names]
    posts.insert(post, relations=True)

    return post
