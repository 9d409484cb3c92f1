"""Example entities used by the sqla-entities examples."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa

from sqla_entities import Entity, Field, Mapper, add_conditions


class UserMapper(Mapper["User"]):
    def active(self) -> Any:
        return self.where({"name :ne": "deleted"}).order({"name": "ASC"})


class User(Entity):
    __tablename__ = "users"
    __mapper__ = UserMapper

    id = Field("integer", primary=True, autoincrement=True)
    name = Field("string", required=True, length=100)
    email = Field("string", unique=True)

    @classmethod
    def relations(cls, factory, entity):  # type: ignore[no-untyped-def]
        return {
            "posts": factory.has_many(Post, "author_id").order({"created_at": "DESC"}),
            "profile": factory.has_one(Profile, "user_id"),
        }


class Profile(Entity):
    __tablename__ = "profiles"

    id = Field("integer", primary=True, autoincrement=True)
    user_id = Field("integer", notnull=False)
    bio = Field("text")

    @classmethod
    def relations(cls, factory, entity):  # type: ignore[no-untyped-def]
        return {"user": factory.belongs_to(User, "user_id")}


class Post(Entity):
    __tablename__ = "posts"

    id = Field("integer", primary=True, autoincrement=True)
    title = Field("string", required=True, length=200)
    status = Field("string", default="draft", length=20)
    author_id = Field("integer", required=True, index=True)
    created_at = Field("datetime")

    @classmethod
    def relations(cls, factory, entity):  # type: ignore[no-untyped-def]
        return {
            "author": factory.belongs_to(User, "author_id"),
            "comments": factory.has_many(Comment, "post_id"),
            "tags": factory.has_many_through(Tag, PostTag, "tag_id", "post_id"),
        }

    @classmethod
    def scopes(cls):  # type: ignore[no-untyped-def]
        return {"published": add_conditions({"status": "published"})}


class Comment(Entity):
    __tablename__ = "comments"

    id = Field("integer", primary=True, autoincrement=True)
    post_id = Field("integer", required=True)
    body = Field("text")

    @classmethod
    def relations(cls, factory, entity):  # type: ignore[no-untyped-def]
        return {"post": factory.belongs_to(Post, "post_id")}


class Tag(Entity):
    __tablename__ = "tags"

    id = Field("integer", primary=True, autoincrement=True)
    name = Field("string", required=True, unique=True, length=50)


class PostTag(Entity):
    __tablename__ = "post_tags"

    id = Field("integer", primary=True, autoincrement=True)
    post_id = Field("integer", required=True)
    tag_id = Field("integer", required=True)


class Category(Entity):
    __tablename__ = "categories"

    id = Field("integer", primary=True, autoincrement=True)
    name = Field("string", required=True, length=100)
    parent_id = Field("integer")

    @classmethod
    def relations(cls, factory, entity):  # type: ignore[no-untyped-def]
        children = factory.has_many(Category, "parent_id").order({"name": "ASC"})
        # explicit access loads the whole subtree, automatic registration stays shallow
        if not factory.auto_loading:
            children = children.with_("children")
        return {
            "parent": factory.belongs_to(Category, "parent_id"),
            "children": children,
        }


def create_schema(engine: sa.Engine) -> None:
    metadata = sa.MetaData()
    for entity in (User, Profile, Post, Comment, Tag, PostTag, Category):
        entity.to_table(metadata)

    metadata.create_all(engine)
