"""Self-referential relation loading example.

Demonstrates loading parent/children on the same entity (Category).
"""

from __future__ import annotations

from sqla_entities import Collection, Locator

from .models import Category


def get_category_tree(locator: Locator) -> Collection[Category]:
    # one query per tree level: the children relation re-applies itself
    return locator.mapper(Category).where({"parent_id": None}).with_("children").execute()


def get_categories_with_parent(locator: Locator) -> Collection[Category]:
    return locator.mapper(Category).select().with_("parent").execute()


def print_tree(categories: Collection[Category], indent: int = 0) -> None:
    for category in categories:
        print(" " * indent + category.name)
        children = category.relation("children")
        if children:
            print_tree(children, indent + 2)
