from __future__ import annotations

import pytest

from sqla_entities import Field
from sqla_entities.datastructures import frozendict

from ..models import Post


class TestFrozendictMapping:
    def test_reads_like_dict(self) -> None:
        fd: frozendict[str, int] = frozendict({"=": 1}, gte=2)

        assert fd["="] == 1
        assert fd.get("gte") == 2
        assert len(fd) == 2
        assert set(fd) == {"=", "gte"}

    def test_rejects_mutation(self) -> None:
        fd: frozendict[str, int] = frozendict({"a": 1})

        with pytest.raises(TypeError):
            fd["a"] = 2  # type: ignore[index]
        with pytest.raises(TypeError):
            del fd["a"]  # type: ignore[attr-defined]

    def test_equality_with_dict(self) -> None:
        assert frozendict({"a": 1}) == {"a": 1}
        assert frozendict({"a": 1}) != frozendict({"a": 2})
        assert frozendict({"a": 1}) != [("a", 1)]

    def test_repr(self) -> None:
        assert repr(frozendict({"a": 1})) == "<frozendict {'a': 1}>"


class TestFrozendictHash:
    def test_equal_contents_hash_equal(self) -> None:
        assert hash(frozendict({"a": 1, "b": 2})) == hash(frozendict({"b": 2, "a": 1}))

    def test_usable_as_cache_key(self) -> None:
        cache = {frozendict({"limit": 10}): "hit"}

        assert cache[frozendict(limit=10)] == "hit"

    def test_unhashable_values_fail_only_when_hashed(self) -> None:
        fd = frozendict({"default": []})

        assert fd["default"] == []
        with pytest.raises(TypeError):
            hash(fd)


class TestFrozendictDerive:
    def test_copy_adds_keyword_items(self) -> None:
        fd: frozendict[str, int] = frozendict({"a": 1})
        derived = fd.copy(b=2)

        assert derived == {"a": 1, "b": 2}
        assert "b" not in fd

    def test_merge_accepts_non_identifier_keys(self) -> None:
        fd: frozendict[str, str] = frozendict({"=": "Equals"})
        merged = fd.merge({":between": "Between", "=": "Override"})

        assert merged == {"=": "Override", ":between": "Between"}
        assert fd["="] == "Equals"


class TestEntityFields:
    def test_entity_fields_are_frozen(self) -> None:
        assert isinstance(Post.__fields__, frozendict)
        assert all(isinstance(field, Field) for field in Post.__fields__.values())
        assert list(Post.__fields__)[:3] == ["id", "title", "body"]
