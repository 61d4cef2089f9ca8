"""Tests for the core data models."""

import pytest
from pydantic import ValidationError

from memory_vectordb.errors import DimensionMismatchError
from memory_vectordb.models import (
    TAG_DOCUMENT_ID,
    Embedding,
    MemoryFilter,
    MemoryRecord,
    SearchResult,
    to_json,
)


def test_embedding_size_and_list():
    embedding = Embedding.of([1, 2, 3])

    assert embedding.size == 3
    assert len(embedding) == 3
    assert embedding.to_list() == [1.0, 2.0, 3.0]
    assert Embedding.of(embedding) is embedding


def test_embedding_is_immutable():
    embedding = Embedding.of([1.0, 0.0])

    with pytest.raises(ValidationError):
        embedding.data = (0.0, 1.0)


def test_cosine_similarity():
    a = Embedding.of([1.0, 0.0, 0.0])

    assert a.cosine_similarity(Embedding.of([2.0, 0.0, 0.0])) == pytest.approx(1.0)
    assert a.cosine_similarity(Embedding.of([0.0, 1.0, 0.0])) == pytest.approx(0.0)
    assert a.cosine_similarity(Embedding.of([-1.0, 0.0, 0.0])) == pytest.approx(-1.0)


def test_cosine_similarity_zero_vector():
    assert Embedding.of([0.0, 0.0]).cosine_similarity(Embedding.of([1.0, 1.0])) == 0.0


def test_cosine_similarity_dimension_mismatch():
    with pytest.raises(DimensionMismatchError) as exc_info:
        Embedding.of([1.0, 0.0]).cosine_similarity(Embedding.of([1.0, 0.0, 0.0]))

    assert exc_info.value.expected == 2
    assert exc_info.value.actual == 3


def test_record_normalizes_tags():
    record = MemoryRecord(id="r1", tags={"chatid": "c1", "user": ["a", "b", "a"], "empty": None})

    assert record.tags == {"chatid": ["c1"], "user": ["a", "b"], "empty": []}


def test_record_add_tag_is_set_like():
    record = MemoryRecord(id="r1")

    record.add_tag("user", "a").add_tag("user", "a").add_tag("user", "b")

    assert record.tags["user"] == ["a", "b"]
    assert record.first_tag("user") == "a"
    assert record.first_tag("missing") is None


def test_record_requires_id():
    with pytest.raises(ValidationError):
        MemoryRecord(id="")


def test_record_vector_coercion():
    record = MemoryRecord(id="r1", vector=[1, 0, 0])

    assert isinstance(record.vector, Embedding)
    assert record.vector.size == 3


def test_without_vector_is_a_copy():
    record = MemoryRecord(id="r1", vector=[1.0], tags={"k": "v"})

    copy = record.without_vector()
    copy.add_tag("k", "w")

    assert copy.vector is None
    assert record.vector is not None
    assert record.tags == {"k": ["v"]}


def test_json_helpers_are_compact():
    record = MemoryRecord(id="r1", payload={"text": "héllo"}, tags={"k": "v"})

    assert record.payload_json() == '{"text":"héllo"}'
    assert record.tags_json() == '{"k":["v"]}'
    assert to_json([1, 2]) == "[1,2]"


def test_filter_matches_set_membership():
    tags = {"chatid": ["c1", "c2"], "memory": ["notes"]}

    assert MemoryFilter().matches(tags)
    assert MemoryFilter().by_tag("chatid", "c2").matches(tags)
    assert MemoryFilter().by_tag("chatid", "c1").by_tag("memory", "notes").matches(tags)
    assert not MemoryFilter().by_tag("chatid", "c3").matches(tags)
    assert not MemoryFilter().by_tag("chatid", "c1").by_tag("memory", "other").matches(tags)
    assert not MemoryFilter().by_tag("missing", "x").matches(tags)


def test_filter_by_document():
    memory_filter = MemoryFilter().by_document("doc-1")

    assert memory_filter.pairs == [(TAG_DOCUMENT_ID, "doc-1")]
    assert not memory_filter.is_empty()
    assert MemoryFilter().is_empty()


def test_search_result_no_result():
    assert SearchResult(query="q").no_result
