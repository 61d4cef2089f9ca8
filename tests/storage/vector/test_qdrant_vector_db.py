"""
Tests for the Qdrant vector database.

Runs against qdrant-client's embedded local mode (location=":memory:"), so no
Qdrant server is needed.
"""

import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from memory_vectordb.config import QdrantSettings
from memory_vectordb.errors import ConfigurationError, DimensionMismatchError, IndexNotFoundError
from memory_vectordb.models import MemoryFilter, MemoryRecord
from memory_vectordb.storage import VectorDb
from memory_vectordb.storage.vector.qdrant import (
    QdrantVectorDb,
    build_filter,
    point_id,
    to_point,
)

@pytest_asyncio.fixture
async def vector_db():
    db = QdrantVectorDb(settings=QdrantSettings(location=":memory:"))
    yield db
    await db.close()


@pytest_asyncio.fixture
async def docs(vector_db):
    await vector_db.create_index("docs", 3)
    await vector_db.upsert(
        "docs", MemoryRecord(id="a-0", tags={"chatId": ["c1"]}, vector=[1.0, 0.0, 0.0])
    )
    await vector_db.upsert(
        "docs", MemoryRecord(id="a-1", tags={"chatId": ["c2"]}, vector=[0.0, 1.0, 0.0])
    )
    return vector_db


async def collect(stream):
    return [item async for item in stream]


def test_point_id_is_deterministic_uuid():
    assert point_id("a-0") == point_id("a-0")
    assert point_id("a-0") != point_id("a-1")
    assert len(point_id("a-0")) == 36


def test_point_payload_keeps_tag_map():
    tags = {"chatId": ["c1", "c2"], "memory": ["notes"]}
    record = MemoryRecord(id="r1", tags=tags, vector=[1.0, 0.0])

    point = to_point(record, datetime.now(timezone.utc))

    assert point.payload["tags"] == ["chatId=c1", "chatId=c2", "memory=notes"]
    assert point.payload["tag_map"] == tags


def test_build_filter():
    assert build_filter(None) is None
    assert build_filter(MemoryFilter()) is None

    qdrant_filter = build_filter(MemoryFilter().by_tag("chatId", "c1").by_tag("memory", "notes"))

    assert [condition.match.value for condition in qdrant_filter.must] == ["chatId=c1", "memory=notes"]


def test_requires_host_or_location():
    with pytest.raises(ConfigurationError):
        QdrantVectorDb()


@pytest.mark.asyncio
async def test_is_vector_db(vector_db):
    assert isinstance(vector_db, VectorDb)


@pytest.mark.asyncio
async def test_search_with_filter(docs):
    results = await collect(
        docs.search_nearest(
            "docs", [1.0, 0.0, 0.0], filter=MemoryFilter().by_tag("chatId", "c1"), min_relevance=0, limit=10
        )
    )

    assert [(record.id, score) for record, score in results] == [("a-0", pytest.approx(1.0))]


@pytest.mark.asyncio
async def test_search_unbounded_is_ordered(docs):
    results = await collect(docs.search_nearest("docs", [0.8, 0.2, 0.0], min_relevance=0.0))

    assert [record.id for record, _ in results] == ["a-0", "a-1"]
    assert results[0][1] > results[1][1]


@pytest.mark.asyncio
async def test_read_round_trip(vector_db):
    await vector_db.create_index("docs", 2)
    await vector_db.upsert(
        "docs", MemoryRecord(id="r1", payload={"text": "hello"}, tags={"k": ["v1", "v2"]}, vector=[1.0, 0.0])
    )

    record = await vector_db.read("docs", "r1", with_embeddings=True)
    without = await vector_db.read("docs", "r1")

    assert record.id == "r1"
    assert record.payload == {"text": "hello"}
    assert record.tags == {"k": ["v1", "v2"]}
    assert record.vector.to_list() == pytest.approx([1.0, 0.0])
    assert record.timestamp is not None
    assert without.vector is None
    assert await vector_db.read("docs", "missing") is None


@pytest.mark.asyncio
async def test_tag_keys_containing_equals_sign(vector_db):
    await vector_db.create_index("docs", 2)
    await vector_db.upsert("docs", MemoryRecord(id="r1", tags={"a=b": ["c"]}, vector=[1.0, 0.0]))
    await vector_db.upsert("docs", MemoryRecord(id="r2", tags={"a": ["b=c"]}, vector=[0.0, 1.0]))

    record = await vector_db.read("docs", "r1")
    matches = await collect(vector_db.list_records("docs", filter=MemoryFilter().by_tag("a=b", "c")))
    others = await collect(vector_db.list_records("docs", filter=MemoryFilter().by_tag("a", "b=c")))

    assert record.tags == {"a=b": ["c"]}
    assert [r.id for r in matches] == ["r1"]
    assert [r.id for r in others] == ["r2"]


@pytest.mark.asyncio
async def test_delete_missing_id_is_noop(docs):
    await docs.delete("docs", "missing-id")
    await docs.delete("docs", "a-1")

    assert [record.id for record in await collect(docs.list_records("docs"))] == ["a-0"]


@pytest.mark.asyncio
async def test_list_orders_by_timestamp_descending(vector_db):
    await vector_db.create_index("docs", 2)
    for i in range(3):
        await vector_db.upsert("docs", MemoryRecord(id=f"r{i}", vector=[1.0, float(i)]))
        await asyncio.sleep(0.01)

    records = await collect(vector_db.list_records("docs", limit=-1))
    limited = await collect(vector_db.list_records("docs", limit=2))

    assert [record.id for record in records] == ["r2", "r1", "r0"]
    assert [record.id for record in limited] == ["r2", "r1"]


@pytest.mark.asyncio
async def test_batches(docs):
    read = await collect(docs.read_batch("docs", ["a-0", "a-1", "missing"]))
    assert sorted(record.id for record in read) == ["a-0", "a-1"]

    await docs.delete_batch("docs", ["a-0", "a-1"])
    assert await collect(docs.list_records("docs")) == []


@pytest.mark.asyncio
async def test_dimension_checks(docs):
    with pytest.raises(DimensionMismatchError):
        await docs.upsert("docs", MemoryRecord(id="bad", vector=[1.0]))

    with pytest.raises(DimensionMismatchError):
        await docs.upsert("docs", MemoryRecord(id="no-vector"))

    with pytest.raises(DimensionMismatchError):
        await collect(docs.search_nearest("docs", [1.0, 0.0]))

    with pytest.raises(DimensionMismatchError):
        await docs.create_index("docs", 5)


@pytest.mark.asyncio
async def test_missing_index(vector_db):
    with pytest.raises(IndexNotFoundError):
        await vector_db.upsert("nope", MemoryRecord(id="r1", vector=[1.0]))

    with pytest.raises(IndexNotFoundError):
        await collect(vector_db.list_records("nope"))


@pytest.mark.asyncio
async def test_index_lifecycle(vector_db, caplog):
    await vector_db.create_index("docs", 2)
    await vector_db.create_index("docs", 2)
    await vector_db.create_index("default", 2)

    assert sorted(await collect(vector_db.list_indexes())) == ["default", "docs"]

    await vector_db.delete_index("docs")
    await vector_db.delete_index("docs")
    await vector_db.delete_index("default")

    assert await collect(vector_db.list_indexes()) == ["default"]
    assert "default index cannot be deleted" in caplog.text
