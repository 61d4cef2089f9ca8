"""Integration tests for the Postgres (pgvector) backend."""

import asyncio
from uuid import uuid4

import pytest
import pytest_asyncio

from memory_vectordb.config import PostgresSettings
from memory_vectordb.errors import DimensionMismatchError, IndexNotFoundError
from memory_vectordb.models import MemoryFilter, MemoryRecord
from memory_vectordb.storage.vector.postgres import PostgresVectorDb


async def collect(stream):
    return [item async for item in stream]


@pytest_asyncio.fixture
async def vector_db(skip_if_no_postgres, postgres_url):
    pytest.importorskip("asyncpg")
    db = PostgresVectorDb(settings=PostgresSettings(connection_string=postgres_url, table_prefix="test_"))
    yield db
    await db.close()


@pytest_asyncio.fixture
async def docs(vector_db):
    index = f"docs-{uuid4().hex[:8]}"
    await vector_db.create_index(index, 3)
    try:
        yield index
    finally:
        await vector_db.delete_index(index)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_postgres_search_with_filter(vector_db, docs):
    await vector_db.upsert(docs, MemoryRecord(id="a-0", tags={"chatId": ["c1"]}, vector=[1.0, 0.0, 0.0]))
    await vector_db.upsert(docs, MemoryRecord(id="a-1", tags={"chatId": ["c2"]}, vector=[0.0, 1.0, 0.0]))

    results = await collect(
        vector_db.search_nearest(
            docs, [1.0, 0.0, 0.0], filter=MemoryFilter().by_tag("chatId", "c1"), min_relevance=0, limit=10
        )
    )

    assert [(record.id, score) for record, score in results] == [("a-0", pytest.approx(1.0))]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_postgres_round_trip_and_list(vector_db, docs):
    for i in range(3):
        await vector_db.upsert(
            docs,
            MemoryRecord(id=f"r{i}", payload={"text": f"chunk {i}"}, tags={"k": ["a", "b"]}, vector=[1.0, float(i), 0.0]),
        )
        await asyncio.sleep(0.01)

    record = await vector_db.read(docs, "r1", with_embeddings=True)
    records = await collect(vector_db.list_records(docs, limit=-1))

    assert record.payload == {"text": "chunk 1"}
    assert record.tags == {"k": ["a", "b"]}
    assert record.vector.to_list() == pytest.approx([1.0, 1.0, 0.0])
    assert [r.id for r in records] == ["r2", "r1", "r0"]
    assert all(r.vector is None for r in records)
    assert docs in await collect(vector_db.list_indexes())


@pytest.mark.integration
@pytest.mark.asyncio
async def test_postgres_delete(vector_db, docs):
    await vector_db.upsert(docs, MemoryRecord(id="a-0", vector=[1.0, 0.0, 0.0]))
    await vector_db.upsert(docs, MemoryRecord(id="a-1", vector=[0.0, 1.0, 0.0]))

    await vector_db.delete(docs, "missing-id")
    await vector_db.delete(docs, "a-0")

    assert [r.id for r in await collect(vector_db.list_records(docs))] == ["a-1"]

    await vector_db.delete_batch(docs, ["a-1", "missing-id"])
    assert await collect(vector_db.list_records(docs)) == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_postgres_errors(vector_db, docs):
    with pytest.raises(DimensionMismatchError):
        await vector_db.upsert(docs, MemoryRecord(id="bad", vector=[1.0, 0.0]))

    with pytest.raises(DimensionMismatchError):
        await vector_db.create_index(docs, 4)

    with pytest.raises(IndexNotFoundError):
        await vector_db.read(f"missing-{uuid4().hex[:8]}", "a-0")
