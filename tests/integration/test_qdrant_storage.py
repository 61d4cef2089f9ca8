"""Integration tests for the Qdrant backend against a live server."""

from uuid import uuid4

import pytest

from memory_vectordb.models import MemoryFilter, MemoryRecord
from memory_vectordb.storage.vector.qdrant import QdrantVectorDb


@pytest.mark.integration
@pytest.mark.asyncio
async def test_qdrant_upsert_and_search(skip_if_no_qdrant):
    db = QdrantVectorDb(host="localhost", port=6333)
    index = f"test-{uuid4().hex[:8]}"
    await db.create_index(index, 3)

    try:
        await db.upsert(index, MemoryRecord(id="a-0", tags={"chatId": "c1"}, vector=[1.0, 0.0, 0.0]))
        await db.upsert(index, MemoryRecord(id="a-1", tags={"chatId": "c2"}, vector=[0.0, 1.0, 0.0]))

        results = [
            (record.id, score)
            async for record, score in db.search_nearest(
                index, [1.0, 0.0, 0.0], filter=MemoryFilter().by_tag("chatId", "c1"), limit=10
            )
        ]

        assert results == [("a-0", pytest.approx(1.0))]
    finally:
        await db.delete_index(index)
        await db.close()
