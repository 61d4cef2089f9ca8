"""
In-memory vector storage implementation.

Provides a simple in-memory store for vector embeddings and similarity search,
suitable for testing and development. For production, use the Postgres,
Qdrant or Azure AI Search implementations.

The store is an ordinary object: whoever constructs it owns it, and its data
lives exactly as long as the instance.
"""

import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

from memory_vectordb.config import DEFAULT_INDEX
from memory_vectordb.errors import DimensionMismatchError, IndexNotFoundError
from memory_vectordb.models import MemoryFilter, MemoryRecord
from memory_vectordb.storage.protocols import VectorLike
from memory_vectordb.storage.vector.utils import (
    check_dimension,
    is_default_index,
    normalize_index_name,
    normalize_limit,
    to_embedding,
    validate_vector_size,
)

logger = logging.getLogger(__name__)


class _MemoryIndex:
    def __init__(self, vector_size: int):
        self.vector_size = vector_size
        self.records: Dict[str, MemoryRecord] = {}


class InMemoryVectorDb:
    """
    In-memory implementation of the VectorDb protocol.

    Stores records in dictionaries, one per index, with cosine similarity
    search. Data is lost on restart.
    """

    def __init__(self, default_index: str = DEFAULT_INDEX):
        self._default_index = default_index
        self._indexes: Dict[str, _MemoryIndex] = {}

        logger.info("InMemoryVectorDb initialized")

    def _get_index(self, index: str) -> Tuple[str, _MemoryIndex]:
        name = normalize_index_name(index, self._default_index)
        memory_index = self._indexes.get(name)
        if memory_index is None:
            raise IndexNotFoundError(name)
        return name, memory_index

    @staticmethod
    def _copy_out(record: MemoryRecord, with_embeddings: bool) -> MemoryRecord:
        if with_embeddings:
            return record.model_copy(deep=True)
        return record.without_vector()

    async def create_index(self, index: str, vector_size: int) -> None:
        validate_vector_size(vector_size)
        name = normalize_index_name(index, self._default_index)

        existing = self._indexes.get(name)
        if existing is not None:
            if existing.vector_size != vector_size:
                raise DimensionMismatchError(
                    expected=existing.vector_size,
                    actual=vector_size,
                    message=f"Index '{name}' already exists with vector size {existing.vector_size}",
                )
            logger.debug(f"Index {name} already exists")
            return

        self._indexes[name] = _MemoryIndex(vector_size)
        logger.info(f"Created index {name} (vector_size={vector_size})")

    async def list_indexes(self) -> AsyncIterator[str]:
        for name in list(self._indexes):
            yield name

    async def delete_index(self, index: str) -> None:
        name = normalize_index_name(index, self._default_index)
        if is_default_index(name, self._default_index):
            logger.warning("The default index cannot be deleted")
            return

        if self._indexes.pop(name, None) is not None:
            logger.info(f"Deleted index {name}")

    async def upsert(self, index: str, record: MemoryRecord) -> str:
        name, memory_index = self._get_index(index)
        check_dimension(memory_index.vector_size, record.vector.data if record.vector else None)

        stored = record.model_copy(deep=True)
        stored.timestamp = datetime.now(timezone.utc)
        memory_index.records[record.id] = stored

        logger.debug(f"Upserted record {record.id} into {name}")
        return record.id

    async def delete(self, index: str, record_id: str) -> None:
        name, memory_index = self._get_index(index)
        if memory_index.records.pop(record_id, None) is None:
            logger.debug(f"No record with ID {record_id} found in {name}, nothing to delete")

    async def delete_batch(self, index: str, record_ids: Iterable[str]) -> None:
        name, memory_index = self._get_index(index)
        count = 0
        for record_id in record_ids:
            if memory_index.records.pop(record_id, None) is not None:
                count += 1
        logger.debug(f"Deleted {count} records from {name}")

    async def read(
        self, index: str, record_id: str, with_embeddings: bool = False
    ) -> Optional[MemoryRecord]:
        _, memory_index = self._get_index(index)
        record = memory_index.records.get(record_id)
        if record is None:
            return None
        return self._copy_out(record, with_embeddings)

    async def read_batch(
        self, index: str, record_ids: Iterable[str], with_embeddings: bool = False
    ) -> AsyncIterator[MemoryRecord]:
        _, memory_index = self._get_index(index)
        for record_id in list(record_ids):
            record = memory_index.records.get(record_id)
            if record is not None:
                yield self._copy_out(record, with_embeddings)

    async def list_records(
        self,
        index: str,
        filter: Optional[MemoryFilter] = None,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        _, memory_index = self._get_index(index)
        max_results = normalize_limit(limit)

        matches = [
            record
            for record in memory_index.records.values()
            if filter is None or filter.matches(record.tags)
        ]
        min_time = datetime.min.replace(tzinfo=timezone.utc)
        matches.sort(key=lambda r: r.timestamp or min_time, reverse=True)

        for record in matches[:max_results]:
            yield self._copy_out(record, with_embeddings)

    async def search_nearest(
        self,
        index: str,
        embedding: VectorLike,
        filter: Optional[MemoryFilter] = None,
        min_relevance: float = 0.0,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[Tuple[MemoryRecord, float]]:
        name, memory_index = self._get_index(index)
        query = to_embedding(embedding)
        check_dimension(memory_index.vector_size, query.data)
        max_results = normalize_limit(limit)

        results: List[Tuple[MemoryRecord, float]] = []
        for record in memory_index.records.values():
            if record.vector is None:
                continue
            if filter is not None and not filter.matches(record.tags):
                continue

            score = query.cosine_similarity(record.vector)
            if score >= min_relevance:
                results.append((record, score))

        # Sort by score (highest first) and limit
        results.sort(key=lambda x: x[1], reverse=True)
        results = results[:max_results]

        logger.debug(f"{len(results)} results found in {name} (min_relevance={min_relevance})")

        for record, score in results:
            yield self._copy_out(record, with_embeddings), score

    async def close(self) -> None:
        """Nothing to release; kept for protocol compatibility."""

    def clear(self) -> None:
        """Drop ALL indexes, including the default one."""
        count = len(self._indexes)
        self._indexes.clear()
        logger.info(f"Cleared all indexes ({count} total)")
