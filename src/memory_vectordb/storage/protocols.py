"""
Storage protocol definitions for vector memory.

The VectorDb protocol is the contract consumed by the ingestion step and by
the search API. It is implementation-agnostic and is backed by various
engines (PostgreSQL with pgvector, Qdrant, Azure AI Search, in-memory).

All operations are coroutines; list and search results are async
generators that can be abandoned early (``aclose()`` or task cancellation)
without leaking the underlying connection.
"""

from typing import AsyncIterator, Iterable, Optional, Protocol, Sequence, Tuple, Union

from typing_extensions import runtime_checkable

from memory_vectordb.models import Embedding, MemoryFilter, MemoryRecord

VectorLike = Union[Embedding, Sequence[float]]


@runtime_checkable
class VectorDb(Protocol):
    """
    Protocol for vector index storage.

    Every backend implements the exact same semantics so callers never need
    to know which engine they talk to.
    """

    async def create_index(self, index: str, vector_size: int) -> None:
        """
        Create an index if it does not exist yet.

        Args:
            index: Index name
            vector_size: Dimensionality of every embedding stored in the index

        Raises:
            ConfigurationError: If vector_size <= 0 or the name is invalid
        """
        ...

    def list_indexes(self) -> AsyncIterator[str]:
        """
        List existing indexes.

        Returns:
            Async iterator of index names (order not guaranteed)
        """
        ...

    async def delete_index(self, index: str) -> None:
        """
        Drop an index and all of its records.

        Deleting the configured default index logs a warning and does nothing.
        Deleting a missing index does nothing.
        """
        ...

    async def upsert(self, index: str, record: MemoryRecord) -> str:
        """
        Insert or replace a record, keyed by its id.

        The stored timestamp is always set to the current UTC time.

        Returns:
            The record id

        Raises:
            IndexNotFoundError: If the index does not exist
            DimensionMismatchError: If the vector size differs from the index size
        """
        ...

    async def delete(self, index: str, record_id: str) -> None:
        """Delete a record; absent records are ignored."""
        ...

    async def delete_batch(self, index: str, record_ids: Iterable[str]) -> None:
        """Delete several records at once; absent records are ignored."""
        ...

    async def read(
        self, index: str, record_id: str, with_embeddings: bool = False
    ) -> Optional[MemoryRecord]:
        """
        Point lookup by record id.

        Returns:
            The record if found, None otherwise
        """
        ...

    def read_batch(
        self, index: str, record_ids: Iterable[str], with_embeddings: bool = False
    ) -> AsyncIterator[MemoryRecord]:
        """Look up several records by id; absent ids are skipped."""
        ...

    def list_records(
        self,
        index: str,
        filter: Optional[MemoryFilter] = None,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        """
        List records matching a filter, most recent first.

        Args:
            index: Index name
            filter: Tag constraints (None or empty matches everything)
            limit: Maximum number of records, <= 0 means unbounded
            with_embeddings: Whether to include vectors in the results

        Raises:
            IndexNotFoundError: If the index does not exist
        """
        ...

    def search_nearest(
        self,
        index: str,
        embedding: VectorLike,
        filter: Optional[MemoryFilter] = None,
        min_relevance: float = 0.0,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[Tuple[MemoryRecord, float]]:
        """
        Nearest-neighbour search by cosine similarity.

        Args:
            index: Index name
            embedding: Query vector
            filter: Tag constraints, same semantics as list_records
            min_relevance: Minimum score (1 - cosine distance) to yield
            limit: Maximum number of results, <= 0 means unbounded
            with_embeddings: Whether to include vectors in the results

        Returns:
            Async iterator of (record, score), score non-increasing

        Raises:
            IndexNotFoundError: If the index does not exist
            DimensionMismatchError: If the query size differs from the index size
        """
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        ...
