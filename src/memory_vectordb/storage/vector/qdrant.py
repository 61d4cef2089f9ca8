import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, List, Optional, Tuple

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from memory_vectordb.config import DEFAULT_INDEX, QdrantSettings
from memory_vectordb.errors import (
    ConfigurationError,
    ConnectionFailureError,
    DimensionMismatchError,
    IndexNotFoundError,
)
from memory_vectordb.models import MemoryFilter, MemoryRecord
from memory_vectordb.storage.protocols import VectorLike
from memory_vectordb.storage.vector.utils import (
    check_dimension,
    is_default_index,
    normalize_index_name,
    normalize_limit,
    tag_term,
    tag_terms,
    to_embedding,
    validate_vector_size,
)

logger = logging.getLogger(__name__)

# Point payload layout
FIELD_ID = "id"
FIELD_PAYLOAD = "payload"
FIELD_TAGS = "tags"
FIELD_TAG_MAP = "tag_map"
FIELD_TIMESTAMP = "timestamp"

SCROLL_PAGE_SIZE = 256

# Qdrant only accepts UUIDs or integers as point ids
_POINT_ID_NAMESPACE = uuid.UUID("6f0c2d2e-8f4b-4f6e-9a51-3c1d7a4e2b90")


def point_id(record_id: str) -> str:
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, record_id))


def build_filter(filter: Optional[MemoryFilter]) -> Optional[Filter]:
    if filter is None or filter.is_empty():
        return None
    return Filter(
        must=[
            FieldCondition(key=FIELD_TAGS, match=MatchValue(value=tag_term(key, value)))
            for key, value in filter.pairs
        ]
    )


def to_point(record: MemoryRecord, timestamp: datetime) -> PointStruct:
    return PointStruct(
        id=point_id(record.id),
        vector=record.vector.to_list(),
        payload={
            FIELD_ID: record.id,
            FIELD_PAYLOAD: record.payload,
            FIELD_TAGS: tag_terms(record.tags),
            FIELD_TAG_MAP: record.tags,
            FIELD_TIMESTAMP: timestamp.timestamp(),
        },
    )


def from_point(point: Any, with_embeddings: bool) -> MemoryRecord:
    payload = point.payload or {}
    vector = point.vector if with_embeddings and isinstance(point.vector, list) else None
    timestamp = payload.get(FIELD_TIMESTAMP)

    return MemoryRecord(
        id=payload[FIELD_ID],
        payload=payload.get(FIELD_PAYLOAD) or {},
        tags=payload.get(FIELD_TAG_MAP) or {},
        vector=vector,
        timestamp=datetime.fromtimestamp(timestamp, tz=timezone.utc) if timestamp is not None else None,
    )


class QdrantVectorDb:
    """
    Qdrant implementation of the VectorDb protocol.

    One collection per index, cosine distance. Record ids are mapped to
    deterministic UUID point ids; the record id is kept in the payload.
    Tags are stored twice: as the original key -> values map, and as flat
    "key=value" terms so that a MatchValue condition on the terms array gives
    set-membership filtering.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 6333,
        *,
        settings: Optional[QdrantSettings] = None,
        client: Optional[AsyncQdrantClient] = None,
        default_index: str = DEFAULT_INDEX,
    ):
        """
        Initialize Qdrant vector store.

        Args:
            host: Qdrant host (shortcut for settings.host)
            port: Qdrant port (default: 6333)
            settings: Full Qdrant settings (api key, https, location)
            client: Existing async client to use instead of creating one
            default_index: Index name protected from deletion
        """
        settings = settings or QdrantSettings(host=host, port=port)

        if client is None:
            if settings.location:
                client = AsyncQdrantClient(location=settings.location)
            elif settings.host:
                client = AsyncQdrantClient(
                    host=settings.host,
                    port=settings.port,
                    api_key=settings.api_key,
                    https=settings.https,
                )
            else:
                raise ConfigurationError("Qdrant host or location is required")

        self.client = client
        self._default_index = default_index
        logger.info("QdrantVectorDb initialized")

    def _index(self, index: str) -> str:
        return normalize_index_name(index, self._default_index)

    @asynccontextmanager
    async def _translate_errors(self):
        try:
            yield
        except ResponseHandlingException as e:
            logger.error(f"Qdrant connection failure: {e}")
            raise ConnectionFailureError(str(e)) from e

    async def _vector_size(self, name: str) -> Optional[int]:
        """
        Vector size of a collection.

        Raises:
            IndexNotFoundError: If the collection does not exist
        """
        async with self._translate_errors():
            if not await self.client.collection_exists(name):
                raise IndexNotFoundError(name)
            info = await self.client.get_collection(name)

        vectors = info.config.params.vectors
        return vectors.size if isinstance(vectors, VectorParams) else None

    async def create_index(self, index: str, vector_size: int) -> None:
        validate_vector_size(vector_size)
        name = self._index(index)

        async with self._translate_errors():
            if not await self.client.collection_exists(name):
                await self.client.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(size=vector_size, distance=Distance.COSINE),
                )
                logger.info(f"Created collection {name} (vector_size={vector_size})")
                return

        existing_size = await self._vector_size(name)
        if existing_size is not None and existing_size != vector_size:
            raise DimensionMismatchError(
                expected=existing_size,
                actual=vector_size,
                message=f"Index '{name}' already exists with vector size {existing_size}",
            )

    async def list_indexes(self) -> AsyncIterator[str]:
        async with self._translate_errors():
            response = await self.client.get_collections()
        for collection in response.collections:
            yield collection.name

    async def delete_index(self, index: str) -> None:
        name = self._index(index)
        if is_default_index(name, self._default_index):
            logger.warning("The default index cannot be deleted")
            return

        async with self._translate_errors():
            if await self.client.collection_exists(name):
                await self.client.delete_collection(name)
                logger.info(f"Deleted collection {name}")

    async def upsert(self, index: str, record: MemoryRecord) -> str:
        name = self._index(index)
        vector_size = await self._vector_size(name)
        if record.vector is None:
            raise DimensionMismatchError(
                expected=vector_size or 0, actual=0, message="Qdrant points require a vector"
            )
        check_dimension(vector_size, record.vector.data)

        async with self._translate_errors():
            await self.client.upsert(
                collection_name=name,
                points=[to_point(record, datetime.now(timezone.utc))],
                wait=True,
            )

        logger.debug(f"Upserted record {record.id} into {name}")
        return record.id

    async def delete(self, index: str, record_id: str) -> None:
        name = self._index(index)
        if await self.read(name, record_id) is None:
            logger.debug(f"No record with ID {record_id} found, nothing to delete")
            return

        async with self._translate_errors():
            await self.client.delete(
                collection_name=name,
                points_selector=PointIdsList(points=[point_id(record_id)]),
                wait=True,
            )

    async def delete_batch(self, index: str, record_ids: Iterable[str]) -> None:
        name = self._index(index)
        ids = [point_id(record_id) for record_id in record_ids]
        await self._vector_size(name)
        if not ids:
            return

        async with self._translate_errors():
            await self.client.delete(
                collection_name=name,
                points_selector=PointIdsList(points=ids),
                wait=True,
            )
        logger.debug(f"Deleted up to {len(ids)} records from {name}")

    async def _retrieve(self, name: str, record_ids: List[str], with_embeddings: bool) -> list:
        await self._vector_size(name)
        if not record_ids:
            return []

        async with self._translate_errors():
            return await self.client.retrieve(
                collection_name=name,
                ids=[point_id(record_id) for record_id in record_ids],
                with_payload=True,
                with_vectors=with_embeddings,
            )

    async def read(
        self, index: str, record_id: str, with_embeddings: bool = False
    ) -> Optional[MemoryRecord]:
        points = await self._retrieve(self._index(index), [record_id], with_embeddings)
        if not points:
            return None
        return from_point(points[0], with_embeddings)

    async def read_batch(
        self, index: str, record_ids: Iterable[str], with_embeddings: bool = False
    ) -> AsyncIterator[MemoryRecord]:
        points = await self._retrieve(self._index(index), list(record_ids), with_embeddings)
        for point in points:
            yield from_point(point, with_embeddings)

    async def list_records(
        self,
        index: str,
        filter: Optional[MemoryFilter] = None,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        name = self._index(index)
        await self._vector_size(name)
        max_results = normalize_limit(limit)

        # Qdrant can't order by payload without a payload index, sort client-side
        points = []
        offset = None
        async with self._translate_errors():
            while True:
                page, offset = await self.client.scroll(
                    collection_name=name,
                    scroll_filter=build_filter(filter),
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=with_embeddings,
                )
                points.extend(page)
                if offset is None:
                    break

        points.sort(key=lambda p: (p.payload or {}).get(FIELD_TIMESTAMP) or 0.0, reverse=True)
        for point in points[:max_results]:
            yield from_point(point, with_embeddings)

    async def search_nearest(
        self,
        index: str,
        embedding: VectorLike,
        filter: Optional[MemoryFilter] = None,
        min_relevance: float = 0.0,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[Tuple[MemoryRecord, float]]:
        name = self._index(index)
        query = to_embedding(embedding)
        check_dimension(await self._vector_size(name), query.data)

        async with self._translate_errors():
            max_results = normalize_limit(limit)
            if max_results is None:
                max_results = max((await self.client.count(collection_name=name, exact=True)).count, 1)

            response = await self.client.query_points(
                collection_name=name,
                query=query.to_list(),
                query_filter=build_filter(filter),
                limit=max_results,
                score_threshold=min_relevance,
                with_payload=True,
                with_vectors=with_embeddings,
            )

        logger.debug(f"{len(response.points)} hits found in {name}")
        for hit in response.points:
            if hit.score >= min_relevance:
                yield from_point(hit, with_embeddings), hit.score

    async def close(self) -> None:
        await self.client.close()
