"""
Azure AI Search (formerly Cognitive Search) vector storage implementation.

Each memory index maps to one search index with an HNSW cosine vector
profile. Requires the ``azure-search-documents`` package
(``pip install memory-vectordb[azure]``).
"""

import base64
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from memory_vectordb.config import DEFAULT_INDEX, AzureSearchSettings
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

try:
    from azure.core.credentials import AzureKeyCredential
    from azure.core.exceptions import ResourceNotFoundError, ServiceRequestError
    from azure.search.documents.aio import SearchClient
    from azure.search.documents.indexes.aio import SearchIndexClient
    from azure.search.documents.indexes.models import (
        HnswAlgorithmConfiguration,
        HnswParameters,
        SearchField,
        SearchFieldDataType,
        SearchIndex,
        SimpleField,
        VectorSearch,
        VectorSearchProfile,
    )
    from azure.search.documents.models import VectorizedQuery
except ImportError:
    SearchIndexClient = None  # type: ignore

logger = logging.getLogger(__name__)

FIELD_KEY = "id"
FIELD_RECORD_ID = "record_id"
FIELD_EMBEDDING = "embedding"
FIELD_TAGS = "tags"
FIELD_TAG_MAP = "tag_map"
FIELD_PAYLOAD = "payload"
FIELD_TIMESTAMP = "timestamp"

VECTOR_PROFILE = "memory-vector-profile"
VECTOR_ALGORITHM = "memory-hnsw"


def encode_key(record_id: str) -> str:
    """Document keys only allow letters, digits, '_', '-' and '='."""
    return base64.urlsafe_b64encode(record_id.encode("utf-8")).decode("ascii")


def score_to_similarity(score: float) -> float:
    """Azure reports cosine hits as 1 / (1 + distance); convert back to 1 - distance."""
    return 2.0 - 1.0 / score


def build_odata_filter(filter: Optional[MemoryFilter]) -> Optional[str]:
    if filter is None or filter.is_empty():
        return None

    clauses = []
    for key, value in filter.pairs:
        literal = tag_term(key, value).replace("'", "''")
        clauses.append(f"{FIELD_TAGS}/any(t: t eq '{literal}')")
    return " and ".join(clauses)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def to_document(record: MemoryRecord, timestamp: datetime) -> Dict[str, Any]:
    return {
        FIELD_KEY: encode_key(record.id),
        FIELD_RECORD_ID: record.id,
        FIELD_EMBEDDING: record.vector.to_list() if record.vector is not None else None,
        FIELD_TAGS: tag_terms(record.tags),
        FIELD_TAG_MAP: record.tags_json(),
        FIELD_PAYLOAD: record.payload_json(),
        FIELD_TIMESTAMP: timestamp.isoformat(),
    }


def from_document(document: Dict[str, Any], with_embeddings: bool) -> MemoryRecord:
    vector = document.get(FIELD_EMBEDDING) if with_embeddings else None
    payload = document.get(FIELD_PAYLOAD)
    tags = document.get(FIELD_TAG_MAP)

    return MemoryRecord(
        id=document[FIELD_RECORD_ID],
        payload=json.loads(payload) if payload else {},
        tags=json.loads(tags) if tags else {},
        vector=vector,
        timestamp=_parse_timestamp(document.get(FIELD_TIMESTAMP)),
    )


def _select_fields(with_embeddings: bool) -> List[str]:
    fields = [FIELD_KEY, FIELD_RECORD_ID, FIELD_TAG_MAP, FIELD_PAYLOAD, FIELD_TIMESTAMP]
    if with_embeddings:
        fields.append(FIELD_EMBEDDING)
    return fields


class AzureSearchVectorDb:
    """
    Azure AI Search implementation of the VectorDb protocol.

    Index names follow the shared rules minus '_', which Azure rejects.
    Tags are stored as a JSON map for reading back, plus a filterable
    collection of "key=value" terms used by OData filters.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        settings: Optional[AzureSearchSettings] = None,
        default_index: str = DEFAULT_INDEX,
    ):
        """
        Initialize the Azure AI Search store.

        Args:
            endpoint: Search service endpoint, e.g. https://<name>.search.windows.net
            api_key: Admin API key
            settings: Settings object used when endpoint/api_key are not given
            default_index: Index name protected from deletion
        """
        if SearchIndexClient is None:
            raise ImportError(
                "azure-search-documents is required for AzureSearchVectorDb. "
                "Install with: pip install memory-vectordb[azure]"
            )

        settings = settings or AzureSearchSettings()
        self._endpoint = endpoint or settings.endpoint
        api_key = api_key or settings.api_key
        if not self._endpoint or not api_key:
            raise ConfigurationError("Azure AI Search endpoint and API key are required")

        self._credential = AzureKeyCredential(api_key)
        self._index_client = SearchIndexClient(self._endpoint, self._credential)
        self._default_index = default_index

        logger.info(f"AzureSearchVectorDb initialized (endpoint={self._endpoint})")

    def _index(self, index: str) -> str:
        name = normalize_index_name(index, self._default_index)
        # Azure index names allow lower-case letters, digits and dashes only
        if "_" in name:
            raise ConfigurationError(
                f"Invalid index name '{index}': Azure AI Search index names cannot contain '_'"
            )
        return name

    def _search_client(self, name: str) -> "SearchClient":
        return SearchClient(self._endpoint, name, self._credential)

    @asynccontextmanager
    async def _translate_errors(self, name: Optional[str] = None):
        try:
            yield
        except ResourceNotFoundError as e:
            if name is None:
                raise
            raise IndexNotFoundError(name) from e
        except ServiceRequestError as e:
            logger.error(f"Azure AI Search connection failure: {e}")
            raise ConnectionFailureError(str(e)) from e

    async def _vector_size(self, name: str) -> Optional[int]:
        async with self._translate_errors(name):
            search_index = await self._index_client.get_index(name)

        for field in search_index.fields:
            if field.name == FIELD_EMBEDDING:
                return field.vector_search_dimensions
        return None

    async def create_index(self, index: str, vector_size: int) -> None:
        validate_vector_size(vector_size)
        name = self._index(index)

        try:
            existing_size = await self._vector_size(name)
        except IndexNotFoundError:
            existing_size = None
        else:
            if existing_size is not None and existing_size != vector_size:
                raise DimensionMismatchError(
                    expected=existing_size,
                    actual=vector_size,
                    message=f"Index '{name}' already exists with vector size {existing_size}",
                )
            return

        search_index = SearchIndex(
            name=name,
            fields=[
                SimpleField(name=FIELD_KEY, type=SearchFieldDataType.String, key=True),
                SimpleField(name=FIELD_RECORD_ID, type=SearchFieldDataType.String, filterable=True),
                SearchField(
                    name=FIELD_EMBEDDING,
                    type=SearchFieldDataType.Collection(SearchFieldDataType.Single),
                    searchable=True,
                    vector_search_dimensions=vector_size,
                    vector_search_profile_name=VECTOR_PROFILE,
                ),
                SimpleField(
                    name=FIELD_TAGS,
                    type=SearchFieldDataType.Collection(SearchFieldDataType.String),
                    filterable=True,
                ),
                SimpleField(name=FIELD_TAG_MAP, type=SearchFieldDataType.String),
                SimpleField(name=FIELD_PAYLOAD, type=SearchFieldDataType.String),
                SimpleField(
                    name=FIELD_TIMESTAMP,
                    type=SearchFieldDataType.DateTimeOffset,
                    filterable=True,
                    sortable=True,
                ),
            ],
            vector_search=VectorSearch(
                algorithms=[
                    HnswAlgorithmConfiguration(
                        name=VECTOR_ALGORITHM, parameters=HnswParameters(metric="cosine")
                    )
                ],
                profiles=[
                    VectorSearchProfile(
                        name=VECTOR_PROFILE, algorithm_configuration_name=VECTOR_ALGORITHM
                    )
                ],
            ),
        )

        async with self._translate_errors():
            await self._index_client.create_or_update_index(search_index)
        logger.info(f"Created search index {name} (vector_size={vector_size})")

    async def list_indexes(self) -> AsyncIterator[str]:
        async with self._translate_errors():
            async for name in self._index_client.list_index_names():
                yield name

    async def delete_index(self, index: str) -> None:
        name = self._index(index)
        if is_default_index(name, self._default_index):
            logger.warning("The default index cannot be deleted")
            return

        try:
            async with self._translate_errors():
                await self._index_client.delete_index(name)
        except ResourceNotFoundError:
            return
        logger.info(f"Deleted search index {name}")

    async def upsert(self, index: str, record: MemoryRecord) -> str:
        name = self._index(index)
        check_dimension(await self._vector_size(name), record.vector.data if record.vector else None)

        async with self._translate_errors(name), self._search_client(name) as client:
            await client.upload_documents(documents=[to_document(record, datetime.now(timezone.utc))])

        logger.debug(f"Upserted record {record.id} into {name}")
        return record.id

    async def delete(self, index: str, record_id: str) -> None:
        await self.delete_batch(index, [record_id])

    async def delete_batch(self, index: str, record_ids: Iterable[str]) -> None:
        name = self._index(index)
        await self._vector_size(name)
        keys = [{FIELD_KEY: encode_key(record_id)} for record_id in record_ids]
        if not keys:
            return

        # Deleting a missing key is not an error for the service
        async with self._translate_errors(name), self._search_client(name) as client:
            await client.delete_documents(documents=keys)

    async def read(
        self, index: str, record_id: str, with_embeddings: bool = False
    ) -> Optional[MemoryRecord]:
        name = self._index(index)
        await self._vector_size(name)

        async with self._search_client(name) as client:
            try:
                async with self._translate_errors():
                    document = await client.get_document(
                        key=encode_key(record_id), selected_fields=_select_fields(with_embeddings)
                    )
            except ResourceNotFoundError:
                return None
        return from_document(document, with_embeddings)

    async def read_batch(
        self, index: str, record_ids: Iterable[str], with_embeddings: bool = False
    ) -> AsyncIterator[MemoryRecord]:
        for record_id in list(record_ids):
            record = await self.read(index, record_id, with_embeddings)
            if record is not None:
                yield record

    async def list_records(
        self,
        index: str,
        filter: Optional[MemoryFilter] = None,
        limit: int = -1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        name = self._index(index)
        await self._vector_size(name)

        async with self._translate_errors(name), self._search_client(name) as client:
            results = await client.search(
                search_text="*",
                filter=build_odata_filter(filter),
                order_by=[f"{FIELD_TIMESTAMP} desc"],
                select=_select_fields(with_embeddings),
                top=normalize_limit(limit),
            )
            async for document in results:
                yield from_document(document, with_embeddings)

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

        async with self._translate_errors(name), self._search_client(name) as client:
            max_results = normalize_limit(limit)
            if max_results is None:
                max_results = max(await client.get_document_count(), 1)

            results = await client.search(
                search_text=None,
                vector_queries=[
                    VectorizedQuery(
                        vector=query.to_list(),
                        k_nearest_neighbors=max_results,
                        fields=FIELD_EMBEDDING,
                    )
                ],
                filter=build_odata_filter(filter),
                select=_select_fields(with_embeddings),
                top=max_results,
            )
            async for document in results:
                similarity = score_to_similarity(document["@search.score"])
                if similarity >= min_relevance:
                    yield from_document(document, with_embeddings), similarity

    async def close(self) -> None:
        await self._index_client.close()
