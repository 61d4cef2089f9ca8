"""
Chat memory service.

Stores chat memories as chunked, embedded records and answers semantic
queries scoped to a chat. Records carry these tags:

    chatid         the chat the memory belongs to
    memory         the memory name (e.g. "WorkingMemory", "LongTermMemory")
    __document_id  the stored document the chunk came from
    __file_id      stable id of the stored file
    __file_part    id of the chunk record
    __part_n       chunk number within the document
"""

import logging
import uuid
from contextlib import aclosing
from datetime import datetime, timezone
from typing import List, Optional

from memory_vectordb.config import IngestionSettings, VectorDbSettings
from memory_vectordb.embeddings import TextEmbedding
from memory_vectordb.errors import ConfigurationError, IndexNotFoundError
from memory_vectordb.ingestion import TextPartitioner
from memory_vectordb.models import (
    PAYLOAD_DESCRIPTION,
    PAYLOAD_FILE,
    PAYLOAD_LAST_UPDATE,
    PAYLOAD_TEXT,
    TAG_CHAT_ID,
    TAG_DOCUMENT_ID,
    TAG_FILE_ID,
    TAG_FILE_PART,
    TAG_MEMORY,
    TAG_PART_NUMBER,
    Citation,
    MemoryFilter,
    MemoryRecord,
    SearchResult,
)
from memory_vectordb.storage import VectorDb, create_vector_db

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "memory.txt"


def partition_id(document_id: str, partition_number: int) -> str:
    """Record id of one chunk of a document."""
    return f"{document_id}-{partition_number}"


def document_id_from_link(link: str) -> str:
    """Extract the document id from a '<documentId>/<chunkIndex>' citation link."""
    return link.split("/", 1)[0]


class ChatMemoryService:
    def __init__(
        self,
        vector_db: VectorDb,
        embedding: TextEmbedding,
        settings: Optional[IngestionSettings] = None,
        vector_size: Optional[int] = None,
    ):
        """
        Args:
            vector_db: Store holding the memory records
            embedding: Embedder for chunks and queries
            settings: Chunking settings (defaults if None)
            vector_size: Expected index vector size; must match the embedder

        Raises:
            ConfigurationError: If vector_size differs from embedding.dimension
        """
        if vector_size is not None and vector_size != embedding.dimension:
            raise ConfigurationError(
                f"Configured vector size {vector_size} does not match the embedding "
                f"dimension {embedding.dimension}"
            )

        self.vector_db = vector_db
        self.embedding = embedding
        self.vector_size = vector_size or embedding.dimension
        self.partitioner = TextPartitioner.from_settings(settings)

    @classmethod
    def from_settings(
        cls, embedding: TextEmbedding, settings: Optional[VectorDbSettings] = None
    ) -> "ChatMemoryService":
        """Build the service and its configured vector database from settings."""
        settings = settings or VectorDbSettings()
        return cls(
            create_vector_db(settings),
            embedding,
            settings=settings.ingestion,
            vector_size=settings.vector_size,
        )

    async def store_memory(
        self,
        index: str,
        chat_id: str,
        memory_name: str,
        text: str,
        memory_id: Optional[str] = None,
        file_name: str = DEFAULT_FILE_NAME,
    ) -> str:
        """
        Partition, embed and store a memory for a chat.

        Storing again under an existing memory_id replaces the previous chunks.

        Args:
            index: Index to store into (created if missing)
            chat_id: Chat the memory belongs to
            memory_name: Memory type name, stored as the "memory" tag
            text: Memory text
            memory_id: Document id (None = new UUID)
            file_name: Source file name recorded in the payload

        Returns:
            The document id

        Raises:
            ValueError: If text is empty
        """
        chunks = self.partitioner.split(text)
        if not chunks:
            raise ValueError("Cannot store empty memory text")

        document_id = memory_id or str(uuid.uuid4())
        file_id = uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}/{file_name}").hex
        vectors = await self.embedding.embed_documents(chunks)

        await self.vector_db.create_index(index, self.vector_size)
        if memory_id is not None:
            await self.delete_document(index, document_id)

        last_update = datetime.now(timezone.utc).isoformat()
        for number, (chunk, vector) in enumerate(zip(chunks, vectors)):
            record_id = partition_id(document_id, number)
            record = MemoryRecord(
                id=record_id,
                vector=vector,
                payload={
                    PAYLOAD_TEXT: chunk,
                    PAYLOAD_DESCRIPTION: memory_name,
                    PAYLOAD_FILE: file_name,
                    PAYLOAD_LAST_UPDATE: last_update,
                },
                tags={
                    TAG_CHAT_ID: chat_id,
                    TAG_MEMORY: memory_name,
                    TAG_DOCUMENT_ID: document_id,
                    TAG_FILE_ID: file_id,
                    TAG_FILE_PART: record_id,
                    TAG_PART_NUMBER: str(number),
                },
            )
            await self.vector_db.upsert(index, record)

        logger.info(
            f"Stored memory {document_id} for chat {chat_id} "
            f"(memory={memory_name}, chunks={len(chunks)})"
        )
        return document_id

    async def search_memory(
        self,
        index: str,
        query: str,
        relevance_threshold: float,
        chat_id: str,
        memory_name: Optional[str] = None,
        result_count: int = -1,
    ) -> SearchResult:
        """
        Semantic search over the memories of one chat.

        Args:
            index: Index to search
            query: Query text
            relevance_threshold: Minimum cosine similarity of a hit
            chat_id: Only memories of this chat are returned
            memory_name: Optionally restrict to one memory type
            result_count: Maximum number of hits (<= 0 = unbounded)

        Returns:
            Hits shaped as citations, most relevant first
        """
        filter = MemoryFilter().by_tag(TAG_CHAT_ID, chat_id)
        if memory_name:
            filter.by_tag(TAG_MEMORY, memory_name)

        query_vector = await self.embedding.embed_query(query)
        result = SearchResult(query=query)

        matches = self.vector_db.search_nearest(
            index,
            query_vector,
            filter=filter,
            min_relevance=relevance_threshold,
            limit=result_count,
        )
        try:
            async with aclosing(matches):
                async for record, score in matches:
                    result.results.append(self._to_citation(index, record, score))
        except IndexNotFoundError:
            logger.debug(f"No memories stored in index {index}")

        logger.info(f"{len(result.results)} memories found for chat {chat_id}")
        return result

    async def remove_chat_memories(self, index: str, chat_id: str) -> List[str]:
        """
        Delete every document stored for a chat.

        Returns:
            The deleted document ids
        """
        document_ids: List[str] = []
        records = self.vector_db.list_records(index, filter=MemoryFilter().by_tag(TAG_CHAT_ID, chat_id))
        try:
            async with aclosing(records):
                async for record in records:
                    document_id = record.first_tag(TAG_DOCUMENT_ID) or document_id_from_link(record.id)
                    if document_id not in document_ids:
                        document_ids.append(document_id)
        except IndexNotFoundError:
            logger.debug(f"No memories stored in index {index}")
            return []

        for document_id in document_ids:
            await self.delete_document(index, document_id)

        logger.info(f"Removed {len(document_ids)} memories of chat {chat_id}")
        return document_ids

    async def delete_document(self, index: str, document_id: str) -> int:
        """Delete all chunks of a document; returns the number of chunks removed."""
        records = self.vector_db.list_records(index, filter=MemoryFilter().by_document(document_id))
        async with aclosing(records):
            record_ids = [record.id async for record in records]

        if record_ids:
            await self.vector_db.delete_batch(index, record_ids)
        logger.debug(f"Deleted {len(record_ids)} chunks of document {document_id}")
        return len(record_ids)

    @staticmethod
    def _to_citation(index: str, record: MemoryRecord, score: float) -> Citation:
        document_id = record.first_tag(TAG_DOCUMENT_ID) or record.id
        partition_number = int(record.first_tag(TAG_PART_NUMBER) or 0)

        return Citation(
            link=f"{document_id}/{partition_number}",
            document_id=document_id,
            partition_number=partition_number,
            index=index,
            source_name=record.payload.get(PAYLOAD_FILE),
            text=record.payload.get(PAYLOAD_TEXT, ""),
            relevance=score,
            last_update=record.timestamp,
            tags=record.tags,
        )
