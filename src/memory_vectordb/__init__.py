"""
memory-vectordb: vector memory storage and retrieval for chat applications.

Core components:
- storage: VectorDb protocol with Postgres (pgvector), Qdrant, Azure AI Search
  and in-memory backends
- memory_service: chat-scoped store / search / remove on top of a VectorDb
- embeddings: Text embedding protocol and adapters
- models: Core data models (MemoryRecord, MemoryFilter, Embedding, ...)
"""

__version__ = "0.1.0"

from memory_vectordb.config import VectorDbSettings
from memory_vectordb.errors import (
    ConfigurationError,
    ConnectionFailureError,
    DimensionMismatchError,
    IndexNotFoundError,
    MemoryVectorDbError,
    StorageError,
)
from memory_vectordb.ingestion import TextPartitioner
from memory_vectordb.memory_service import ChatMemoryService
from memory_vectordb.models import (
    Citation,
    Embedding,
    MemoryFilter,
    MemoryRecord,
    SearchResult,
)
from memory_vectordb.storage import VectorDb, create_vector_db

__all__ = [
    "__version__",
    # Models
    "Embedding",
    "MemoryRecord",
    "MemoryFilter",
    "Citation",
    "SearchResult",
    # Errors
    "MemoryVectorDbError",
    "StorageError",
    "ConfigurationError",
    "ConnectionFailureError",
    "DimensionMismatchError",
    "IndexNotFoundError",
    # Services
    "VectorDb",
    "VectorDbSettings",
    "create_vector_db",
    "TextPartitioner",
    "ChatMemoryService",
]
