"""Backend selection from settings."""

import logging
from typing import Optional

from memory_vectordb.config import VectorDbSettings
from memory_vectordb.errors import ConfigurationError
from memory_vectordb.storage.protocols import VectorDb

logger = logging.getLogger(__name__)


def create_vector_db(settings: Optional[VectorDbSettings] = None) -> VectorDb:
    """
    Build the vector database selected by ``settings.vector_db_type``.

    Args:
        settings: Settings to use (None = read from environment / .env)

    Returns:
        A VectorDb implementation; the caller owns it and must close() it

    Raises:
        ConfigurationError: If the selected backend is missing required settings
    """
    settings = settings or VectorDbSettings()
    db_type = settings.vector_db_type
    logger.info(f"Creating vector database (type={db_type})")

    if db_type == "memory":
        from memory_vectordb.storage.vector.memory import InMemoryVectorDb

        return InMemoryVectorDb(default_index=settings.default_index)

    if db_type == "postgres":
        if not settings.postgres.connection_string:
            raise ConfigurationError("postgres.connection_string is required for the postgres backend")

        from memory_vectordb.storage.vector.postgres import PostgresVectorDb

        return PostgresVectorDb(settings=settings.postgres, default_index=settings.default_index)

    if db_type == "qdrant":
        if not settings.qdrant.host and not settings.qdrant.location:
            raise ConfigurationError("qdrant.host or qdrant.location is required for the qdrant backend")

        from memory_vectordb.storage.vector.qdrant import QdrantVectorDb

        return QdrantVectorDb(settings=settings.qdrant, default_index=settings.default_index)

    if db_type == "azure_search":
        if not settings.azure_search.endpoint or not settings.azure_search.api_key:
            raise ConfigurationError(
                "azure_search.endpoint and azure_search.api_key are required for the azure_search backend"
            )

        from memory_vectordb.storage.vector.azure_search import AzureSearchVectorDb

        return AzureSearchVectorDb(settings=settings.azure_search, default_index=settings.default_index)

    raise ConfigurationError(f"Unknown vector database type: {db_type}")
