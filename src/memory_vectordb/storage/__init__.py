"""
Vector database facade and backends.

Provides the VectorDb protocol and its implementations. Backends whose
client libraries are not installed are left out of ``__all__``.
"""

from memory_vectordb.storage.factory import create_vector_db
from memory_vectordb.storage.protocols import VectorDb

__all__ = [
    "VectorDb",
    "create_vector_db",
]

try:
    from memory_vectordb.storage.vector.memory import InMemoryVectorDb  # noqa: F401

    __all__.append("InMemoryVectorDb")
except ImportError:
    pass

try:
    from memory_vectordb.storage.vector.postgres import PostgresVectorDb  # noqa: F401

    __all__.append("PostgresVectorDb")
except ImportError:
    pass

try:
    from memory_vectordb.storage.vector.qdrant import QdrantVectorDb  # noqa: F401

    __all__.append("QdrantVectorDb")
except ImportError:
    pass

try:
    from memory_vectordb.storage.vector.azure_search import AzureSearchVectorDb  # noqa: F401

    __all__.append("AzureSearchVectorDb")
except ImportError:
    pass
