"""Exception hierarchy for memory-vectordb."""

from typing import Optional


class MemoryVectorDbError(Exception):
    """Base exception for all memory-vectordb errors."""
    pass


class StorageError(MemoryVectorDbError):
    """Raised when a vector storage operation cannot be carried out."""
    pass


class ConfigurationError(StorageError):
    """Raised when configuration or operation arguments are invalid."""
    pass


class ConnectionFailureError(StorageError):
    """Raised when the backend can't be reached (network, auth)."""
    pass


class IndexNotFoundError(StorageError):
    """Raised when an operation references an index that does not exist."""

    def __init__(self, index: str, message: Optional[str] = None):
        self.index = index
        super().__init__(message or f"Index '{index}' not found")


class DimensionMismatchError(StorageError):
    """Raised when an embedding size differs from the expected dimensionality."""

    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Embedding size mismatch: expected {expected}, got {actual}"
        )
