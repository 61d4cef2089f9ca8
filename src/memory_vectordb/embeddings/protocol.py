"""
Text embedding protocol for memory-vectordb.

The memory service turns chunks and queries into vectors through this
interface; the vector databases only ever see the resulting floats.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return vectors of exactly ``dimension`` floats
    2. Return vectors in input order for batch calls
    3. Implement async methods

    Example:
        >>> embedder = OpenAIEmbedding(dimensions=768)
        >>> vector = await embedder.embed_document("Hello world")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        Used as the vector size when the memory service creates an index;
        every vector stored in one index must have this dimension.
        """
        ...

    @property
    def model_name(self) -> str:
        """Model name or identifier (e.g., "text-embedding-3-small")."""
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for a document chunk to be stored.

        Args:
            text: Chunk text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
        """
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
        """
        ...

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """
        Generate embeddings for multiple document chunks.

        Args:
            texts: List of chunk texts
            batch_size: Number of texts sent per request

        Returns:
            List of embedding vectors (same order as input)

        Raises:
            ValueError: If any text is empty
        """
        ...
