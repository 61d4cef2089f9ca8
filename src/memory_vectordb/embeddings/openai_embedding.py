"""OpenAI embedding adapter for memory-vectordb."""

import logging
import os
from typing import List, Optional

from memory_vectordb.errors import ConfigurationError

logger = logging.getLogger(__name__)

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API (async client).

    Also works with OpenAI-compatible endpoints (Azure OpenAI, OpenRouter,
    local servers) through ``base_url``.

    Example:
        >>> embedder = OpenAIEmbedding(model="text-embedding-3-small", api_key="sk-...")
        >>> vector = await embedder.embed_document("I like pizza")
        >>> len(vector)
        1536
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI)
            dimensions: Output dimension; required for models not in MODEL_DIMENSIONS
            timeout: Request timeout in seconds
            max_retries: Number of retry attempts for failed requests
        """
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ImportError(
                "openai is required for OpenAIEmbedding. "
                "Install with: pip install memory-vectordb[openai]"
            ) from e

        if dimensions is None and model not in MODEL_DIMENSIONS:
            raise ConfigurationError(f"Unknown embedding model {model}, dimensions must be given")

        self._model = model
        self._dimensions = dimensions
        self._dimension = dimensions if dimensions is not None else MODEL_DIMENSIONS[model]

        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    async def _create(self, texts: List[str]) -> List[List[float]]:
        kwargs = {"model": self._model, "input": texts}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**kwargs)
        # The API echoes an index per input item
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for a document chunk.

        OpenAI models don't distinguish documents from queries.

        Raises:
            ValueError: If text is empty
            openai.OpenAIError: If API request fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return (await self._create([text]))[0]

    async def embed_query(self, text: str) -> List[float]:
        return await self.embed_document(text)

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """
        Generate embeddings for multiple chunks, ``batch_size`` texts per request.

        Raises:
            ValueError: If any text is empty
            openai.OpenAIError: If API request fails
        """
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._create(texts[start:start + batch_size]))
        return vectors
