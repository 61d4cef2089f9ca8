"""
Text partitioning for memory ingestion.

Memories arrive as plain strings; they are cut into chunks small enough to
embed. Budgets are measured in tokens of a tiktoken encoding. Whole
paragraphs are packed together while they fit; a paragraph too long on its
own is cut into overlapping token windows.
"""

import logging
import re
from typing import List, Optional

import tiktoken

from memory_vectordb.config import IngestionSettings
from memory_vectordb.errors import ConfigurationError

logger = logging.getLogger(__name__)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")

PARAGRAPH_SEPARATOR = "\n\n"


class TextPartitioner:
    """Token-budget chunking of plain text."""

    def __init__(
        self,
        max_chunk_tokens: int = 1000,
        overlap_tokens: int = 100,
        encoding_name: str = "cl100k_base",
    ):
        """
        Initialize the partitioner.

        Args:
            max_chunk_tokens: Maximum size of a chunk (tokens)
            overlap_tokens: Tokens repeated at the start of the next window when
                a paragraph has to be split
            encoding_name: tiktoken encoding used to count tokens
        """
        if max_chunk_tokens <= 0:
            raise ConfigurationError(f"max_chunk_tokens must be positive, got {max_chunk_tokens}")
        if overlap_tokens < 0 or overlap_tokens >= max_chunk_tokens:
            raise ConfigurationError(
                f"overlap_tokens must be in [0, {max_chunk_tokens}), got {overlap_tokens}"
            )

        self.max_chunk_tokens = max_chunk_tokens
        self.overlap_tokens = overlap_tokens
        self.encoding = tiktoken.get_encoding(encoding_name)

    @classmethod
    def from_settings(cls, settings: Optional[IngestionSettings] = None) -> "TextPartitioner":
        settings = settings or IngestionSettings()
        return cls(
            max_chunk_tokens=settings.max_chunk_tokens,
            overlap_tokens=settings.overlap_tokens,
            encoding_name=settings.encoding_name,
        )

    def count_tokens(self, text: str) -> int:
        return len(self.encoding.encode(text))

    def split(self, text: Optional[str]) -> List[str]:
        """
        Split text into chunks of at most ``max_chunk_tokens`` tokens.

        Blank text yields no chunks.
        """
        text = (text or "").strip()
        if not text:
            return []

        chunks: List[str] = []
        current = ""
        for paragraph in _PARAGRAPH_RE.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if self.count_tokens(paragraph) > self.max_chunk_tokens:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._split_tokens(paragraph))
                continue

            candidate = f"{current}{PARAGRAPH_SEPARATOR}{paragraph}" if current else paragraph
            if self.count_tokens(candidate) <= self.max_chunk_tokens:
                current = candidate
            else:
                chunks.append(current)
                current = paragraph

        if current:
            chunks.append(current)

        logger.debug(f"Partitioned {len(text)} chars into {len(chunks)} chunks")
        return chunks

    def _split_tokens(self, paragraph: str) -> List[str]:
        tokens = self.encoding.encode(paragraph)
        step = self.max_chunk_tokens - self.overlap_tokens

        chunks: List[str] = []
        pos = 0
        while True:
            window = tokens[pos:pos + self.max_chunk_tokens]
            chunk = self.encoding.decode(window).strip()
            if chunk:
                chunks.append(chunk)
            # The last window reaches the end of the paragraph
            if pos + self.max_chunk_tokens >= len(tokens):
                break
            pos += step
        return chunks
