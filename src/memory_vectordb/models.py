import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from memory_vectordb.errors import DimensionMismatchError

# Tags written by the ingestion step on every chunk
TAG_DOCUMENT_ID = "__document_id"
TAG_FILE_ID = "__file_id"
TAG_FILE_PART = "__file_part"
TAG_PART_NUMBER = "__part_n"

# Tags used by the chat application
TAG_CHAT_ID = "chatid"
TAG_MEMORY = "memory"

PAYLOAD_TEXT = "text"
PAYLOAD_DESCRIPTION = "description"
PAYLOAD_FILE = "file"
PAYLOAD_LAST_UPDATE = "last_update"


def to_json(value: Any) -> str:
    """Compact, reproducible JSON encoding used for payload and tags columns."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class Embedding(BaseModel):
    """Immutable dense vector produced by an embedding generator."""

    model_config = ConfigDict(frozen=True)

    data: Tuple[float, ...]

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Tuple[float, ...]:
        return tuple(float(x) for x in value)

    @classmethod
    def of(cls, values: Any) -> "Embedding":
        if isinstance(values, Embedding):
            return values
        return cls(data=values)

    @property
    def size(self) -> int:
        return len(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def to_list(self) -> List[float]:
        return list(self.data)

    def cosine_similarity(self, other: "Embedding") -> float:
        """
        Cosine similarity between two embeddings (1.0 = same direction).

        Raises:
            DimensionMismatchError: If the embeddings have different sizes
        """
        if self.size != other.size:
            raise DimensionMismatchError(expected=self.size, actual=other.size)

        dot_product = sum(a * b for a, b in zip(self.data, other.data))
        magnitude1 = math.sqrt(sum(a * a for a in self.data))
        magnitude2 = math.sqrt(sum(b * b for b in other.data))

        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        return dot_product / (magnitude1 * magnitude2)


class MemoryFilter(BaseModel):
    """
    Tag equality constraints combined with AND.

    A pair (key, value) holds when value is one of the values recorded for key
    on the record. An empty filter matches every record.

    Example:
        >>> f = MemoryFilter().by_tag("chatid", "c1").by_tag("memory", "notes")
    """

    pairs: List[Tuple[str, str]] = Field(default_factory=list)

    def by_tag(self, key: str, value: str) -> "MemoryFilter":
        self.pairs.append((key, value))
        return self

    def by_document(self, document_id: str) -> "MemoryFilter":
        return self.by_tag(TAG_DOCUMENT_ID, document_id)

    def is_empty(self) -> bool:
        return not self.pairs

    def matches(self, tags: Dict[str, List[str]]) -> bool:
        return all(value in tags.get(key, []) for key, value in self.pairs)


class MemoryRecord(BaseModel):
    """
    The unit stored in a vector index.

    Tags map each key to a list of distinct values, so a record can carry
    several values for the same key (e.g. multiple chat participants).
    """

    id: str = Field(..., min_length=1, description="Unique record id within the index")
    payload: Dict[str, Any] = Field(default_factory=dict)
    tags: Dict[str, List[str]] = Field(default_factory=dict)
    vector: Optional[Embedding] = None
    timestamp: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Dict[str, List[str]]:
        if value is None:
            return {}
        normalized: Dict[str, List[str]] = {}
        for key, values in dict(value).items():
            if values is None:
                values = []
            elif isinstance(values, str):
                values = [values]
            unique: List[str] = []
            for item in values:
                if item is not None and str(item) not in unique:
                    unique.append(str(item))
            normalized[str(key)] = unique
        return normalized

    @field_validator("vector", mode="before")
    @classmethod
    def _coerce_vector(cls, value: Any) -> Optional[Embedding]:
        if value is None or isinstance(value, Embedding):
            return value
        return Embedding(data=value)

    def add_tag(self, key: str, value: str) -> "MemoryRecord":
        values = self.tags.setdefault(key, [])
        if value not in values:
            values.append(value)
        return self

    def first_tag(self, key: str) -> Optional[str]:
        values = self.tags.get(key)
        return values[0] if values else None

    def payload_json(self) -> str:
        return to_json(self.payload)

    def tags_json(self) -> str:
        return to_json(self.tags)

    def without_vector(self) -> "MemoryRecord":
        return self.model_copy(update={"vector": None}, deep=True)


class Citation(BaseModel):
    """A search hit shaped for the chat application."""

    link: str = Field(..., description="'<documentId>/<chunkIndex>' reference to the source chunk")
    document_id: str
    partition_number: int = 0
    index: str
    source_name: Optional[str] = None
    text: str = ""
    relevance: float
    last_update: Optional[datetime] = None
    tags: Dict[str, List[str]] = Field(default_factory=dict)


class SearchResult(BaseModel):
    query: str
    results: List[Citation] = Field(default_factory=list)

    @property
    def no_result(self) -> bool:
        return not self.results
