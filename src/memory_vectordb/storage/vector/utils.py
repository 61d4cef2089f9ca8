"""
Rules shared by every VectorDb implementation.

Backends call these helpers so that index naming, limit handling and
dimension checks behave identically whatever engine sits underneath.
"""

import re
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote

from memory_vectordb.config import DEFAULT_INDEX
from memory_vectordb.errors import ConfigurationError, DimensionMismatchError
from memory_vectordb.models import Embedding

_INDEX_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,62}$")


def normalize_index_name(index: Optional[str], default_index: str = DEFAULT_INDEX) -> str:
    """
    Normalize and validate an index name.

    Index names end up in SQL identifiers and REST paths, so anything outside
    lower-case letters, digits, '_' and '-' is rejected.

    Raises:
        ConfigurationError: If the name is not a valid index identifier
    """
    name = (index or "").strip().lower()
    if not name:
        name = default_index.strip().lower()

    if not _INDEX_NAME_RE.match(name):
        raise ConfigurationError(
            f"Invalid index name '{index}': use lower-case letters, digits, '_' or '-' "
            f"(max 63 characters, starting with a letter or digit)"
        )
    return name


def is_default_index(index: str, default_index: str = DEFAULT_INDEX) -> bool:
    return index.strip().lower() == default_index.strip().lower()


def validate_vector_size(vector_size: int) -> None:
    if vector_size is None or vector_size <= 0:
        raise ConfigurationError(f"Vector size must be positive, got {vector_size}")


def normalize_limit(limit: Optional[int]) -> Optional[int]:
    """Map 'limit <= 0' (or None) to None, meaning unbounded."""
    if limit is None or limit <= 0:
        return None
    return limit


def check_dimension(expected: Optional[int], vector: Optional[Sequence[float]]) -> None:
    """Raise DimensionMismatchError if the vector does not fit the index size."""
    if expected is None or vector is None:
        return
    actual = len(vector)
    if actual != expected:
        raise DimensionMismatchError(expected=expected, actual=actual)


def to_embedding(vector) -> Embedding:
    return Embedding.of(vector)


def tag_term(key: str, value: str) -> str:
    """
    Flatten a tag pair into one "key=value" string for engines that filter
    on string arrays.

    The key is percent-encoded so that a '=' inside it cannot shift the
    boundary between key and value. Terms are only ever compared, never
    parsed back; the tag map itself is stored alongside them.
    """
    return f"{quote(key, safe='')}={value}"


def tag_terms(tags: Dict[str, List[str]]) -> List[str]:
    return [tag_term(key, value) for key, values in tags.items() for value in values]
