"""Tests for token-budget text partitioning."""

import math

import pytest

from memory_vectordb.config import IngestionSettings
from memory_vectordb.errors import ConfigurationError
from memory_vectordb.ingestion import TextPartitioner


@pytest.fixture
def partitioner():
    return TextPartitioner()


@pytest.mark.parametrize("text", ["", "   \n\n  ", None])
def test_blank_text_has_no_chunks(partitioner, text):
    assert partitioner.split(text) == []


def test_short_text_is_one_chunk(partitioner):
    assert partitioner.split("  I like pizza.  ") == ["I like pizza."]


def test_budget_is_measured_in_tokens(partitioner):
    # ~700 tokens but ~4900 characters: fits one 1000-token chunk
    text = " ".join(["memory"] * 700)

    assert partitioner.count_tokens(text) <= 1000
    assert partitioner.split(text) == [text]


def test_paragraphs_are_packed_until_full(partitioner):
    first, second, third = "First paragraph.", "Second one.", "Third paragraph here."
    budget = partitioner.count_tokens(f"{first}\n\n{second}")
    assert partitioner.count_tokens(third) <= budget

    packed = TextPartitioner(max_chunk_tokens=budget, overlap_tokens=0)

    assert packed.split(f"{first}\n\n{second}\n\n{third}") == [f"{first}\n\n{second}", third]


def test_long_paragraph_uses_overlapping_token_windows(partitioner):
    text = " ".join(f"word{i}" for i in range(2000))
    total = partitioner.count_tokens(text)
    assert total > 1000

    chunks = partitioner.split(text)

    assert len(chunks) == 1 + math.ceil((total - 1000) / 900)
    assert chunks[0].startswith("word0 word1")
    assert chunks[-1].endswith("word1999")
    # Consecutive windows share the overlap
    for previous, current in zip(chunks, chunks[1:]):
        assert current.split()[1] in previous.split()


def test_from_settings():
    partitioner = TextPartitioner.from_settings(
        IngestionSettings(max_chunk_tokens=500, overlap_tokens=50)
    )

    assert partitioner.max_chunk_tokens == 500
    assert partitioner.overlap_tokens == 50
    assert partitioner.encoding.name == "cl100k_base"


@pytest.mark.parametrize("max_tokens, overlap", [(0, 0), (100, 100), (100, -1)])
def test_invalid_sizes(max_tokens, overlap):
    with pytest.raises(ConfigurationError):
        TextPartitioner(max_chunk_tokens=max_tokens, overlap_tokens=overlap)
