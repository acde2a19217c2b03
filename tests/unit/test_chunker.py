import pytest
from pydantic import ValidationError

from chat_orchestrator.config import ChunkingConfig
from chat_orchestrator.ingest.chunker import TextChunker


def test_windows_overlap_and_cover_the_text() -> None:
    chunker = TextChunker(ChunkingConfig(chunk_size=100, overlap=20))
    text = "a" * 250

    chunks = chunker.split(text)

    assert [(chunk.start, chunk.end) for chunk in chunks] == [(0, 100), (80, 180), (160, 250)]
    assert all(chunk.content == text[chunk.start : chunk.end].strip() for chunk in chunks)
    assert [chunk.index for chunk in chunks] == [0, 1, 2]
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start < previous.end


def test_chunk_snaps_to_late_sentence_break() -> None:
    chunker = TextChunker(ChunkingConfig(chunk_size=100, overlap=20))
    text = "x" * 70 + "." + "y" * 100

    first = chunker.split(text)[0]

    assert first.end == 71
    assert first.content.endswith(".")


def test_early_break_is_ignored() -> None:
    chunker = TextChunker(ChunkingConfig(chunk_size=100, overlap=20))
    text = "x" * 30 + "." + "y" * 200

    assert chunker.split(text)[0].end == 100


def test_short_and_empty_text() -> None:
    chunker = TextChunker()

    assert chunker.split("") == []
    single = chunker.split("One short paragraph.")
    assert len(single) == 1
    assert single[0].token_count > 0


def test_overlap_must_be_smaller_than_chunk_size() -> None:
    with pytest.raises(ValidationError):
        ChunkingConfig(chunk_size=100, overlap=100)


def test_break_exactly_at_the_window_edge_is_used() -> None:
    chunker = TextChunker(ChunkingConfig(chunk_size=100, overlap=20))
    text = "x" * 100 + "." + "y" * 100

    first = chunker.split(text)[0]

    assert first.end == 101
    assert first.content.endswith(".")
