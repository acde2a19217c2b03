"""Fixed-window chunking with sentence/paragraph boundary snapping."""

from __future__ import annotations

from chat_orchestrator.config import ChunkingConfig
from chat_orchestrator.obs.tracing import estimate_token_count
from chat_orchestrator.types import TextChunk


class TextChunker:
    """Splits cleaned text into overlapping character windows.

    Each window is `chunk_size` characters. If the last sentence or paragraph
    break inside the window lies beyond `break_ratio` of the window, the chunk
    ends just after that break; otherwise it is cut at the raw offset. The next
    chunk starts `overlap` characters before the previous end.

    Offsets are kept on every chunk, so `text[chunk.start:chunk.end]` is the raw
    slice the chunk was taken from (its `content` is that slice stripped).
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def split(self, text: str) -> list[TextChunk]:
        size = self.config.chunk_size
        overlap = self.config.overlap
        min_break = size * self.config.break_ratio
        length = len(text)

        chunks: list[TextChunk] = []
        start = 0
        while start < length:
            end = min(start + size, length)
            if end < length:
                # The character at the raw cut may itself be the break.
                window = text[start : end + 1]
                break_point = max(window.rfind("."), window.rfind("\n"))
                if break_point > min_break:
                    end = start + break_point + 1

            content = text[start:end].strip()
            if content:
                chunks.append(
                    TextChunk(
                        index=len(chunks),
                        content=content,
                        start=start,
                        end=end,
                        token_count=estimate_token_count(content),
                    )
                )
            if end >= length:
                break
            # Always advance, even if a short snapped window is shorter than the overlap.
            start = max(end - overlap, start + 1)
        return chunks
