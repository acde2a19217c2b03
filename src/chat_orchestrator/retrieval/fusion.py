"""Fusion of per-source retrieval results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from chat_orchestrator.types import SearchResult


class FusionStrategy(ABC):
    """Combines result lists from several sources into one ranking."""

    @abstractmethod
    def fuse(
        self, source_results: Mapping[str, Sequence[SearchResult]], limit: int
    ) -> list[SearchResult]:
        """Return at most `limit` results, best first."""


class FlatFusion(FusionStrategy):
    """Concatenate, sort by raw similarity, truncate.

    Scores are compared as-is across sources; nothing is re-normalized, so the
    sources must share one embedding model and distance metric. Ties keep
    source order (documents before knowledge base when passed that way).
    """

    def fuse(
        self, source_results: Mapping[str, Sequence[SearchResult]], limit: int
    ) -> list[SearchResult]:
        merged = [result for results in source_results.values() for result in results]
        merged.sort(key=lambda result: result.similarity, reverse=True)
        return merged[:limit]
