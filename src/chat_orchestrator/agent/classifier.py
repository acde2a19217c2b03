"""Rule-based query classification for routing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

DETECTORS: dict[str, re.Pattern[str]] = {
    "calculator": re.compile(
        r"\d+(?:\.\d+)?\s*[-+*/×÷^%]\s*\(?\s*\d"
        r"|\b(?:calculate|compute|evaluate|sqrt|square root|percent of)\b",
        re.IGNORECASE,
    ),
    "weather": re.compile(
        r"\b(?:weather|temperature|forecast|raining|humidity)\b", re.IGNORECASE
    ),
    "time": re.compile(
        r"\b(?:what time|current time|time in|time is it|timezone|today's date"
        r"|what(?:'s| is) the date)\b",
        re.IGNORECASE,
    ),
    "search": re.compile(
        r"\b(?:search|look up|lookup|google|latest news|news about"
        r"|find (?:information|info|news))\b",
        re.IGNORECASE,
    ),
    "uuid": re.compile(
        r"\b(?:uuids?|guids?|nanoid|unique ids?|identifiers?|generate (?:an? )?ids?)\b",
        re.IGNORECASE,
    ),
}

META_PATTERN = re.compile(
    r"\bwhat (?:tools|capabilities|functions)\b"
    r"|\bwhich tools\b"
    r"|\bwhat can you do\b"
    r"|\b(?:list|show)(?: me)? (?:your |the |all |available )*tools\b"
    r"|\btools (?:do you have|are available)\b",
    re.IGNORECASE,
)

_CONJUNCTION = re.compile(r"\b(?:and|also|then|plus|as well as)\b", re.IGNORECASE)
_COUNT_OR_ORDINAL = re.compile(
    r"\b(?:both|two|three|first|second|third|finally|\d+\s+(?:things|tasks|questions))\b",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class Classification:
    is_meta: bool = False
    tool_signals: tuple[str, ...] = ()
    multi_tool: bool = False

    @property
    def needs_tools(self) -> bool:
        return bool(self.tool_signals)


class QueryClassifier(Protocol):
    def classify(self, text: str) -> Classification: ...


class HeuristicClassifier:
    """Keyword and pattern detectors, one per tool family."""

    def __init__(self, detectors: dict[str, re.Pattern[str]] | None = None) -> None:
        self.detectors = detectors if detectors is not None else DETECTORS

    def classify(self, text: str) -> Classification:
        if META_PATTERN.search(text):
            return Classification(is_meta=True)

        match_counts = {
            name: len(pattern.findall(text)) for name, pattern in self.detectors.items()
        }
        signals = tuple(name for name, count in match_counts.items() if count)
        total_matches = sum(match_counts.values())
        multi_tool = bool(signals) and (
            (bool(_CONJUNCTION.search(text)) and total_matches >= 2)
            or bool(_COUNT_OR_ORDINAL.search(text))
        )
        return Classification(tool_signals=signals, multi_tool=multi_tool)
