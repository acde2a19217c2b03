"""Post-extraction text normalization."""

from __future__ import annotations

import re
from collections import Counter

TRUNCATION_MARKER = "\n\n[Content truncated due to length...]"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_PAGE_NUMBER_LINE = re.compile(
    r"^\s*(?:page\s+\d+(?:\s*(?:of|/)\s*\d+)?|-\s*\d+\s*-|\d+\s*/\s*\d+)\s*$",
    re.IGNORECASE,
)
# Running footers such as "Annual Report - Page 3".
_PAGE_LABEL_LINE = re.compile(r"^.{0,100}Page \d+.{0,100}$")
_INLINE_SPACES = re.compile(r"[ \t\f\v]+")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")

# Short lines seen at least this often are treated as running headers/footers.
_FURNITURE_MIN_REPEATS = 3
_FURNITURE_MAX_LENGTH = 80


def strip_control_characters(text: str) -> str:
    return _CONTROL_CHARS.sub("", text.replace("\r\n", "\n").replace("\r", "\n"))


def remove_page_furniture(text: str) -> str:
    """Drop page-number lines, "Page N" footers and short lines repeated across pages."""
    lines = text.split("\n")
    counts = Counter(
        line.strip()
        for line in lines
        if line.strip() and len(line.strip()) <= _FURNITURE_MAX_LENGTH
    )
    recurring = {line for line, count in counts.items() if count >= _FURNITURE_MIN_REPEATS}
    kept = [
        line
        for line in lines
        if not _PAGE_NUMBER_LINE.match(line)
        and not _PAGE_LABEL_LINE.match(line)
        and line.strip() not in recurring
    ]
    return "\n".join(kept)


def collapse_whitespace(text: str) -> str:
    lines = [_INLINE_SPACES.sub(" ", line).strip() for line in text.split("\n")]
    return _EXTRA_NEWLINES.sub("\n\n", "\n".join(lines)).strip()


def truncate(text: str, max_length: int) -> tuple[str, bool]:
    if len(text) <= max_length:
        return text, False
    return text[:max_length] + TRUNCATION_MARKER, True


def clean_text(text: str, *, remove_furniture: bool = True) -> str:
    text = strip_control_characters(text)
    if remove_furniture:
        text = remove_page_furniture(text)
    return collapse_whitespace(text)
