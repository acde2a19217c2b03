"""Text extraction strategies and the fallback cascade that runs them.

PDFs go through three strategies in order: strict pypdf parsing, lenient
layout-mode parsing, then the render-to-image placeholder (only when enabled).
Other formats have a single strategy. When every strategy fails the collected
errors are classified into one `IngestionFailure` with remediation hints.
"""

from __future__ import annotations

import io
import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import PurePath
from typing import Any

from pypdf import PdfReader
from pypdf.errors import DependencyError, FileNotDecryptedError, PdfReadError

from chat_orchestrator.config import IngestConfig
from chat_orchestrator.errors import ExtractionError, IngestionExhaustedError, IngestionFailure
from chat_orchestrator.types import Attachment, ParsedDocument

logger = logging.getLogger(__name__)

SCANNED_PDF_NOTICE = (
    "[This appears to be a scanned PDF. Text extraction from images is not yet implemented.]"
)

_PDF_HEADER = re.compile(rb"%PDF-(\d+)\.(\d+)")
_MAX_SUPPORTED_MAJOR = 2

REMEDIATION: dict[IngestionFailure, tuple[str, list[str]]] = {
    IngestionFailure.CORRUPT: (
        "The PDF file appears to be corrupted or has compatibility issues.",
        [
            "Re-save the PDF from the original application",
            'Use "Save As" instead of "Export" when creating the PDF',
            "Convert the PDF with another PDF tool and upload it again",
            "Check that the PDF opens correctly in other applications",
        ],
    ),
    IngestionFailure.PASSWORD: (
        "The PDF is password-protected or encrypted.",
        [
            "Remove password protection from the PDF",
            "Use a PDF tool to unlock the document",
            "Export the PDF again without security settings",
        ],
    ),
    IngestionFailure.UNSUPPORTED_VERSION: (
        "The PDF uses a version or feature set that could not be read.",
        [
            "Re-save the PDF in a compatible format (PDF 1.4 to 1.7)",
            "Print the document to a new PDF",
        ],
    ),
    IngestionFailure.RESOURCE: (
        "The file is too large or complex to process.",
        [
            "Reduce the file size by compressing images",
            "Split the document into smaller sections",
            "Send fewer pages at a time",
        ],
    ),
    IngestionFailure.NO_TEXT: (
        "No readable text was found in the file.",
        [
            "If this is a scanned document, run it through OCR first",
            "Send the content as text or a text-based PDF",
        ],
    ),
    IngestionFailure.UNSUPPORTED_FORMAT: (
        "This file type is not supported.",
        ["Send a PDF, plain text, markdown or JSON file"],
    ),
    IngestionFailure.UNKNOWN: (
        "The document could not be processed.",
        [
            "Try re-saving the file in a compatible format",
            "Check whether the file opens in other applications",
        ],
    ),
}

_PRIORITY = [
    IngestionFailure.PASSWORD,
    IngestionFailure.UNSUPPORTED_VERSION,
    IngestionFailure.RESOURCE,
    IngestionFailure.CORRUPT,
    IngestionFailure.NO_TEXT,
    IngestionFailure.UNSUPPORTED_FORMAT,
    IngestionFailure.UNKNOWN,
]


class ExtractionStrategy(ABC):
    """One way of turning raw bytes into text."""

    name: str = "base"

    @abstractmethod
    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        """Return extracted text or raise. Empty text must raise."""


class PdfStrictStrategy(ExtractionStrategy):
    name = "pypdf-strict"
    strict = True

    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        if self.strict:
            _check_header_version(data)
        reader = PdfReader(io.BytesIO(data), strict=self.strict)
        _ensure_decrypted(reader)

        total_pages = len(reader.pages)
        pages = reader.pages[: config.max_pages]
        texts = [self._page_text(page) for page in pages]
        text = "\n\n".join(part for part in texts if part)
        if not text.strip():
            raise ExtractionError("PDF has no extractable text", IngestionFailure.NO_TEXT)

        info = reader.metadata
        return ParsedDocument(
            text=text,
            metadata={
                "title": _info_field(info, "title"),
                "author": _info_field(info, "author"),
                "pages": total_pages,
                "pages_processed": len(texts),
                "has_images": any(_has_images(page) for page in pages),
            },
        )

    def _page_text(self, page: Any) -> str:
        return page.extract_text() or ""


class PdfLayoutStrategy(PdfStrictStrategy):
    """Lenient parser settings plus layout-mode text extraction."""

    name = "pypdf-layout"
    strict = False

    def _page_text(self, page: Any) -> str:
        return page.extract_text(extraction_mode="layout") or ""


class PdfImagePlaceholderStrategy(ExtractionStrategy):
    """Render-to-image fallback; returns a notice instead of running OCR."""

    name = "image-conversion"

    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        if not config.enable_image_conversion:
            raise ExtractionError("PDF image conversion is disabled")
        reader = PdfReader(io.BytesIO(data), strict=False)
        _ensure_decrypted(reader)
        return ParsedDocument(
            text=SCANNED_PDF_NOTICE,
            metadata={
                "title": None,
                "author": None,
                "pages": len(reader.pages),
                "pages_processed": min(len(reader.pages), config.max_pages),
                "has_images": True,
            },
        )


class PlainTextStrategy(ExtractionStrategy):
    name = "text"

    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        text = data.decode("utf-8", errors="replace")
        if not text.strip():
            raise ExtractionError("File is empty", IngestionFailure.NO_TEXT)
        return ParsedDocument(text=text, metadata={"format": self.name})


class MarkdownStrategy(PlainTextStrategy):
    name = "markdown"


class JsonStrategy(ExtractionStrategy):
    """JSON with deterministic normalization."""

    name = "json"

    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        try:
            payload: Any = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ExtractionError(f"Invalid JSON: {exc}", IngestionFailure.CORRUPT) from exc
        if isinstance(payload, dict):
            text = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
            metadata: dict[str, Any] = {"format": "json", "keys": sorted(payload.keys())}
        elif isinstance(payload, list):
            text = json.dumps(payload, ensure_ascii=False, indent=2)
            metadata = {"format": "json", "length": len(payload)}
        else:
            text = str(payload)
            metadata = {"format": "json"}
        if not text.strip():
            raise ExtractionError("JSON document is empty", IngestionFailure.NO_TEXT)
        return ParsedDocument(text=text, metadata=metadata)


class ImageCaptionStrategy(ExtractionStrategy):
    """Images contribute only their caption; no OCR is performed."""

    name = "image-caption"

    def __init__(self, caption: str | None) -> None:
        self.caption = caption

    def extract(self, data: bytes, config: IngestConfig) -> ParsedDocument:
        if not self.caption or not self.caption.strip():
            raise ExtractionError("Image has no caption text", IngestionFailure.NO_TEXT)
        return ParsedDocument(text=self.caption, metadata={"format": "image", "has_images": True})


def pdf_strategies() -> list[ExtractionStrategy]:
    return [PdfStrictStrategy(), PdfLayoutStrategy(), PdfImagePlaceholderStrategy()]


def detect_format(attachment: Attachment) -> str:
    """Return one of pdf, text, markdown, json, image or unsupported."""
    mimetype = (attachment.mimetype or "").lower()
    suffix = PurePath(attachment.filename or "").suffix.lower()
    if attachment.kind == "image" or mimetype.startswith("image/"):
        return "image"
    if mimetype == "application/pdf" or suffix == ".pdf" or attachment.data.startswith(b"%PDF-"):
        return "pdf"
    if mimetype == "application/json" or suffix == ".json":
        return "json"
    if mimetype in {"text/markdown", "text/x-markdown"} or suffix in {".md", ".markdown"}:
        return "markdown"
    if mimetype.startswith("text/") or suffix in {".txt", ".log", ".csv"}:
        return "text"
    return "unsupported"


def strategies_for(attachment: Attachment) -> list[ExtractionStrategy]:
    fmt = detect_format(attachment)
    if fmt == "pdf":
        return pdf_strategies()
    if fmt == "json":
        return [JsonStrategy()]
    if fmt == "markdown":
        return [MarkdownStrategy()]
    if fmt == "text":
        return [PlainTextStrategy()]
    if fmt == "image":
        return [ImageCaptionStrategy(attachment.caption)]
    return []


def run_cascade(
    strategies: Sequence[ExtractionStrategy], data: bytes, config: IngestConfig
) -> ParsedDocument:
    """Try each strategy in order; the first that returns text wins.

    The winning strategy name is recorded as `parsing_method`. Raises
    `IngestionExhaustedError` with every attempt's error when all fail.
    """
    attempts: list[tuple[str, BaseException]] = []
    for strategy in strategies:
        try:
            document = strategy.extract(data, config)
        except Exception as exc:
            logger.warning(
                "Extraction strategy %s failed: %s",
                strategy.name,
                exc,
                extra={"strategy": strategy.name},
            )
            attempts.append((strategy.name, exc))
            continue
        document.metadata["parsing_method"] = strategy.name
        if attempts:
            logger.info(
                "Extraction succeeded with fallback strategy %s after %d failure(s)",
                strategy.name,
                len(attempts),
            )
        return document
    raise IngestionExhaustedError(attempts)


def classify_failure(errors: Sequence[BaseException]) -> IngestionFailure:
    """Pick the most specific category among all strategy errors."""
    found = {categorize_error(error) for error in errors}
    for category in _PRIORITY:
        if category in found:
            return category
    return IngestionFailure.UNKNOWN


def categorize_error(error: BaseException) -> IngestionFailure:
    category = getattr(error, "category", None)
    if isinstance(category, IngestionFailure):
        return category
    if isinstance(error, FileNotDecryptedError):
        return IngestionFailure.PASSWORD
    if isinstance(error, MemoryError):
        return IngestionFailure.RESOURCE

    message = str(error).lower()
    if "password" in message or "encrypt" in message or "decrypt" in message:
        return IngestionFailure.PASSWORD
    if "unsupported" in message and "version" in message:
        return IngestionFailure.UNSUPPORTED_VERSION
    if "memory" in message or "heap" in message:
        return IngestionFailure.RESOURCE
    if any(
        keyword in message
        for keyword in ("invalid pdf", "pdf structure", "bad xref", "xref", "eof marker", "header")
    ):
        return IngestionFailure.CORRUPT
    if isinstance(error, PdfReadError):
        return IngestionFailure.CORRUPT
    return IngestionFailure.UNKNOWN


def diagnostic_for(category: IngestionFailure) -> tuple[str, list[str]]:
    headline, hints = REMEDIATION[category]
    return headline, list(hints)


def format_diagnostic(category: IngestionFailure) -> str:
    headline, hints = REMEDIATION[category]
    return headline + "\n\nTry these solutions:\n" + "\n".join(f"• {hint}" for hint in hints)


def _check_header_version(data: bytes) -> None:
    match = _PDF_HEADER.search(data[:1024])
    if match is None:
        raise ExtractionError("Invalid PDF structure: missing %PDF header", IngestionFailure.CORRUPT)
    major = int(match.group(1))
    if major > _MAX_SUPPORTED_MAJOR:
        raise ExtractionError(
            f"Unsupported PDF version {match.group(1).decode()}.{match.group(2).decode()}",
            IngestionFailure.UNSUPPORTED_VERSION,
        )


def _ensure_decrypted(reader: PdfReader) -> None:
    if not reader.is_encrypted:
        return
    try:
        decrypted = reader.decrypt("")
    except (PdfReadError, DependencyError, NotImplementedError) as exc:
        raise ExtractionError(f"PDF is encrypted: {exc}", IngestionFailure.PASSWORD) from exc
    if not decrypted:
        raise ExtractionError("PDF is password-protected", IngestionFailure.PASSWORD)


def _info_field(info: Any, name: str) -> str | None:
    if info is None:
        return None
    value = getattr(info, name, None)
    return str(value) if value else None


def _has_images(page: Any) -> bool:
    try:
        return len(page.images) > 0
    except (PdfReadError, KeyError, ValueError):
        return False
