"""Text extraction for uploaded files.

Dispatch goes through a closed table keyed by :class:`DocumentFormat`. Formats
without a real parser return a fixed placeholder naming the format, so every
branch has the same ``(text, method)`` shape and a caller never sees an
exception for unreadable content.
"""
from __future__ import annotations

import enum
import io
import logging
import mimetypes
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from functools import partial
from typing import Callable

from ..core.config import settings

logger = logging.getLogger(__name__)

FAILED_SUFFIX = "_failed"
TIMEOUT_METHOD = "extraction_timeout"


class DocumentFormat(str, enum.Enum):
    """Normalized formats understood by the extractor."""

    TEXT = "text"
    HTML = "html"
    PDF = "pdf"
    DOCX = "docx"
    DOC = "doc"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    MEDIA = "media"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ExtractionResult:
    """Normalized text plus the tag of the strategy that produced it."""

    text: str
    method: str
    ok: bool


_MIME_FORMATS: dict[str, DocumentFormat] = {
    "text/plain": DocumentFormat.TEXT,
    "text/markdown": DocumentFormat.TEXT,
    "text/x-markdown": DocumentFormat.TEXT,
    "text/csv": DocumentFormat.TEXT,
    "application/csv": DocumentFormat.TEXT,
    "application/json": DocumentFormat.TEXT,
    "text/html": DocumentFormat.HTML,
    "application/xhtml+xml": DocumentFormat.HTML,
    "application/pdf": DocumentFormat.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "application/msword": DocumentFormat.DOC,
    "application/vnd.ms-excel": DocumentFormat.SPREADSHEET,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentFormat.SPREADSHEET,
    "application/vnd.ms-powerpoint": DocumentFormat.PRESENTATION,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": DocumentFormat.PRESENTATION,
}

_EXTENSION_FORMATS: dict[str, DocumentFormat] = {
    "txt": DocumentFormat.TEXT,
    "md": DocumentFormat.TEXT,
    "markdown": DocumentFormat.TEXT,
    "csv": DocumentFormat.TEXT,
    "json": DocumentFormat.TEXT,
    "html": DocumentFormat.HTML,
    "htm": DocumentFormat.HTML,
    "pdf": DocumentFormat.PDF,
    "docx": DocumentFormat.DOCX,
    "doc": DocumentFormat.DOC,
    "xls": DocumentFormat.SPREADSHEET,
    "xlsx": DocumentFormat.SPREADSHEET,
    "ppt": DocumentFormat.PRESENTATION,
    "pptx": DocumentFormat.PRESENTATION,
}

_MEDIA_PREFIXES = ("image/", "audio/", "video/")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0e-\x1f\x7f-\x9f]")
_HORIZONTAL_WHITESPACE = re.compile(r"[ \t\f\v\u00a0]+")
_SPACED_NEWLINES = re.compile(r" *\n *")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="extract")


def detect_format(
    filename: str | None, data: bytes = b"", content_type: str | None = None
) -> DocumentFormat:
    """Resolve the format from the declared type, then the extension, then magic bytes."""

    declared = _normalize_mime(content_type)
    if declared and declared != "application/octet-stream":
        if declared in _MIME_FORMATS:
            return _MIME_FORMATS[declared]
        if declared.startswith(_MEDIA_PREFIXES):
            return DocumentFormat.MEDIA

    name = (filename or "").strip().lower()
    extension = name.rsplit(".", 1)[-1] if "." in name else ""
    if extension in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[extension]

    guessed, _ = mimetypes.guess_type(name)
    guessed = _normalize_mime(guessed)
    if guessed in _MIME_FORMATS:
        return _MIME_FORMATS[guessed]
    if guessed and guessed.startswith(_MEDIA_PREFIXES):
        return DocumentFormat.MEDIA
    if guessed and guessed.startswith("text/"):
        return DocumentFormat.TEXT

    if data.startswith(b"%PDF-"):
        return DocumentFormat.PDF
    return DocumentFormat.UNKNOWN


def extract(
    filename: str | None, data: bytes, *, content_type: str | None = None
) -> ExtractionResult:
    """Extract normalized text from ``data`` using the strategy for its format."""

    label = filename or "document"
    document_format = detect_format(filename, data, content_type)
    strategy = _STRATEGIES.get(document_format, _parse_unknown)
    try:
        text, method = strategy(data, label)
    except Exception as exc:
        logger.warning("Extraction of %s as %s failed: %s", label, document_format.value, exc)
        text, method = "", f"{document_format.value}_text"
    return finalize_text(label, text, method)


def finalize_text(label: str, text: str, method: str) -> ExtractionResult:
    """Normalize ``text`` and swap in the failure marker when too little remains."""

    cleaned = normalize_text(text)
    if len(cleaned) < settings.EXTRACTION_MIN_CHARS:
        logger.info(
            "Extraction of %s via %s produced %s characters; recording failure marker",
            label,
            method,
            len(cleaned),
        )
        return _failure(label, f"{method}{FAILED_SUFFIX}")
    return ExtractionResult(text=cleaned, method=method, ok=True)


def extract_with_timeout(
    filename: str | None,
    data: bytes,
    *,
    content_type: str | None = None,
    timeout: float | None = None,
) -> ExtractionResult:
    """Run :func:`extract` without letting a pathological input stall the caller."""

    limit = settings.EXTRACTION_TIMEOUT_SECONDS if timeout is None else timeout
    if detect_format(filename, data, content_type) in _INLINE_FORMATS:
        return extract(filename, data, content_type=content_type)

    started = threading.Event()
    future = _EXECUTOR.submit(_extract_started, started, filename, data, content_type)
    # The limit covers parsing only; queueing behind busy workers has its own bound.
    if not started.wait(limit) and future.cancel():
        logger.warning(
            "Extraction of %s waited %.1fs for a free worker; recording failure marker",
            filename,
            limit,
        )
        return _failure(filename or "document", TIMEOUT_METHOD)
    try:
        return future.result(timeout=limit)
    except FutureTimeoutError:
        future.cancel()
        logger.warning("Extraction of %s exceeded %.1fs; recording failure marker", filename, limit)
        return _failure(filename or "document", TIMEOUT_METHOD)


def _extract_started(
    started: threading.Event, filename: str | None, data: bytes, content_type: str | None
) -> ExtractionResult:
    started.set()
    return extract(filename, data, content_type=content_type)


def failure_marker(filename: str) -> str:
    return f"[Unable to extract meaningful content from {filename}]"


def normalize_text(text: str) -> str:
    """Unify line endings, drop control characters and collapse whitespace."""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n").replace("\ufeff", "")
    normalized = _CONTROL_CHARS.sub("", normalized)
    normalized = _HORIZONTAL_WHITESPACE.sub(" ", normalized)
    normalized = _SPACED_NEWLINES.sub("\n", normalized)
    normalized = _EXCESS_NEWLINES.sub("\n\n", normalized)
    return normalized.strip()


def _failure(label: str, method: str) -> ExtractionResult:
    return ExtractionResult(text=failure_marker(label), method=method, ok=False)


def _normalize_mime(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _placeholder(kind: str, method: str, data: bytes, label: str) -> tuple[str, str]:
    text = (
        f"[{kind}: {label}] The text of this {kind.lower()} was not extracted automatically. "
        "For best results, upload a plain-text (.txt or .md) version of this content."
    )
    return text, method


def _parse_text(data: bytes, label: str) -> tuple[str, str]:
    try:
        return data.decode("utf-8"), "direct_text"
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace"), "direct_text"


def _parse_unknown(data: bytes, label: str) -> tuple[str, str]:
    try:
        return data.decode("utf-8"), "fallback_text"
    except UnicodeDecodeError:
        logger.debug("%s is not valid UTF-8; no text recovered", label)
        return "", "fallback_text"


def _parse_html(data: bytes, label: str) -> tuple[str, str]:
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(data, "html.parser")
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()

    main = soup.find("main") or soup.find("article") or soup.body or soup
    return main.get_text(separator="\n"), "html_text"


def _parse_pdf(data: bytes, label: str) -> tuple[str, str]:
    try:
        import fitz  # type: ignore

        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text("text") for page in doc]
        text = "\n".join(pages).strip()
        if text:
            return text, "pdf_text"
    except Exception as exc:
        logger.warning("PyMuPDF parsing of %s failed, falling back to pdfminer: %s", label, exc)

    try:
        from pdfminer.high_level import extract_text_to_fp

        output = io.StringIO()
        extract_text_to_fp(io.BytesIO(data), output)
        text = output.getvalue().strip()
        if text:
            return text, "pdf_text"
    except Exception as exc:
        logger.warning("pdfminer parsing of %s failed: %s", label, exc)

    return _placeholder("PDF document", "pdf_placeholder", data, label)


def _parse_docx(data: bytes, label: str) -> tuple[str, str]:
    try:
        import docx2txt

        text = docx2txt.process(io.BytesIO(data)) or ""
        if text.strip():
            return text, "docx_text"
    except Exception as exc:
        logger.warning("docx2txt parsing of %s failed: %s", label, exc)
    return _placeholder("Word document", "word_placeholder", data, label)


_Strategy = Callable[[bytes, str], tuple[str, str]]

_STRATEGIES: dict[DocumentFormat, _Strategy] = {
    DocumentFormat.TEXT: _parse_text,
    DocumentFormat.HTML: _parse_html,
    DocumentFormat.PDF: _parse_pdf,
    DocumentFormat.DOCX: _parse_docx,
    DocumentFormat.DOC: partial(_placeholder, "Word document", "word_placeholder"),
    DocumentFormat.SPREADSHEET: partial(_placeholder, "Spreadsheet", "spreadsheet_placeholder"),
    DocumentFormat.PRESENTATION: partial(_placeholder, "Presentation", "presentation_placeholder"),
    DocumentFormat.MEDIA: partial(_placeholder, "Media file", "media_placeholder"),
    DocumentFormat.UNKNOWN: _parse_unknown,
}

# Formats whose strategy is a plain decode or a fixed placeholder run inline.
_INLINE_FORMATS = frozenset(
    {
        DocumentFormat.TEXT,
        DocumentFormat.DOC,
        DocumentFormat.SPREADSHEET,
        DocumentFormat.PRESENTATION,
        DocumentFormat.MEDIA,
        DocumentFormat.UNKNOWN,
    }
)
