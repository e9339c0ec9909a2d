from __future__ import annotations

import threading
import time

import pytest

from backend.knowledge.ingest import extraction
from backend.knowledge.ingest.extraction import (
    DocumentFormat,
    detect_format,
    extract,
    extract_with_timeout,
    failure_marker,
    finalize_text,
    normalize_text,
)


def test_plain_text_is_returned_verbatim() -> None:
    result = extract("note.txt", b"hello world")

    assert result.ok is True
    assert result.text == "hello world"
    assert result.method == "direct_text"


def test_latin1_text_falls_back_without_error() -> None:
    result = extract("legacy.txt", "café au lait, s'il vous plaît".encode("latin-1"))

    assert result.ok is True
    assert result.method == "direct_text"
    assert "caf" in result.text


def test_short_text_becomes_failure_marker() -> None:
    result = extract("tiny.txt", b"hi")

    assert result.ok is False
    assert result.text == "[Unable to extract meaningful content from tiny.txt]"
    assert result.method == "direct_text_failed"


def test_empty_file_yields_marker() -> None:
    result = extract("empty.md", b"")

    assert result.ok is False
    assert result.text == failure_marker("empty.md")


def test_html_strips_scripts_and_keeps_main_content() -> None:
    html = (
        b"<html><head><style>body{}</style><script>var x = 1;</script></head>"
        b"<body><nav>menu</nav><main><h1>Title</h1><p>The quick brown fox.</p></main></body></html>"
    )

    result = extract("page.html", html)

    assert result.method == "html_text"
    assert "The quick brown fox." in result.text
    assert "var x" not in result.text
    assert "menu" not in result.text


@pytest.mark.parametrize(
    ("filename", "method", "label"),
    [
        ("budget.xlsx", "spreadsheet_placeholder", "Spreadsheet"),
        ("deck.pptx", "presentation_placeholder", "Presentation"),
        ("old.doc", "word_placeholder", "Word document"),
        ("photo.png", "media_placeholder", "Media file"),
        ("voice.ogg", "media_placeholder", "Media file"),
    ],
)
def test_formats_without_parser_return_placeholder(filename: str, method: str, label: str) -> None:
    result = extract(filename, b"\x00\x01binary")

    assert result.ok is True
    assert result.method == method
    assert result.text.startswith(f"[{label}: {filename}]")
    assert "plain-text" in result.text


def test_unparseable_pdf_degrades_to_placeholder() -> None:
    result = extract("broken.pdf", b"%PDF-1.4 not really a pdf")

    assert result.method == "pdf_placeholder"
    assert "broken.pdf" in result.text


def test_unparseable_docx_degrades_to_placeholder() -> None:
    result = extract("broken.docx", b"not a zip archive")

    assert result.method == "word_placeholder"


def test_unknown_binary_is_marked_failed() -> None:
    result = extract("blob.bin", b"\xff\xfe\xfa\x00\x81")

    assert result.ok is False
    assert result.method == "fallback_text_failed"


def test_unknown_utf8_is_decoded() -> None:
    result = extract("README", b"plain words without extension")

    assert result.ok is True
    assert result.method == "fallback_text"


def test_strategy_exception_is_absorbed(monkeypatch: pytest.MonkeyPatch) -> None:
    def _explode(data: bytes, label: str) -> tuple[str, str]:
        raise RuntimeError("boom")

    monkeypatch.setitem(extraction._STRATEGIES, DocumentFormat.HTML, _explode)

    result = extract("page.html", b"<p>whatever</p>")

    assert result.ok is False
    assert result.method == "html_text_failed"


def test_normalize_text_collapses_whitespace_and_controls() -> None:
    raw = "\ufeffline one\r\nline\t\t two\x07\r\n\n\n\n  end  "

    assert normalize_text(raw) == "line one\nline two\n\nend"


def test_detect_format_prefers_declared_type() -> None:
    assert detect_format("upload.bin", b"", "application/pdf") is DocumentFormat.PDF
    assert detect_format("clip", b"", "video/mp4") is DocumentFormat.MEDIA
    assert detect_format("notes.MD") is DocumentFormat.TEXT
    assert detect_format("noext", b"%PDF-1.7") is DocumentFormat.PDF
    assert detect_format("noext", b"\x00") is DocumentFormat.UNKNOWN


def test_extraction_timeout_returns_marker(monkeypatch: pytest.MonkeyPatch) -> None:
    def _slow(data: bytes, label: str) -> tuple[str, str]:
        time.sleep(0.5)
        return "late text that is long enough", "direct_text"

    monkeypatch.setitem(extraction._STRATEGIES, DocumentFormat.PDF, _slow)

    result = extract_with_timeout("slow.pdf", b"%PDF-1.4", timeout=0.05)

    assert result.ok is False
    assert result.method == "extraction_timeout"
    assert result.text == failure_marker("slow.pdf")


def _saturate_pool(monkeypatch: pytest.MonkeyPatch, hold: float) -> None:
    def _pdf(data: bytes, label: str) -> tuple[str, str]:
        if label.startswith("slow"):
            time.sleep(hold)
        return "text recovered from the pdf body", "pdf_text"

    monkeypatch.setitem(extraction._STRATEGIES, DocumentFormat.PDF, _pdf)
    callers = [
        threading.Thread(
            target=extract_with_timeout,
            args=(f"slow-{index}.pdf", b"%PDF-1.4"),
            kwargs={"timeout": 0.05},
        )
        for index in range(4)
    ]
    for caller in callers:
        caller.start()
    for caller in callers:
        caller.join()


def test_plain_text_is_not_starved_by_busy_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    _saturate_pool(monkeypatch, hold=0.6)

    result = extract_with_timeout("hello.txt", b"hello world", timeout=0.2)

    assert result.ok is True
    assert result.text == "hello world"
    assert result.method == "direct_text"


def test_queued_extraction_gets_its_full_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    _saturate_pool(monkeypatch, hold=0.3)

    result = extract_with_timeout("fast.pdf", b"%PDF-1.4", timeout=1.0)

    assert result.ok is True
    assert result.method == "pdf_text"


def test_normalize_text_tightens_form_feeds_and_c1_controls() -> None:
    assert normalize_text("page one\x0cpage\x0b two\x85\x9f") == "page one page two"


def test_short_transcript_gets_failure_marker() -> None:
    result = finalize_text("voice.ogg", "ok.", "channel_transcript")

    assert result.ok is False
    assert result.method == "channel_transcript_failed"
    assert result.text == failure_marker("voice.ogg")
