"""Incremental parsing of streamed assistant answers.

The whole buffer is re-processed on every update. Answers are a few KB at
most, so re-parsing is cheap; this would need revisiting for long outputs.
"""

from __future__ import annotations

import json
import re
from typing import Any

from minerva.metrics.observability import get_logger
from minerva.models import NormalizedBook, ProcessedContent
from minerva.retrieval.normalizer import normalize_book
from minerva.services.prompts import BOOK_DATA_CLOSE, BOOK_DATA_OPEN
from minerva.ui.render import markdown_to_html

RESPONSE_MARKER = "---RESPONSE-START---"
PROCESSING_FAILED = "processing failed"

_BLOCK_RE = re.compile(re.escape(BOOK_DATA_OPEN) + r"([\s\S]*?)" + re.escape(BOOK_DATA_CLOSE))
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")

LOGGER = get_logger("ui.parser")


def strip_marker(text: str) -> str:
    """Drop everything up to and including the response marker, when present."""

    _, found, rest = text.partition(RESPONSE_MARKER)
    return rest if found else text


def is_ready(text: str) -> bool:
    """Return ``False`` while the buffer is an unfinished structured block."""

    trimmed = text.strip()
    if BOOK_DATA_CLOSE in trimmed:
        return True
    return not (trimmed.startswith("{") or trimmed.startswith(BOOK_DATA_OPEN))


def repair_braces(payload: str) -> str:
    """Collapse doubled braces leaked from the escaped prompt template."""

    return payload.replace("{{", "{").replace("}}", "}")


def parse_block(payload: str) -> dict[str, Any]:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        data = json.loads(repair_braces(payload))
    if not isinstance(data, dict):
        raise ValueError("book-data payload is not an object")
    return data


def books_from_payload(data: dict[str, Any]) -> list[NormalizedBook]:
    entries = data.get("books")
    if not isinstance(entries, list):
        return []
    books: list[NormalizedBook] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        book = normalize_book(entry, min_descriptive_fields=0)
        if book is not None:
            books.append(book)
    return books


def extract_books(text: str) -> tuple[list[NormalizedBook], str]:
    """Return books from every complete block and the text with all blocks removed."""

    books: dict[str, NormalizedBook] = {}
    for match in _BLOCK_RE.finditer(text):
        try:
            parsed = books_from_payload(parse_block(match.group(1)))
        except (ValueError, TypeError) as exc:
            LOGGER.debug("parser.block_skipped", error=repr(exc))
            continue
        for book in parsed:
            books.setdefault(book.key, book)
    prose = _BLOCK_RE.sub("", text)
    # A block still being streamed is never shown as prose.
    open_at = prose.find(BOOK_DATA_OPEN)
    if open_at != -1:
        prose = prose[:open_at]
    prose = _EXCESS_NEWLINES_RE.sub("\n\n", prose)
    return list(books.values()), prose.strip()


def process_content(raw: str) -> ProcessedContent:
    """Turn the current answer buffer into books plus HTML prose."""

    try:
        text = strip_marker(raw or "")
        if not is_ready(text):
            return ProcessedContent(books=[], content="", ready=False)
        books, prose = extract_books(text)
        return ProcessedContent(books=books, content=markdown_to_html(prose))
    except Exception as exc:
        LOGGER.warning("parser.failed", error=repr(exc))
        return ProcessedContent(books=[], content=raw, error=PROCESSING_FAILED)
