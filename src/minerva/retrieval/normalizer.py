"""Normalization of raw review metadata into canonical book records.

Review metadata in the index drifts between shapes: ``bookTypes`` may be a
list or a comma separated string, comments may be stored as parallel
``commentAuthors``/``commentContents`` lists or nested under ``comments``,
and optional fields are frequently absent. Everything past this module sees
only :class:`~minerva.models.NormalizedBook`.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from minerva.models import NormalizedBook, RetrievedDocument, ReviewComment

_TITLE_KEYS = ("title", "bookTitle")
_AUTHOR_KEYS = ("author", "authorName")
_URL_KEYS = ("reviewUrl", "url")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value).strip()
    return ""


def _first_text(metadata: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = _text(metadata.get(key))
        if value:
            return value
    return ""


def coerce_book_types(value: Any) -> tuple[str, ...]:
    """Return book types as trimmed non-empty strings whatever the source shape."""

    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = [_text(item) for item in value]
    else:
        return ()
    return tuple(part.strip() for part in parts if part and part.strip())


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def extract_comments(metadata: Mapping[str, Any]) -> tuple[ReviewComment, ...]:
    """Zip comment authors and contents, dropping incomplete comments."""

    nested = metadata.get("comments")
    pairs: list[tuple[Any, Any]] = []
    if "commentContents" in metadata or "commentAuthors" in metadata:
        authors = _as_list(metadata.get("commentAuthors"))
        contents = _as_list(metadata.get("commentContents"))
        pairs.extend(
            (authors[index] if index < len(authors) else None, content)
            for index, content in enumerate(contents)
        )
    elif isinstance(nested, Mapping):
        if "latest" in nested:
            for item in _as_list(nested.get("latest")):
                if isinstance(item, Mapping):
                    pairs.append((item.get("commentAuthor"), item.get("commentContent")))
        else:
            authors = _as_list(nested.get("authors"))
            contents = _as_list(nested.get("contents"))
            pairs.extend(
                (authors[index] if index < len(authors) else None, content)
                for index, content in enumerate(contents)
            )
    elif isinstance(nested, (list, tuple)):
        for item in nested:
            if isinstance(item, Mapping):
                pairs.append((item.get("author"), item.get("content")))

    comments: list[ReviewComment] = []
    for raw_author, raw_content in pairs:
        author = _text(raw_author)
        content = _text(raw_content)
        if author and content:
            comments.append(ReviewComment(author=author, content=content))
    return tuple(comments)


def normalize_book(metadata: Mapping[str, Any], *, min_descriptive_fields: int = 1) -> NormalizedBook | None:
    """Build a :class:`NormalizedBook` or return ``None`` when the record is not a valid book.

    A record needs a title and an author, plus at least ``min_descriptive_fields``
    of grade, sensuality and a non-empty book type list. Records failing the
    threshold are usually noise matches.
    """

    title = _first_text(metadata, _TITLE_KEYS)
    author = _first_text(metadata, _AUTHOR_KEYS)
    if not title or not author:
        return None
    book = NormalizedBook(
        title=title,
        author=author,
        grade=_text(metadata.get("grade")),
        sensuality=_text(metadata.get("sensuality")),
        book_types=coerce_book_types(metadata.get("bookTypes")),
        asin=_text(metadata.get("asin")),
        review_url=_first_text(metadata, _URL_KEYS),
        post_id=_text(metadata.get("postId")),
        featured_image=_text(metadata.get("featuredImage")),
        reviewer_name=_text(metadata.get("reviewerName")),
        publish_date=_text(metadata.get("publishDate")),
        comments=extract_comments(metadata),
    )
    descriptive = sum(1 for present in (book.grade, book.sensuality, book.book_types) if present)
    if descriptive < min_descriptive_fields:
        return None
    return book


def normalize_documents(
    documents: Iterable[RetrievedDocument],
    *,
    min_descriptive_fields: int = 1,
) -> dict[str, NormalizedBook]:
    """Return normalized books keyed by ``title-author``; the first occurrence wins."""

    books: dict[str, NormalizedBook] = {}
    for document in documents:
        book = normalize_book(document.metadata, min_descriptive_fields=min_descriptive_fields)
        if book is None or book.key in books:
            continue
        books[book.key] = book
    return books
