"""Shared domain models used across the Minerva pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence
from uuid import uuid4

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """One turn of a conversation."""

    role: Role
    content: str
    id: str = field(default_factory=lambda: uuid4().hex)


@dataclass(frozen=True)
class RetrievedDocument:
    """Review document returned from the vector index during retrieval."""

    content: str
    score: float
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewComment:
    """Reader comment attached to a review."""

    author: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"author": self.author, "content": self.content}


@dataclass(frozen=True)
class NormalizedBook:
    """Canonical per-book record derived from raw review metadata."""

    title: str
    author: str
    grade: str = ""
    sensuality: str = ""
    book_types: tuple[str, ...] = ()
    asin: str = ""
    review_url: str = ""
    post_id: str = ""
    featured_image: str = ""
    reviewer_name: str = ""
    publish_date: str = ""
    comments: tuple[ReviewComment, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.title}-{self.author}"

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase shape used inside ``<book-data>`` blocks."""

        return {
            "title": self.title,
            "author": self.author,
            "grade": self.grade,
            "sensuality": self.sensuality,
            "bookTypes": list(self.book_types),
            "asin": self.asin,
            "reviewUrl": self.review_url,
            "postId": self.post_id,
            "featuredImage": self.featured_image,
            "reviewerName": self.reviewer_name,
            "publishDate": self.publish_date,
            "commentCount": len(self.comments),
            "comments": [comment.to_dict() for comment in self.comments],
        }


@dataclass(frozen=True)
class ProcessedContent:
    """Render-ready view of a streamed assistant message."""

    books: Sequence[NormalizedBook]
    content: str
    error: str | None = None
    ready: bool = True


@dataclass(frozen=True)
class ReviewRecord:
    """A review to be written into the review index."""

    post_id: str
    title: str
    author_name: str
    content: str
    grade: str = ""
    sensuality: str = ""
    book_types: Sequence[str] = ()
    asin: str = ""
    url: str = ""
    featured_image: str = ""
    reviewer_name: str = ""
    publish_date: str = ""
    comments: Sequence[ReviewComment] = ()
