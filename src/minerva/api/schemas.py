"""Pydantic models for the Minerva API."""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from minerva.models import ChatMessage, ReviewComment, ReviewRecord


class MessageModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    id: str = Field(default_factory=lambda: uuid4().hex)

    def to_domain(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content, id=self.id)


class ChatRequest(BaseModel):
    messages: List[MessageModel] = Field(..., min_length=1, description="Conversation so far, oldest first")
    user_id: Optional[str] = Field(default=None, description="Caller identity used for rate limiting")


class ErrorResponse(BaseModel):
    error: str
    details: str
    type: Optional[str] = None
    correlation_id: Optional[str] = None


class CommentModel(BaseModel):
    author: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class ReviewIngestionRequest(BaseModel):
    """Payload for indexing one review."""

    post_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    author_name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, description="Review body")
    grade: str = Field(default="", pattern=r"^([A-F][+-]?)?$")
    sensuality: str = ""
    book_types: List[str] = Field(default_factory=list)
    asin: str = ""
    url: str = ""
    featured_image: str = ""
    reviewer_name: str = ""
    publish_date: str = ""
    comments: List[CommentModel] = Field(default_factory=list)

    def to_domain(self) -> ReviewRecord:
        return ReviewRecord(
            post_id=self.post_id.strip(),
            title=self.title.strip(),
            author_name=self.author_name.strip(),
            content=self.content,
            grade=self.grade.strip(),
            sensuality=self.sensuality.strip(),
            book_types=[item.strip() for item in self.book_types if item.strip()],
            asin=self.asin.strip(),
            url=self.url.strip(),
            featured_image=self.featured_image.strip(),
            reviewer_name=self.reviewer_name.strip(),
            publish_date=self.publish_date.strip(),
            comments=[ReviewComment(author=c.author.strip(), content=c.content.strip()) for c in self.comments],
        )


class ReviewIngestionResponse(BaseModel):
    post_id: str
    document_count: int


class IndexStatsResponse(BaseModel):
    index_name: str
    total_reviews: int
