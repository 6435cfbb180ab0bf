"""Strict validation of ``<book-data>`` blocks in completed answers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, ValidationError

_BLOCK_RE = re.compile(r"<book-data>([\s\S]*?)</book-data>")


class BookSchema(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    grade: str = Field(..., pattern=r"^[A-F][+-]?$")
    sensuality: Literal["Burning", "Hot", "Warm", "Subtle", "Kisses"]
    bookTypes: List[str] = Field(..., min_length=1)
    asin: str = Field(..., pattern=r"^[0-9A-Z]{10}$")
    reviewUrl: HttpUrl
    featuredImage: str = ""
    synopsis: Optional[str] = None


class BookDataSchema(BaseModel):
    books: List[BookSchema] = Field(..., min_length=1)


@dataclass(frozen=True)
class BookDataValidation:
    is_valid: bool
    data: BookDataSchema | None = None
    error: str | None = None


def validate_book_data(content: str) -> BookDataValidation:
    """Check the first structured block of ``content`` against the review schema."""

    match = _BLOCK_RE.search(content)
    if not match:
        return BookDataValidation(is_valid=False, error="Missing book-data structure")
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        return BookDataValidation(is_valid=False, error=f"Invalid book data: {exc.msg}")
    try:
        data = BookDataSchema.model_validate(payload)
    except ValidationError as exc:
        messages = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]
        return BookDataValidation(is_valid=False, error=", ".join(messages))
    return BookDataValidation(is_valid=True, data=data)


def format_validation_error(error: str) -> str:
    return f"⚠️ Response validation failed: {error}. This has been logged for improvement."
