"""Keyword-based intent classification for user queries."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class QueryType(str, Enum):
    RECOMMENDATION = "RECOMMENDATION"
    LATEST_REVIEWS = "LATEST_REVIEWS"
    READER_FEEDBACK = "READER_FEEDBACK"
    BOOK_ANALYSIS = "BOOK_ANALYSIS"
    TREND_ANALYSIS = "TREND_ANALYSIS"
    GENERAL = "GENERAL"


@dataclass(frozen=True)
class QueryProfile:
    """Retrieval breadth and response shape for a query type."""

    retrieval_count: int
    max_books: int
    response_shape: str


# Order is priority: the first label with a matching keyword wins.
_KEYWORDS: tuple[tuple[QueryType, tuple[str, ...]], ...] = (
    (
        QueryType.RECOMMENDATION,
        ("recommend", "suggest", "similar", "books like", "looking for", "what should i read", "read next"),
    ),
    (
        QueryType.LATEST_REVIEWS,
        ("latest", "recent", "newest", "new review", "this week", "this month", "just reviewed"),
    ),
    (
        QueryType.READER_FEEDBACK,
        ("comment", "reader", "feedback", "what do people think", "what did people think", "opinions"),
    ),
    (
        QueryType.BOOK_ANALYSIS,
        ("tell me about", "review of", "analy", "theme", "character", "plot", "explain", "compare"),
    ),
    (
        QueryType.TREND_ANALYSIS,
        ("trend", "popular", "most common", "over time", "pattern", "statistic", "top rated", "best rated"),
    ),
)

_PATTERNS: tuple[tuple[QueryType, re.Pattern[str]], ...] = tuple(
    (label, re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")", re.IGNORECASE))
    for label, words in _KEYWORDS
)

PROFILES: dict[QueryType, QueryProfile] = {
    QueryType.RECOMMENDATION: QueryProfile(
        retrieval_count=8,
        max_books=5,
        response_shape=(
            "FOR RECOMMENDATIONS:\n# Books Similar to [Title]\n\nFor each recommendation add:\n\n"
            "## Why You Might Like [Title]:\n• [2-3 specific similarities based on the review]\n"
            "• [Notable themes or elements]\n• [Grade and reviewer perspective]"
        ),
    ),
    QueryType.LATEST_REVIEWS: QueryProfile(
        retrieval_count=6,
        max_books=5,
        response_shape=(
            "FOR LATEST REVIEWS:\n# Recent Reviews\n\nFor each book:\n## [Title] by [Author]\n"
            "• Grade: [grade] from [reviewer name]\n• Published: [date]\n• [One sentence summary]"
        ),
    ),
    QueryType.READER_FEEDBACK: QueryProfile(
        retrieval_count=4,
        max_books=2,
        response_shape=(
            "FOR READER FEEDBACK:\n# What Readers Say About [Title]\n\n"
            "## Reader Comments ([X] total comments):\n• [Reader name]: \"[exact quote]\"\n\n"
            "If there are no comments, say so plainly."
        ),
    ),
    QueryType.BOOK_ANALYSIS: QueryProfile(
        retrieval_count=5,
        max_books=3,
        response_shape=(
            "FOR BOOK REVIEWS:\n# Review of [Title] by [Author]\n\n## Overview\n"
            "[2-3 sentences summarizing the book and review]\n\n## Review Details\n"
            "• Grade: [grade] from [reviewer name]\n• Published: [date]\n• Sensuality: [rating]\n"
            "• Genre: [book types]\n\n## Key Points\n• [Point 1]\n• [Point 2]\n• [Point 3]\n\n"
            "[ONLY if commentCount > 0:]\n## Reader Comments ([X] total comments):\n"
            "• [Reader name]: \"[exact quote]\""
        ),
    ),
    QueryType.TREND_ANALYSIS: QueryProfile(
        retrieval_count=10,
        max_books=6,
        response_shape=(
            "FOR TREND ANALYSIS:\n# [Trend Summary]\n\n## What the Reviews Show\n"
            "• [Pattern supported by at least two reviewed books]\n• [Grades and sensuality spread]\n\n"
            "## Books Behind This Trend\n• [Title] by [Author] ([grade])"
        ),
    ),
    QueryType.GENERAL: QueryProfile(
        retrieval_count=4,
        max_books=3,
        response_shape=(
            "FOR GENERAL QUESTIONS:\nAnswer briefly using the review context. Use ## headers and "
            "• bullets where they help."
        ),
    ),
}


def classify_query(text: str) -> QueryType:
    """Return the intent label for ``text``."""

    for label, pattern in _PATTERNS:
        if pattern.search(text or ""):
            return label
    return QueryType.GENERAL


def profile_for(query_type: QueryType) -> QueryProfile:
    return PROFILES[query_type]
