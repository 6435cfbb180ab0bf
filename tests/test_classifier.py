from __future__ import annotations

import pytest

from minerva.services.classifier import PROFILES, QueryType, classify_query, profile_for


@pytest.mark.parametrize(
    ("question", "expected"),
    [
        ("Can you recommend something like Outlander?", QueryType.RECOMMENDATION),
        ("What are the latest reviews?", QueryType.LATEST_REVIEWS),
        ("What do readers say in the comments about The Duke and I?", QueryType.READER_FEEDBACK),
        ("Tell me about Book X by Author Y", QueryType.BOOK_ANALYSIS),
        ("Which tropes are popular this year?", QueryType.TREND_ANALYSIS),
        ("Hello there", QueryType.GENERAL),
        ("", QueryType.GENERAL),
    ],
)
def test_classify_query_labels(question: str, expected: QueryType):
    assert classify_query(question) is expected


def test_classification_is_case_insensitive_and_deterministic():
    assert classify_query("RECOMMEND me a regency") is QueryType.RECOMMENDATION
    assert {classify_query("Show me recent historicals") for _ in range(5)} == {QueryType.LATEST_REVIEWS}


def test_first_matching_label_wins():
    assert classify_query("Recommend the latest historical romances") is QueryType.RECOMMENDATION
    assert classify_query("Latest comments from readers") is QueryType.LATEST_REVIEWS
    assert classify_query("What do readers think about the plot?") is QueryType.READER_FEEDBACK


def test_keywords_match_at_word_start_only():
    # "unpopular" holds "popular" mid-word
    assert classify_query("An unpopular opinion") is QueryType.GENERAL


def test_profiles_cover_every_label():
    assert set(PROFILES) == set(QueryType)
    assert (profile_for(QueryType.RECOMMENDATION).retrieval_count, profile_for(QueryType.RECOMMENDATION).max_books) == (8, 5)
    assert (profile_for(QueryType.LATEST_REVIEWS).retrieval_count, profile_for(QueryType.LATEST_REVIEWS).max_books) == (6, 5)
    assert (profile_for(QueryType.READER_FEEDBACK).retrieval_count, profile_for(QueryType.READER_FEEDBACK).max_books) == (4, 2)
    assert (profile_for(QueryType.BOOK_ANALYSIS).retrieval_count, profile_for(QueryType.BOOK_ANALYSIS).max_books) == (5, 3)
    assert (profile_for(QueryType.TREND_ANALYSIS).retrieval_count, profile_for(QueryType.TREND_ANALYSIS).max_books) == (10, 6)
    assert (profile_for(QueryType.GENERAL).retrieval_count, profile_for(QueryType.GENERAL).max_books) == (4, 3)
