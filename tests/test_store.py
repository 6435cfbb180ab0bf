from __future__ import annotations

from uuid import uuid4

import chromadb

from minerva.embeddings.service import EmbeddingConfig, HashEmbeddingBackend
from minerva.embeddings.store import ChromaReviewStore, build_review_document, metadata_fields
from minerva.models import ReviewComment, ReviewRecord
from minerva.retrieval.normalizer import normalize_book
from minerva.retrieval.service import RetrievalConfig, ReviewRetriever


def _store() -> ChromaReviewStore:
    backend = HashEmbeddingBackend(EmbeddingConfig(dim=16))
    return ChromaReviewStore(backend, collection_name=f"reviews-{uuid4().hex[:8]}", client=chromadb.EphemeralClient())


def _review(post_id: str, title: str) -> ReviewRecord:
    return ReviewRecord(
        post_id=post_id,
        title=title,
        author_name="Author Y",
        content=f"{title} is a slow-burn second chance romance.",
        grade="B+",
        sensuality="Warm",
        book_types=["Contemporary Romance", "Small Town"],
        comments=[ReviewComment(author="Ann", content="Loved it")],
    )


def test_add_search_and_delete_reviews():
    store = _store()
    store.reset()
    store.add_review(_review("1", "Book X"))
    store.add_review(_review("2", "Book Z"))
    store.add_review(_review("2", "Book Z"))
    assert store.count() == 2

    results = store.similarity_search("Book X", top_k=2)
    assert len(results) == 2
    metadata = results[0].metadata
    assert metadata["bookTypes"] == ["Contemporary Romance", "Small Town"]
    assert metadata["commentAuthors"] == ["Ann"]
    assert normalize_book(metadata) is not None

    assert store.delete_review("1")
    assert not store.delete_review("1")
    assert store.count() == 1


def test_sample_reports_metadata_fields():
    store = _store()
    store.add_review(_review("3", "Book Q"))
    sample = store.sample(limit=10)
    assert [doc_id for doc_id, _, _ in sample] == ["3"]
    fields = metadata_fields(metadata for _, _, metadata in sample)
    assert {"bookTitle", "authorName", "grade", "postId"} <= set(fields)


def test_review_document_text():
    text = build_review_document(_review("4", "Book R"))
    assert text.startswith("Book Review: Book R by Author Y")
    assert "Categories: Contemporary Romance, Small Town" in text
    assert "Ann says: Loved it" in text


class FailingStore:
    def similarity_search(self, query: str, *, top_k: int = 4):
        raise ConnectionError("index unavailable")


def test_retriever_degrades_to_empty_on_backend_failure():
    assert ReviewRetriever(FailingStore()).retrieve("anything") == []


def test_retriever_clamps_k():
    store = _store()
    for index in range(3):
        store.add_review(_review(str(index), f"Book {index}"))
    retriever = ReviewRetriever(store, RetrievalConfig(top_k=4, max_top_k=2))
    assert len(retriever.retrieve("Book", 10)) == 2
