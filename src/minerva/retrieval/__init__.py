"""Retrieval components."""

from .normalizer import normalize_book, normalize_documents
from .service import RetrievalConfig, Retriever, ReviewRetriever

__all__ = ["RetrievalConfig", "Retriever", "ReviewRetriever", "normalize_book", "normalize_documents"]
