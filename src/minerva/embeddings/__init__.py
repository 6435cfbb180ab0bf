"""Embedding services and the review index."""

from .service import (
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    LangChainEmbeddingBackend,
    build_embedding_backend,
)
from .store import ChromaReviewStore, ReviewStore, build_review_document, build_review_store, metadata_fields

__all__ = [
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "LangChainEmbeddingBackend",
    "build_embedding_backend",
    "ChromaReviewStore",
    "ReviewStore",
    "build_review_document",
    "build_review_store",
    "metadata_fields",
]
