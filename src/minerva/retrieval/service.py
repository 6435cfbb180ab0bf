"""Retrieval of review documents from the review index."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from minerva.embeddings import ReviewStore
from minerva.metrics.observability import PipelineMetrics, get_logger
from minerva.models import RetrievedDocument


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 4
    max_top_k: int = 10


class Retriever(Protocol):
    """Retrieve relevant review documents for a query string."""

    def retrieve(self, query: str, k: int | None = None) -> Sequence[RetrievedDocument]:
        """Return the top-k retrieved documents."""


class ReviewRetriever:
    """Retriever backed by a review store.

    Backend failures never propagate: they are logged and the caller gets an
    empty sequence, so a turn can still be answered without context.
    """

    def __init__(self, store: ReviewStore, config: RetrievalConfig | None = None) -> None:
        self._store = store
        self._config = config or RetrievalConfig()
        self._logger = get_logger("retrieval")

    def retrieve(self, query: str, k: int | None = None) -> Sequence[RetrievedDocument]:
        limit = self._clamp(k or self._config.top_k)
        start = time.perf_counter()
        try:
            documents = list(self._store.similarity_search(query, top_k=limit))
        except Exception as exc:
            PipelineMetrics.retrieval_failures.inc()
            self._logger.error("retrieval.failed", query=query, top_k=limit, error=repr(exc))
            return []
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval(duration, len(documents), (doc.score for doc in documents))
        self._logger.info(
            "retrieval.complete",
            query=query,
            top_k=limit,
            document_count=len(documents),
            duration_seconds=duration,
        )
        return documents

    def _clamp(self, k: int) -> int:
        return max(1, min(k, self._config.max_top_k))
