"""Observability helpers for Minerva."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Iterable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def _add_service(logger: object, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", "minerva")
    return event_dict


def configure_logging(level: int | str | None = None, *, json_output: bool | None = None) -> None:
    """Configure structlog once; explicit arguments reconfigure it.

    Modules create loggers at import time, so the application calls this
    again with its settings after the first implicit configuration.
    """

    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured and level is None and json_output is None:
        return
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else (level or logging.INFO)
    renderer = structlog.dev.ConsoleRenderer() if json_output is False else structlog.processors.JSONRenderer()
    logging.basicConfig(level=resolved, format="%(message)s", force=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolved),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "minerva") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    retrieval_latency = Histogram(
        "minerva_retrieval_duration_seconds",
        "Time spent retrieving review documents.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    retrieved_document_count = Histogram(
        "minerva_retrieved_document_count",
        "Number of review documents returned by retrieval.",
        buckets=(0, 1, 2, 4, 6, 8, 10),
    )
    retrieval_score = Histogram(
        "minerva_retrieval_score",
        "Similarity score of retrieved review documents.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    retrieval_failures = Counter(
        "minerva_retrieval_failures_total",
        "Retrieval calls that failed and degraded to an empty result.",
    )
    query_types = Counter(
        "minerva_query_type_total",
        "Classified user queries by intent label.",
        ["query_type"],
    )
    generation_latency = Histogram(
        "minerva_generation_duration_seconds",
        "Time spent streaming a generated answer.",
        buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    )
    relay_outcomes = Counter(
        "minerva_relay_outcome_total",
        "Terminal state of relayed generation streams.",
        ["state"],
    )

    @classmethod
    def observe_retrieval(
        cls,
        duration_seconds: float,
        document_count: int,
        scores: Iterable[float],
    ) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_document_count.observe(document_count)
        for score in scores:
            cls.retrieval_score.observe(min(max(score, 0.0), 1.0))

    @classmethod
    def observe_generation(cls, duration_seconds: float, state: str) -> None:
        cls.generation_latency.observe(duration_seconds)
        cls.relay_outcomes.labels(state=state).inc()


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
