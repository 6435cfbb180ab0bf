"""FastAPI application exposing the Minerva chat service."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from minerva.api.schemas import (
    ChatRequest,
    IndexStatsResponse,
    ReviewIngestionRequest,
    ReviewIngestionResponse,
)
from minerva.config import Settings, get_settings
from minerva.embeddings import ChromaReviewStore, build_review_store
from minerva.errors import ConfigurationError, ConversationError, RateLimitExceeded
from minerva.metrics.observability import (
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
)
from minerva.retrieval.service import RetrievalConfig, ReviewRetriever
from minerva.services.actions import admit_turn, relay_events
from minerva.services.chat import ChatService
from minerva.services.generation import GenerationConfig, GenerationBackend, OpenAIStreamingGenerator, TemplateGenerator
from minerva.services.prompts import PromptAssembler, PromptAssemblerConfig
from minerva.services.ratelimit import FixedWindowRateLimiter
from minerva.services.relay import RelayEvent, RelayState, ResponseRelay
from minerva.validators import format_validation_error, validate_book_data


@dataclass(frozen=True)
class AppDependencies:
    store: ChromaReviewStore
    chat_service: ChatService
    relay: ResponseRelay
    rate_limiter: FixedWindowRateLimiter


def _build_dependencies(settings: Settings) -> AppDependencies:
    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
    store = build_review_store(settings)
    retriever = ReviewRetriever(store, RetrievalConfig(max_top_k=settings.retrieval_max_top_k))
    generator: GenerationBackend
    if settings.generator_backend == "openai":
        generator = OpenAIStreamingGenerator(
            GenerationConfig(
                model=settings.generator_model,
                max_tokens=settings.generator_max_tokens,
                temperature=settings.generator_temperature,
                request_timeout=settings.generator_request_timeout,
                api_key=api_key,
            ),
        )
    else:
        generator = TemplateGenerator()
    chat_service = ChatService(
        retriever,
        generator,
        PromptAssembler(PromptAssemblerConfig(history_window=settings.history_window)),
        min_descriptive_fields=settings.min_descriptive_fields,
        config_check=settings.validate_credentials,
    )
    relay = ResponseRelay(settings.stream_timeout_seconds, settings.stream_update_interval)
    rate_limiter = FixedWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
    return AppDependencies(store=store, chat_service=chat_service, relay=relay, rate_limiter=rate_limiter)


def _sse(event: str, payload: dict[str, object]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging(settings.log_level, json_output=settings.log_json)
    logger = get_logger("api")
    app = FastAPI(title="Minerva API", version="0.1.0")
    app.state.dependencies = deps

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or uuid4().hex
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def _error_body(request: Request, error: str, details: str, error_type: str) -> dict[str, str]:
        return {
            "error": error,
            "details": details,
            "type": error_type,
            "correlation_id": getattr(request.state, "correlation_id", None) or get_correlation_id(),
        }

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("configuration.error", detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, "Configuration error", str(exc), "configuration"),
        )

    @app.exception_handler(ConversationError)
    async def handle_conversation_error(request: Request, exc: ConversationError) -> JSONResponse:
        logger.warning("conversation.invalid", detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(request, "Invalid conversation", str(exc), "validation"),
        )

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.info("ratelimit.exceeded", user_id=exc.user_id)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=_error_body(request, "Rate limit exceeded", str(exc), "rate_limit"),
            headers={"Retry-After": str(max(1, int(exc.retry_after)))},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled.error", detail=str(exc), error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, "Internal Server Error", "Unexpected error while handling the request", "internal"),
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> ChromaReviewStore:
        return dep.store

    @app.post("/api/chat", responses={500: {"description": "Configuration or backend failure"}})
    async def chat(
        payload: ChatRequest,
        request: Request,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> Response:
        history = [message.to_domain() for message in payload.messages]
        user_id = payload.user_id or request.headers.get("X-User-ID") or (request.client.host if request.client else "anonymous")
        admit_turn(history, service=dep.chat_service, rate_limiter=dep.rate_limiter, user_id=user_id)
        logger.info("chat.request", user_id=user_id, message_count=len(history), question=history[-1].content)

        async def iter_sse() -> AsyncIterator[str]:
            # Initial heartbeat to keep idle proxies open
            yield ": heartbeat\n\n"
            last: RelayEvent | None = None
            async for event in relay_events(history, service=dep.chat_service, relay=dep.relay):
                last = event
                if event.kind == "update":
                    yield _sse("update", {"text": event.text})
                else:
                    yield _sse("done", {"state": event.state.value})
            if last is not None and last.state is RelayState.COMPLETED:
                check = validate_book_data(last.text)
                if not check.is_valid:
                    logger.warning("response.validation_failed", detail=format_validation_error(check.error))

        return StreamingResponse(iter_sse(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})

    @app.post("/reviews", response_model=ReviewIngestionResponse, status_code=status.HTTP_201_CREATED)
    def add_review(
        payload: ReviewIngestionRequest,
        store: ChromaReviewStore = Depends(get_store),
    ) -> ReviewIngestionResponse:
        post_id = store.add_review(payload.to_domain())
        logger.info("review.indexed", post_id=post_id, title=payload.title)
        return ReviewIngestionResponse(post_id=post_id, document_count=store.count())

    @app.delete("/reviews/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_review(post_id: str, store: ChromaReviewStore = Depends(get_store)) -> Response:
        if not store.delete_review(post_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Review not found: {post_id}")
        logger.info("review.deleted", post_id=post_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/index/stats", response_model=IndexStatsResponse)
    def index_stats(store: ChromaReviewStore = Depends(get_store)) -> IndexStatsResponse:
        return IndexStatsResponse(index_name=store.collection_name, total_reviews=store.count())

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from minerva import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


app = create_app()
