"""Chat orchestration combining classification, retrieval and generation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Sequence

from minerva.errors import ConversationError
from minerva.metrics.observability import PipelineMetrics, get_logger
from minerva.models import ChatMessage, NormalizedBook
from minerva.retrieval.normalizer import normalize_documents
from minerva.retrieval.service import Retriever
from minerva.services.classifier import QueryType, classify_query, profile_for
from minerva.services.generation import GenerationBackend, TemplateGenerator
from minerva.services.prompts import PromptAssembler


@dataclass(frozen=True)
class PreparedTurn:
    """Everything the generation backend needs for one answer."""

    question: str
    query_type: QueryType
    prompt: str
    books: Sequence[NormalizedBook]
    document_count: int


class ChatService:
    """Orchestrates one conversational turn."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationBackend | None = None,
        assembler: PromptAssembler | None = None,
        *,
        min_descriptive_fields: int = 1,
        config_check: Callable[[], None] | None = None,
    ) -> None:
        self._retriever = retriever
        self._generator = generator or TemplateGenerator()
        self._assembler = assembler or PromptAssembler()
        self._min_descriptive_fields = min_descriptive_fields
        self._config_check = config_check
        self._logger = get_logger("chat")

    def check_configuration(self) -> None:
        if self._config_check is not None:
            self._config_check()

    def prepare(self, messages: Sequence[ChatMessage]) -> PreparedTurn:
        if not messages:
            raise ConversationError("Conversation is empty")
        latest = messages[-1]
        if latest.role != "user" or not latest.content.strip():
            raise ConversationError("The last message must be a non-empty user message")
        question = latest.content.strip()
        query_type = classify_query(question)
        profile = profile_for(query_type)
        PipelineMetrics.query_types.labels(query_type=query_type.value).inc()

        documents = self._retriever.retrieve(question, profile.retrieval_count)
        books = normalize_documents(documents, min_descriptive_fields=self._min_descriptive_fields)
        prompt = self._assembler.assemble(
            question,
            self._assembler.build_context(documents),
            messages[:-1],
            books,
            query_type,
        )
        self._logger.info(
            "chat.prepared",
            query_type=query_type.value,
            document_count=len(documents),
            book_count=len(books),
            prompt_chars=len(prompt),
        )
        return PreparedTurn(
            question=question,
            query_type=query_type,
            prompt=prompt,
            books=list(books.values()),
            document_count=len(documents),
        )

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        # Retrieval blocks on the embedding and index calls; keep it off the event loop.
        turn = await asyncio.to_thread(self.prepare, messages)
        async for chunk in self._generator.stream(turn.prompt, books=turn.books):
            yield chunk
