"""Streaming generation backends for Minerva."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Sequence

from minerva.models import NormalizedBook
from minerva.services.prompts import BOOK_DATA_CLOSE, BOOK_DATA_OPEN

LOGGER = logging.getLogger(__name__)

_BLOCK_FIELDS = ("title", "author", "grade", "sensuality", "bookTypes", "asin", "reviewUrl", "postId", "featuredImage")


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 1500
    temperature: float = 0.1
    request_timeout: float = 45.0
    api_key: str | None = None


class GenerationBackend(Protocol):
    """Protocol describing streaming generation behaviour."""

    def stream(self, prompt: str, *, books: Sequence[NormalizedBook] = ()) -> AsyncIterator[str]:
        """Yield text chunks of the answer to ``prompt``."""


class OpenAIStreamingGenerator:
    """Generator streaming chat completions through LangChain's OpenAI client."""

    def __init__(self, config: GenerationConfig | None = None, llm=None) -> None:
        self._config = config or GenerationConfig()
        self._llm = llm

    def _client(self):
        # Built on first use; a missing key must fail the request, not the process.
        if self._llm is None:
            from langchain_openai import ChatOpenAI

            self._llm = ChatOpenAI(
                model=self._config.model,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
                timeout=self._config.request_timeout,
                api_key=self._config.api_key,
                streaming=True,
            )
            LOGGER.info("Loaded generation model %s", self._config.model)
        return self._llm

    async def stream(self, prompt: str, *, books: Sequence[NormalizedBook] = ()) -> AsyncIterator[str]:
        async for chunk in self._client().astream(prompt):
            content = getattr(chunk, "content", chunk)
            if isinstance(content, str) and content:
                yield content


class TemplateGenerator:
    """Deterministic generator used for tests and offline environments."""

    def __init__(self, chunk_size: int = 24, delay: float = 0.0) -> None:
        self._chunk_size = chunk_size
        self._delay = delay

    async def stream(self, prompt: str, *, books: Sequence[NormalizedBook] = ()) -> AsyncIterator[str]:
        text = self.render(books)
        for index in range(0, len(text), self._chunk_size):
            if self._delay:
                await asyncio.sleep(self._delay)
            yield text[index : index + self._chunk_size]

    @staticmethod
    def render(books: Sequence[NormalizedBook]) -> str:
        entries = []
        for book in books:
            data = book.to_dict()
            entries.append({name: data[name] for name in _BLOCK_FIELDS})
        block = f"{BOOK_DATA_OPEN}\n{json.dumps({'books': entries}, indent=2)}\n{BOOK_DATA_CLOSE}"
        if not books:
            return f"{block}\n\nI couldn't find any reviews in the AAR archive that match your question."
        lines = [block, "", "# From the AAR Reviews", ""]
        for book in books:
            details = ", ".join(part for part in (book.grade, book.sensuality) if part)
            suffix = f" ({details})" if details else ""
            lines.append(f"• **{book.title}** by {book.author}{suffix}")
        return "\n".join(lines)
