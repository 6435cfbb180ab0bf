"""Prompt construction for the generation backend."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping, Sequence

from langchain_core.prompts import PromptTemplate

from minerva.models import ChatMessage, NormalizedBook, RetrievedDocument
from minerva.services.classifier import QueryType, profile_for

BOOK_DATA_OPEN = "<book-data>"
BOOK_DATA_CLOSE = "</book-data>"
NO_RESULTS_CONTEXT = "No specific results found for this query."

# Literal braces are doubled; the template is rendered with f-string formatting.
BOOK_DATA_TEMPLATE = """<book-data>
{{
  "books": [
    {{
      "title": "(title)",
      "author": "(author)",
      "grade": "(grade)",
      "sensuality": "(sensuality)",
      "bookTypes": ["(bookTypes)"],
      "asin": "(asin)",
      "reviewUrl": "(reviewUrl)",
      "postId": "(postId)",
      "featuredImage": "(featuredImage)"
    }}
  ]
}}
</book-data>"""

SYSTEM_TEMPLATE = (
    "You are Minerva, an AI assistant for All About Romance (AAR). You help users discover and discuss "
    "romance books based on AAR's reviews. You must only provide information from the review metadata "
    "and context provided.\n\n"
    "First, output the data of every book you mention using this exact format "
    "(include full metadata, no placeholders, at most {max_books} books):\n\n"
    + BOOK_DATA_TEMPLATE
    + "\n\nThen, format your response like this:\n\n"
    "{response_shape}\n\n"
    "STRICT RULES:\n"
    "1. Output MUST start with the book data block - no text before it\n"
    "2. Only discuss books present in the provided metadata\n"
    "3. Only include reader comments when commentCount > 0\n"
    "4. Use bullet points (•) not asterisks (*) or dashes (-)\n"
    "5. Always validate data exists before mentioning it\n"
    "6. If the metadata is empty, say that no matching reviews were found and output an empty books list\n\n"
    "Available metadata: {metadata}\n"
    "Context: {context}\n"
    "History: {chat_history}\n"
    "Question: {question}"
)


@dataclass(frozen=True)
class PromptAssemblerConfig:
    """Configuration for prompt construction."""

    history_window: int = 3
    reserved_prefix: str = "Tags:"


class PromptAssembler:
    """Renders the fixed instruction template for one turn."""

    def __init__(self, config: PromptAssemblerConfig | None = None) -> None:
        self._config = config or PromptAssemblerConfig()
        self._template = PromptTemplate.from_template(SYSTEM_TEMPLATE)

    def assemble(
        self,
        question: str,
        context: str,
        chat_history: Sequence[ChatMessage],
        metadata: Mapping[str, NormalizedBook],
        query_type: QueryType,
    ) -> str:
        profile = profile_for(query_type)
        return self._template.format(
            max_books=profile.max_books,
            response_shape=profile.response_shape,
            metadata=self.format_metadata(metadata),
            context=self.format_context(context),
            chat_history=self.format_history(chat_history),
            question=question.strip(),
        )

    def format_context(self, context: str) -> str:
        lines = [
            line
            for line in context.strip().split("\n")
            if line.strip() and not line.startswith(self._config.reserved_prefix)
        ]
        return "\n".join(lines) if lines else NO_RESULTS_CONTEXT

    def format_history(self, messages: Sequence[ChatMessage]) -> str:
        window = list(messages)[-self._config.history_window :] if self._config.history_window > 0 else []
        return "\n\n".join(
            f"{'Human' if message.role == 'user' else 'Assistant'}: {message.content}" for message in window
        )

    @staticmethod
    def format_metadata(metadata: Mapping[str, NormalizedBook]) -> str:
        return json.dumps({key: book.to_dict() for key, book in metadata.items()}, indent=2, ensure_ascii=False)

    @staticmethod
    def build_context(documents: Sequence[RetrievedDocument]) -> str:
        return "\n\n".join(document.content for document in documents if document.content)
