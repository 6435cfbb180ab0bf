"""Embedding backends for Minerva."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Literal, Protocol, Sequence, Tuple

from langchain_core.embeddings import Embeddings as LangChainEmbeddings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    provider: Literal["hash", "huggingface", "openai"] = "hash"
    model: str = "text-embedding-3-small"
    dim: int = 384
    api_key: str | None = None
    device: str | None = None
    normalize: bool = True


class EmbeddingBackend(Protocol):
    """Protocol describing embedding behaviour."""

    def embed_documents(self, texts: Sequence[str]) -> Sequence[Tuple[float, ...]]:
        """Return one vector per document text."""

    def embed_query(self, query: str) -> Tuple[float, ...]:
        """Return embedding vector for a query string."""


class HashEmbeddingBackend:
    """Deterministic lightweight embedding used for tests and offline runs."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def _hash_to_vector(self, text: str) -> Tuple[float, ...]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            norm = math.sqrt(sum(value * value for value in vector)) or 1.0
            vector = [value / norm for value in vector]
        return tuple(vector)

    def embed_documents(self, texts: Sequence[str]) -> Sequence[Tuple[float, ...]]:
        return [self._hash_to_vector(text) for text in texts]

    def embed_query(self, query: str) -> Tuple[float, ...]:
        return self._hash_to_vector(query)


class LangChainEmbeddingBackend:
    """Embedding backend delegating to a LangChain embeddings client."""

    def __init__(self, config: EmbeddingConfig | None = None, client: LangChainEmbeddings | None = None) -> None:
        self._config = config or EmbeddingConfig(provider="openai")
        self._client_instance = client

    @property
    def _client(self) -> LangChainEmbeddings:
        if self._client_instance is None:
            self._client_instance = self._build_client(self._config)
            LOGGER.info("Loaded %s embeddings (%s)", self._config.provider, self._config.model)
        return self._client_instance

    @staticmethod
    def _build_client(config: EmbeddingConfig) -> LangChainEmbeddings:
        if config.provider == "openai":
            from langchain_openai import OpenAIEmbeddings

            return OpenAIEmbeddings(model=config.model, api_key=config.api_key)
        if config.provider == "huggingface":
            from langchain_community.embeddings import HuggingFaceEmbeddings

            model_kwargs = {"device": config.device} if config.device else {}
            return HuggingFaceEmbeddings(
                model_name=config.model,
                model_kwargs=model_kwargs,
                encode_kwargs={"normalize_embeddings": config.normalize},
            )
        raise ValueError(f"Unsupported embedding provider: {config.provider}")

    def embed_documents(self, texts: Sequence[str]) -> Sequence[Tuple[float, ...]]:
        if not texts:
            return []
        vectors = self._client.embed_documents(list(texts))
        if len(vectors) != len(texts):
            LOGGER.error("Embedding backend returned %d vectors for %d texts", len(vectors), len(texts))
            raise ValueError("Mismatch between number of texts and embedding vectors")
        return [self._normalize(tuple(vector)) for vector in vectors]

    def embed_query(self, query: str) -> Tuple[float, ...]:
        return self._normalize(tuple(self._client.embed_query(query)))

    def _normalize(self, vector: Tuple[float, ...]) -> Tuple[float, ...]:
        if not self._config.normalize:
            return vector
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return tuple(value / norm for value in vector)


def build_embedding_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    if config.provider == "hash":
        return HashEmbeddingBackend(config)
    return LangChainEmbeddingBackend(config)
