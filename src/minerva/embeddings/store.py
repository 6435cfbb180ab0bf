"""Review index backed by a Chroma collection."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, MutableMapping, Protocol, Sequence

import chromadb
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection
from chromadb.api.types import Documents, Embeddings as ChromaEmbeddings, IDs, Metadatas

from minerva.embeddings.service import EmbeddingBackend, EmbeddingConfig, build_embedding_backend
from minerva.models import RetrievedDocument, ReviewRecord

if TYPE_CHECKING:
    from minerva.config import Settings

# Chroma only accepts scalar metadata values; these fields travel as JSON strings.
_LIST_FIELDS = ("bookTypes", "commentAuthors", "commentContents")


class ReviewStore(Protocol):
    """Protocol for review index backends."""

    def similarity_search(self, query: str, *, top_k: int = 4) -> Sequence[RetrievedDocument]:
        """Return the top-k reviews for the query string."""

    def add_review(self, review: ReviewRecord) -> str:
        """Index a review and return its document id."""

    def delete_review(self, post_id: str) -> bool:
        """Remove a review by post id."""

    def count(self) -> int:
        """Return total number of stored reviews."""


class ChromaReviewStore:
    """Chroma-backed review index."""

    def __init__(
        self,
        embedding_backend: EmbeddingBackend,
        collection_name: str = "aar-reviews",
        *,
        client: ClientAPI | None = None,
        client_factory: Callable[[], ClientAPI] | None = None,
    ) -> None:
        self._client = client
        self._client_factory = client_factory or chromadb.EphemeralClient
        self._collection_name = collection_name
        self._collection_handle: Collection | None = None
        self._backend = embedding_backend

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def _collection(self) -> Collection:
        # Remote clients connect on first use so a down index fails requests, not startup.
        if self._collection_handle is None:
            if self._client is None:
                self._client = self._client_factory()
            self._collection_handle = self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection_handle

    def add_review(self, review: ReviewRecord) -> str:
        text = build_review_document(review)
        vectors: ChromaEmbeddings = [list(vector) for vector in self._backend.embed_documents([text])]
        ids: IDs = [review.post_id]
        documents: Documents = [text]
        metadatas: Metadatas = [self._serialize_review(review, text)]
        self._collection.upsert(ids=ids, documents=documents, embeddings=vectors, metadatas=metadatas)
        return review.post_id

    def delete_review(self, post_id: str) -> bool:
        existing = self._collection.get(ids=[post_id], include=["metadatas"])
        if not existing.get("ids"):
            return False
        self._collection.delete(ids=[post_id])
        return True

    def similarity_search(self, query: str, *, top_k: int = 4) -> Sequence[RetrievedDocument]:
        limit = min(top_k, self._collection.count())
        if limit <= 0:
            return []
        vector = list(self._backend.embed_query(query))
        results = self._collection.query(query_embeddings=[vector], n_results=limit)
        return self._deserialize_results(results)

    def reset(self) -> None:
        ids = self._collection.get(include=["metadatas"]).get("ids") or []
        if ids:
            self._collection.delete(ids=list(ids))

    def count(self) -> int:
        try:
            return int(self._collection.count())
        except Exception:
            return 0

    def sample(self, limit: int = 100) -> list[tuple[str, str, Mapping[str, Any]]]:
        batch = self._collection.get(include=["documents", "metadatas"], limit=limit)
        ids = batch.get("ids") or []
        documents = batch.get("documents") or [""] * len(ids)
        metadatas = batch.get("metadatas") or [{}] * len(ids)
        return [
            (doc_id, document or "", self._deserialize_metadata(metadata or {}))
            for doc_id, document, metadata in zip(ids, documents, metadatas, strict=False)
        ]

    def _serialize_review(self, review: ReviewRecord, text: str) -> MutableMapping[str, object]:
        metadata: MutableMapping[str, object] = {
            "bookTitle": review.title,
            "authorName": review.author_name,
            "grade": review.grade,
            "sensuality": review.sensuality,
            "bookTypes": self._dumps(list(review.book_types)),
            "asin": review.asin,
            "url": review.url,
            "postId": review.post_id,
            "featuredImage": review.featured_image,
            "reviewerName": review.reviewer_name,
            "publishDate": review.publish_date,
            "commentAuthors": self._dumps([comment.author for comment in review.comments]),
            "commentContents": self._dumps([comment.content for comment in review.comments]),
            "commentCount": len(review.comments),
            "text": review.content,
        }
        return metadata

    def _deserialize_results(self, results: Mapping[str, object]) -> Sequence[RetrievedDocument]:
        ids = self._first(results.get("ids", []))
        documents = self._first(results.get("documents", []))
        metadatas = self._first(results.get("metadatas", []))
        distances = list(self._first(results.get("distances", [])))
        retrieved: list[RetrievedDocument] = []
        if not ids or not documents:
            return retrieved
        for index, document in enumerate(documents):
            metadata = metadatas[index] if index < len(metadatas) else {}
            distance = distances[index] if index < len(distances) else None
            score = 1.0 - float(distance) if distance is not None else 0.0
            retrieved.append(
                RetrievedDocument(
                    content=document or "",
                    score=score,
                    metadata=self._deserialize_metadata(metadata or {}),
                ),
            )
        return retrieved

    def _deserialize_metadata(self, metadata: Mapping[str, Any]) -> Dict[str, Any]:
        decoded: Dict[str, Any] = dict(metadata)
        for name in _LIST_FIELDS:
            value = decoded.get(name)
            if isinstance(value, str) and value.startswith("["):
                try:
                    loaded = json.loads(value)
                except json.JSONDecodeError:
                    continue
                if isinstance(loaded, list):
                    decoded[name] = loaded
        return decoded

    @staticmethod
    def _first(value: object) -> Sequence[Any]:
        if isinstance(value, list):
            return value[0] if value and value[0] is not None else []
        return []

    @staticmethod
    def _dumps(value: object) -> str:
        try:
            return json.dumps(value, default=str)
        except TypeError:
            return json.dumps([], default=str)


def build_review_document(review: ReviewRecord) -> str:
    """Render the searchable text for a review."""

    lines = [f"Book Review: {review.title} by {review.author_name}"]
    if review.grade:
        lines.append(f"Grade: {review.grade}")
    if review.sensuality:
        lines.append(f"Sensuality Rating: {review.sensuality}")
    if review.book_types:
        lines.append(f"Categories: {', '.join(review.book_types)}")
    if review.reviewer_name:
        lines.append(f"Reviewed by: {review.reviewer_name}")
    lines.extend(["", "Review:", review.content.strip()])
    if review.comments:
        lines.extend(["", "Reader Comments:"])
        lines.extend(f"{comment.author} says: {comment.content}" for comment in review.comments)
    return "\n".join(lines).strip()


def metadata_fields(items: Iterable[Mapping[str, Any]]) -> list[str]:
    fields: set[str] = set()
    for metadata in items:
        fields.update(metadata.keys())
    return sorted(fields)


def build_review_store(settings: Settings) -> ChromaReviewStore:
    """Build the review index described by ``settings``.

    A configured ``chroma_host`` selects a remote Chroma server authenticated
    with the index API key; otherwise an in-process ephemeral client is used.
    """

    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
    embedding_backend = build_embedding_backend(
        EmbeddingConfig(
            provider=settings.embedding_provider,
            model=settings.embedding_model,
            dim=settings.embedding_dim,
            api_key=api_key,
        ),
    )
    client_factory: Callable[[], ClientAPI] | None = None
    if settings.chroma_host:
        chroma_token = settings.chroma_api_key.get_secret_value() if settings.chroma_api_key else ""

        def remote_client() -> ClientAPI:
            return chromadb.HttpClient(
                host=settings.chroma_host,
                port=settings.chroma_port or 8000,
                ssl=settings.chroma_ssl,
                headers={"X-Chroma-Token": chroma_token},
            )

        client_factory = remote_client

    return ChromaReviewStore(embedding_backend, collection_name=settings.index_name, client_factory=client_factory)
