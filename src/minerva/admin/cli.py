"""CLI for inspecting and maintaining the Minerva review index."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError

from minerva.api.schemas import ReviewIngestionRequest
from minerva.config import Settings, get_settings
from minerva.embeddings import ChromaReviewStore, build_review_store, metadata_fields
from minerva.models import ReviewRecord

_TITLE_FIELDS = ("bookTitle", "title")


@dataclass(frozen=True)
class IndexReport:
    index_name: str
    total_reviews: int
    sampled: int
    metadata_fields: List[str]
    missing_title: List[str]
    missing_content: List[str]

    def to_dict(self) -> dict:
        return {
            "index_name": self.index_name,
            "total_reviews": self.total_reviews,
            "sampled": self.sampled,
            "metadata_fields": self.metadata_fields,
            "missing_title": self.missing_title,
            "missing_content": self.missing_content,
        }


def inspect_index(store: ChromaReviewStore, *, limit: int = 100) -> IndexReport:
    """Summarise the index and list sampled documents lacking a title or body."""

    sample = store.sample(limit=limit)
    missing_title: list[str] = []
    missing_content: list[str] = []
    for doc_id, document, metadata in sample:
        if not any(str(metadata.get(name) or "").strip() for name in _TITLE_FIELDS):
            missing_title.append(doc_id)
        body = metadata["text"] if "text" in metadata else document
        if not str(body or "").strip():
            missing_content.append(doc_id)
    return IndexReport(
        index_name=store.collection_name,
        total_reviews=store.count(),
        sampled=len(sample),
        metadata_fields=metadata_fields(metadata for _, _, metadata in sample),
        missing_title=missing_title,
        missing_content=missing_content,
    )


def load_reviews(path: Path) -> list[ReviewRecord]:
    """Load one review object, or a list of them, from a JSON file."""

    data = json.loads(path.read_text(encoding="utf-8"))
    items = data if isinstance(data, list) else [data]
    return [ReviewIngestionRequest.model_validate(item).to_domain() for item in items]


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="minerva-admin", description="Maintain the Minerva review index.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="Show index size, metadata fields and incomplete documents")
    inspect_parser.add_argument("--limit", type=int, default=100, help="Number of documents to sample")

    add_parser = subparsers.add_parser("add", help="Index reviews from a JSON file")
    add_parser.add_argument("path", type=Path, help="JSON file holding a review object or a list of them")

    delete_parser = subparsers.add_parser("delete", help="Remove a review by post id")
    delete_parser.add_argument("post_id", help="Review post id")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None, store: ChromaReviewStore | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    settings = settings or get_settings()
    store = store or build_review_store(settings)

    if args.command == "inspect":
        report = inspect_index(store, limit=args.limit)
        print(json.dumps(report.to_dict(), indent=2))
        return 0

    if args.command == "add":
        try:
            reviews = load_reviews(args.path)
        except (OSError, ValueError, ValidationError) as exc:
            print(f"Could not load reviews from {args.path}: {exc}", file=sys.stderr)
            return 1
        for review in reviews:
            store.add_review(review)
            print(f"Indexed {review.post_id}: {review.title} by {review.author_name}")
        print(f"Total reviews: {store.count()}")
        return 0

    if not store.delete_review(args.post_id):
        print(f"Review not found: {args.post_id}", file=sys.stderr)
        return 1
    print(f"Deleted {args.post_id}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
