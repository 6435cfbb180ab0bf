"""Index maintenance utilities."""

from .cli import inspect_index, load_reviews, main

__all__ = ["inspect_index", "load_reviews", "main"]
