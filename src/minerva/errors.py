"""Exception hierarchy shared by the Minerva services."""

from __future__ import annotations


class MinervaError(RuntimeError):
    """Base class for Minerva failures."""


class ConfigurationError(MinervaError):
    """Raised when credentials or index settings are missing for a request."""


class ConversationError(MinervaError):
    """Raised when a conversation history cannot be answered."""


class RateLimitExceeded(MinervaError):
    """Raised when a user exceeds the per-window request allowance."""

    def __init__(self, user_id: str, retry_after: float) -> None:
        super().__init__(f"Rate limit exceeded for {user_id}")
        self.user_id = user_id
        self.retry_after = retry_after
