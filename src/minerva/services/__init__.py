"""Service layer orchestrations for Minerva."""

from .actions import ConversationTurn, StreamHandle, admit_turn, continue_conversation
from .chat import ChatService, PreparedTurn
from .classifier import QueryType, classify_query
from .generation import GenerationBackend, GenerationConfig, OpenAIStreamingGenerator, TemplateGenerator
from .prompts import PromptAssembler, PromptAssemblerConfig
from .ratelimit import FixedWindowRateLimiter
from .relay import RelayEvent, RelayState, ResponseRelay

__all__ = [
    "ChatService",
    "ConversationTurn",
    "FixedWindowRateLimiter",
    "GenerationBackend",
    "GenerationConfig",
    "OpenAIStreamingGenerator",
    "PreparedTurn",
    "PromptAssembler",
    "PromptAssemblerConfig",
    "QueryType",
    "RelayEvent",
    "RelayState",
    "ResponseRelay",
    "StreamHandle",
    "TemplateGenerator",
    "classify_query",
    "admit_turn",
    "continue_conversation",
]
