"""Server action boundary used by the chat front end."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from minerva.errors import ConversationError
from minerva.metrics.observability import get_logger
from minerva.models import ChatMessage
from minerva.services.chat import ChatService
from minerva.services.ratelimit import FixedWindowRateLimiter
from minerva.services.relay import RelayEvent, RelayState, ResponseRelay

_CLOSED = object()


class StreamHandle:
    """Async sequence of text snapshots; iteration ends when the stream is done.

    Each item is the full answer text so far. The handle can be consumed once.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self.state: RelayState = RelayState.STREAMING
        self.text = ""

    def update(self, text: str) -> None:
        if self._closed:
            raise RuntimeError("Stream already closed")
        self.text = text
        self._queue.put_nowait(text)

    def done(self, state: RelayState) -> None:
        if self._closed:
            return
        self._closed = True
        self.state = state
        self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield str(item)


@dataclass
class ConversationTurn:
    messages: Sequence[ChatMessage]
    new_message: StreamHandle
    task: asyncio.Task[None]


async def relay_events(
    history: Sequence[ChatMessage],
    *,
    service: ChatService,
    relay: ResponseRelay,
) -> AsyncIterator[RelayEvent]:
    """Run the relay over the chat service stream for ``history``."""

    async for event in relay.run(service.stream(history)):
        yield event


def admit_turn(
    history: Sequence[ChatMessage],
    *,
    service: ChatService,
    rate_limiter: FixedWindowRateLimiter | None = None,
    user_id: str | None = None,
) -> None:
    """Reject a turn before streaming: configuration, history shape, then rate limit."""

    service.check_configuration()
    if not history or history[-1].role != "user" or not history[-1].content.strip():
        raise ConversationError("The last message must be a non-empty user message")
    if rate_limiter is not None and user_id:
        rate_limiter.hit(user_id)


async def continue_conversation(
    history: Sequence[ChatMessage],
    *,
    service: ChatService,
    relay: ResponseRelay,
    rate_limiter: FixedWindowRateLimiter | None = None,
    user_id: str | None = None,
) -> ConversationTurn:
    """Start answering ``history`` and return a handle streaming the answer.

    Configuration problems and invalid histories raise immediately; anything
    that goes wrong once streaming has started arrives as an apology sentence
    in the stream itself.
    """

    logger = get_logger("actions")
    admit_turn(history, service=service, rate_limiter=rate_limiter, user_id=user_id)

    handle = StreamHandle()
    logger.info("conversation.continue", user_id=user_id, message_count=len(history))

    async def pump() -> None:
        state = RelayState.FAILED
        try:
            async for event in relay_events(history, service=service, relay=relay):
                if event.kind == "update":
                    handle.update(event.text)
                else:
                    state = event.state
        finally:
            handle.done(state)

    task = asyncio.create_task(pump())
    return ConversationTurn(messages=list(history), new_message=handle, task=task)
