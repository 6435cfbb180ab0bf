"""Server-side relay between a generation stream and the client.

The relay races chunk consumption against an overall deadline, forwards the
accumulated text at a bounded cadence and always finishes with exactly one
``done`` event.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Literal

from minerva.metrics.observability import PipelineMetrics, get_logger

TIMEOUT_MESSAGE = "I apologize, but the response took too long. Please try a shorter query or try again."
DATABASE_MESSAGE = (
    "I apologize, but I encountered an error accessing the review database. "
    "This has been logged and will be investigated."
)
GENERIC_MESSAGE = "I apologize, but I encountered an error processing your request. Please try again in a moment."

_TIMEOUT_HINTS = ("timeout", "timed out", "deadline")
_DATABASE_HINTS = ("database", "index", "retriev", "chroma", "pinecone", "vector")


class RelayState(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class RelayEvent:
    """Update or terminal signal sent to the client."""

    kind: Literal["update", "done"]
    text: str
    state: RelayState


def classify_failure(exc: BaseException) -> str:
    """Map a stream failure to a user-facing sentence."""

    detail = f"{type(exc).__name__} {exc}".lower()
    if any(hint in detail for hint in _TIMEOUT_HINTS):
        return TIMEOUT_MESSAGE
    if any(hint in detail for hint in _DATABASE_HINTS):
        return DATABASE_MESSAGE
    return GENERIC_MESSAGE


async def _advance(iterator: AsyncIterator[str]) -> tuple[bool, str]:
    try:
        return True, await iterator.__anext__()
    except StopAsyncIteration:
        return False, ""


class ResponseRelay:
    """Relays one generation stream: STREAMING -> COMPLETED | TIMED_OUT | FAILED."""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        update_interval: float = 0.1,
        *,
        clock: Callable[[], float] = time.monotonic,
        abandon_grace_seconds: float = 0.5,
    ) -> None:
        self._timeout = timeout_seconds
        self._interval = update_interval
        self._clock = clock
        self._grace = abandon_grace_seconds
        self._logger = get_logger("relay")

    async def run(self, chunks: AsyncIterator[str]) -> AsyncIterator[RelayEvent]:
        started = time.perf_counter()
        start = self._clock()
        deadline = start + self._timeout
        last_forward = start
        text = ""
        state = RelayState.STREAMING
        failure: Exception | None = None
        iterator = chunks.__aiter__()
        step: asyncio.Future[tuple[bool, str]] | None = None
        try:
            while state is RelayState.STREAMING:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    state = RelayState.TIMED_OUT
                    break
                step = asyncio.ensure_future(_advance(iterator))
                done, _ = await asyncio.wait({step}, timeout=remaining)
                if not done:
                    state = RelayState.TIMED_OUT
                    break
                try:
                    has_more, chunk = step.result()
                except Exception as exc:
                    failure = exc
                    state = RelayState.FAILED
                    break
                if not has_more:
                    state = RelayState.COMPLETED
                    break
                text += chunk
                now = self._clock()
                if now - last_forward >= self._interval:
                    last_forward = now
                    yield RelayEvent(kind="update", text=text, state=RelayState.STREAMING)
        finally:
            if state is RelayState.STREAMING:
                # Consumer went away before a terminal state.
                self._logger.info("relay.closed", received_chars=len(text))
                await self._abandon(step, chunks)

        if state is RelayState.TIMED_OUT:
            await self._abandon(step, chunks)
            self._logger.warning("relay.timeout", timeout_seconds=self._timeout, received_chars=len(text))
            final = TIMEOUT_MESSAGE
        elif state is RelayState.FAILED:
            self._logger.error("relay.failed", error=repr(failure), received_chars=len(text))
            final = classify_failure(failure)
        else:
            self._logger.info("relay.complete", chars=len(text), preview=text[:200])
            final = text
        PipelineMetrics.observe_generation(time.perf_counter() - started, state.value)
        if final:
            yield RelayEvent(kind="update", text=final, state=state)
        yield RelayEvent(kind="done", text=final, state=state)

    async def _abandon(self, step: asyncio.Future | None, chunks: AsyncIterator[str]) -> None:
        # Best effort: the backend may keep working after we stop listening.
        if step is not None:
            step.cancel()
            await asyncio.wait({step}, timeout=self._grace)
        aclose = getattr(chunks, "aclose", None)
        if aclose is None:
            return
        try:
            await asyncio.wait_for(aclose(), timeout=self._grace)
        except Exception as exc:
            self._logger.debug("relay.abandon_failed", error=repr(exc))
