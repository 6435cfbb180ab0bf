"""HTTPX-based chat client with retry, backoff and cancellation."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict, dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Literal, Protocol, Sequence

import httpx

from minerva.metrics.observability import get_logger
from minerva.models import ChatMessage

DEFAULT_API_URL = os.getenv("MINERVA_API_URL", "http://localhost:8000")
FAILED_MESSAGE = "Failed to get response. Please try again."
CANCELLED_MESSAGE = "Request cancelled."


class ChatTransportError(RuntimeError):
    """Transient failure talking to the chat endpoint; safe to retry."""


class ChatAPIError(RuntimeError):
    """Non-retryable rejection from the chat endpoint (bad request or configuration)."""


@dataclass(frozen=True)
class Notification:
    kind: Literal["error", "cancelled", "configuration"]
    message: str


class ChatTransport(Protocol):
    def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Yield full-text snapshots of the answer; return only after the done marker."""


def _parse_event(raw: str) -> tuple[str, str]:
    event = "message"
    data_lines: list[str] = []
    for line in raw.split("\n"):
        if line.startswith(":"):
            continue
        if line.startswith("event:"):
            event = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:") :].lstrip())
    return event, "\n".join(data_lines)


@dataclass
class HttpChatTransport:
    """Streams answers from the ``/api/chat`` server-sent events endpoint."""

    base_url: str = DEFAULT_API_URL
    timeout: float = 60.0
    user_id: str | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        payload: dict[str, object] = {"messages": [asdict(message) for message in messages]}
        if self.user_id:
            payload["user_id"] = self.user_id
        headers = {"Accept": "text/event-stream"}
        async with self.client.stream("POST", "/api/chat", json=payload, headers=headers) as response:
            if response.status_code >= 400:
                await response.aread()
                self._raise_for_status(response)
            buffer = ""
            async for text in response.aiter_text():
                buffer += text
                while "\n\n" in buffer:
                    raw, buffer = buffer.split("\n\n", 1)
                    event, data = _parse_event(raw)
                    if event == "update":
                        yield str(json.loads(data)["text"])
                    elif event == "done":
                        return
        raise ChatTransportError("Stream closed before the done marker")

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        cid = response.headers.get("X-Correlation-ID", "-")
        try:
            body = response.json()
        except ValueError:
            body = {}
        error_type = body.get("type") if isinstance(body, dict) else None
        detail = body.get("details") if isinstance(body, dict) else None
        message = f"Chat failed ({response.status_code}) [cid={cid}]: {detail or response.text}"
        if error_type in {"configuration", "validation"} or (400 <= response.status_code < 500 and response.status_code != 429):
            raise ChatAPIError(message)
        raise ChatTransportError(message)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


_RETRYABLE = (httpx.TransportError, ChatTransportError)


@dataclass
class ChatSession:
    """Client-side conversation with at most one in-flight exchange.

    Failed exchanges are retried ``max_retries`` times, waiting
    ``base_delay * 2 ** attempt`` seconds before each retry. A new send or
    :meth:`abort` cancels the exchange in flight without retrying it.
    """

    transport: ChatTransport
    max_retries: int = 3
    base_delay: float = 1.0
    max_messages: int = 20
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    on_update: Callable[[str], None] | None = None
    on_notify: Callable[[Notification], None] | None = None
    messages: list[ChatMessage] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._inflight: asyncio.Task[ChatMessage | None] | None = None
        self._pending: ChatMessage | None = None
        self._logger = get_logger("ui.client")

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def abort(self) -> None:
        if self.busy:
            self._inflight.cancel()
            if self._pending is not None:
                self._remove(self._pending)

    def clear(self) -> None:
        self.abort()
        self.messages.clear()

    async def send(self, content: str) -> ChatMessage | None:
        """Send a user message and return the assistant reply, or ``None`` on failure."""

        content = content.strip()
        if not content:
            return None
        self.abort()
        if len(self.messages) >= self.max_messages:
            self._logger.info("session.history_reset", message_count=len(self.messages))
            self.messages.clear()
        user_message = ChatMessage(role="user", content=content)
        self.messages.append(user_message)
        task = asyncio.ensure_future(self._exchange(user_message))
        self._inflight = task
        self._pending = user_message
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            self._notify(Notification(kind="cancelled", message=CANCELLED_MESSAGE))
            return None
        finally:
            if self._inflight is task:
                self._inflight = None
                self._pending = None

    async def _exchange(self, user_message: ChatMessage) -> ChatMessage | None:
        history = list(self.messages)
        for attempt in range(self.max_retries + 1):
            try:
                text = await self._consume(history)
            except ChatAPIError as exc:
                self._logger.error("session.rejected", error=str(exc))
                self._remove(user_message)
                self._notify(Notification(kind="configuration", message=str(exc)))
                return None
            except _RETRYABLE as exc:
                if attempt >= self.max_retries:
                    self._logger.error("session.failed", attempts=attempt + 1, error=repr(exc))
                    break
                delay = self.base_delay * 2**attempt
                self._logger.warning("session.retry", attempt=attempt + 1, delay_seconds=delay, error=repr(exc))
                await self.sleep(delay)
                continue
            reply = ChatMessage(role="assistant", content=text)
            self.messages.append(reply)
            return reply
        self._remove(user_message)
        self._notify(Notification(kind="error", message=FAILED_MESSAGE))
        return None

    async def _consume(self, history: Sequence[ChatMessage]) -> str:
        text = ""
        async for snapshot in self.transport.stream(history):
            text = snapshot
            if self.on_update is not None:
                self.on_update(text)
        return text

    def _remove(self, message: ChatMessage) -> None:
        self.messages[:] = [item for item in self.messages if item.id != message.id]

    def _notify(self, notification: Notification) -> None:
        if self.on_notify is not None:
            self.on_notify(notification)
