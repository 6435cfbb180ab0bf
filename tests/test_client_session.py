from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from minerva.models import ChatMessage
from minerva.ui.client import (
    CANCELLED_MESSAGE,
    FAILED_MESSAGE,
    ChatAPIError,
    ChatSession,
    ChatTransportError,
    HttpChatTransport,
    Notification,
)


class ScriptedTransport:
    """Each call consumes one outcome: an exception to raise or snapshots to yield."""

    def __init__(self, outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[list[ChatMessage]] = []

    async def stream(self, messages):
        self.calls.append(list(messages))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "hang":
            yield "partial"
            await asyncio.sleep(10)
        for snapshot in outcome:
            yield snapshot


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_retries_with_exponential_backoff_then_gives_up():
    transport = ScriptedTransport([ChatTransportError("dropped")] * 4)
    sleep = RecordingSleep()
    notes: list[Notification] = []
    session = ChatSession(transport, sleep=sleep, on_notify=notes.append)

    reply = asyncio.run(session.send("Any new Regency reviews?"))

    assert reply is None
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert len(transport.calls) == 4
    assert notes == [Notification(kind="error", message=FAILED_MESSAGE)]
    assert session.messages == []


def test_transient_failure_recovers_on_retry():
    transport = ScriptedTransport([httpx.ConnectError("down"), ["Hel", "Hello"]])
    sleep = RecordingSleep()
    updates: list[str] = []
    session = ChatSession(transport, sleep=sleep, on_update=updates.append)

    reply = asyncio.run(session.send("hi"))

    assert reply is not None and reply.content == "Hello"
    assert sleep.delays == [1.0]
    assert updates == ["Hel", "Hello"]
    assert [message.role for message in session.messages] == ["user", "assistant"]


def test_rejection_is_not_retried():
    transport = ScriptedTransport([ChatAPIError("Missing required configuration")])
    sleep = RecordingSleep()
    notes: list[Notification] = []
    session = ChatSession(transport, sleep=sleep, on_notify=notes.append)

    assert asyncio.run(session.send("hi")) is None
    assert sleep.delays == []
    assert len(transport.calls) == 1
    assert notes[0].kind == "configuration"
    assert session.messages == []


def test_abort_cancels_without_retry():
    transport = ScriptedTransport(["hang"])
    notes: list[Notification] = []
    session = ChatSession(transport, on_notify=notes.append)

    async def scenario():
        pending = asyncio.ensure_future(session.send("hi"))
        await asyncio.sleep(0.01)
        assert session.busy
        session.abort()
        return await pending

    assert asyncio.run(scenario()) is None
    assert notes == [Notification(kind="cancelled", message=CANCELLED_MESSAGE)]
    assert len(transport.calls) == 1
    assert not session.busy


def test_new_send_supersedes_in_flight_exchange():
    transport = ScriptedTransport(["hang", ["second answer"]])
    notes: list[Notification] = []
    session = ChatSession(transport, on_notify=notes.append)

    async def scenario():
        first = asyncio.ensure_future(session.send("one"))
        await asyncio.sleep(0.01)
        second = await session.send("two")
        return await first, second

    first, second = asyncio.run(scenario())
    assert first is None
    assert second is not None and second.content == "second answer"
    assert [note.kind for note in notes] == ["cancelled"]
    assert [message.content for message in session.messages] == ["two", "second answer"]


def test_history_is_cleared_past_the_cap():
    transport = ScriptedTransport([["fresh"]])
    session = ChatSession(transport, max_messages=4)
    session.messages.extend(ChatMessage(role="user" if i % 2 == 0 else "assistant", content=str(i)) for i in range(4))

    asyncio.run(session.send("new topic"))

    assert [message.content for message in session.messages] == ["new topic", "fresh"]
    assert [message.content for message in transport.calls[0]] == ["new topic"]


def test_blank_message_is_ignored():
    transport = ScriptedTransport([])
    session = ChatSession(transport)
    assert asyncio.run(session.send("   ")) is None
    assert transport.calls == []


def _sse_client(handler) -> HttpChatTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://minerva.test")
    return HttpChatTransport(client=client)


async def _drain(transport: HttpChatTransport) -> list[str]:
    return [text async for text in transport.stream([ChatMessage(role="user", content="hi")])]


def test_http_transport_parses_updates_until_done():
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert request.url.path == "/api/chat"
        assert payload["messages"][0]["role"] == "user"
        body = (
            ": heartbeat\n\n"
            'event: update\ndata: {"text": "Hi"}\n\n'
            'event: update\ndata: {"text": "Hi there"}\n\n'
            'event: done\ndata: {"state": "completed"}\n\n'
        )
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    assert asyncio.run(_drain(_sse_client(handler))) == ["Hi", "Hi there"]


def test_http_transport_requires_done_marker():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text='event: update\ndata: {"text": "Hi"}\n\n')

    with pytest.raises(ChatTransportError):
        asyncio.run(_drain(_sse_client(handler)))


def test_http_transport_error_statuses():
    def configuration(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "Configuration error", "details": "missing key", "type": "configuration"})

    def unavailable(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    with pytest.raises(ChatAPIError):
        asyncio.run(_drain(_sse_client(configuration)))
    with pytest.raises(ChatTransportError):
        asyncio.run(_drain(_sse_client(unavailable)))
