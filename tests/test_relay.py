from __future__ import annotations

import asyncio
import threading
import time

from minerva.models import ChatMessage
from minerva.services.chat import ChatService
from minerva.services.relay import (
    DATABASE_MESSAGE,
    GENERIC_MESSAGE,
    TIMEOUT_MESSAGE,
    RelayState,
    ResponseRelay,
    classify_failure,
)


class FakeClock:
    def __init__(self) -> None:
        self.now_ms = 0

    def __call__(self) -> float:
        return self.now_ms / 1000


def _collect(relay: ResponseRelay, chunks):
    async def run():
        return [event async for event in relay.run(chunks)]

    return asyncio.run(run())


def test_updates_are_rate_limited_and_end_with_full_text():
    clock = FakeClock()

    async def paced():
        for _ in range(50):
            clock.now_ms += 4
            yield "x"

    events = _collect(ResponseRelay(timeout_seconds=30, update_interval=0.1, clock=clock), paced())
    intermediate = [event for event in events if event.kind == "update" and event.state is RelayState.STREAMING]
    assert 1 <= len(intermediate) <= 2
    assert events[-2].kind == "update"
    assert events[-2].text == "x" * 50
    assert events[-1].kind == "done"
    assert events[-1].state is RelayState.COMPLETED


def test_updates_carry_accumulated_text():
    async def words():
        for word in ("Once ", "upon ", "a ", "time"):
            yield word

    events = _collect(ResponseRelay(update_interval=0.0), words())
    texts = [event.text for event in events if event.kind == "update"]
    assert texts[:4] == ["Once ", "Once upon ", "Once upon a ", "Once upon a time"]
    assert texts[-1] == "Once upon a time"


def test_hanging_stream_times_out_with_apology():
    closed: list[bool] = []

    async def hanging():
        try:
            yield "partial "
            await asyncio.sleep(10)
            yield "never"
        finally:
            closed.append(True)

    relay = ResponseRelay(timeout_seconds=0.05, update_interval=5.0, abandon_grace_seconds=0.1)
    events = _collect(relay, hanging())
    assert [event.kind for event in events] == ["update", "done"]
    assert events[0].text == TIMEOUT_MESSAGE
    assert events[-1].state is RelayState.TIMED_OUT
    assert closed == [True]


def test_stream_failure_becomes_apology():
    async def broken():
        yield "Some "
        raise ConnectionError("chroma index unreachable")

    events = _collect(ResponseRelay(update_interval=5.0), broken())
    assert [event.kind for event in events] == ["update", "done"]
    assert events[-1].text == DATABASE_MESSAGE
    assert events[-1].state is RelayState.FAILED


def test_empty_stream_signals_done_once():
    async def empty():
        return
        yield  # pragma: no cover

    events = _collect(ResponseRelay(), empty())
    assert len(events) == 1
    assert events[0].kind == "done"
    assert events[0].state is RelayState.COMPLETED


def test_classify_failure_messages():
    assert classify_failure(TimeoutError()) == TIMEOUT_MESSAGE
    assert classify_failure(RuntimeError("request timed out after 45s")) == TIMEOUT_MESSAGE
    assert classify_failure(RuntimeError("Vector store returned 503")) == DATABASE_MESSAGE
    assert classify_failure(ValueError("bad token")) == GENERIC_MESSAGE


def test_closing_relay_early_closes_generation_stream():
    closed: list[bool] = []

    async def endless():
        try:
            while True:
                yield "more "
                await asyncio.sleep(0)
        finally:
            closed.append(True)

    async def run():
        events = ResponseRelay(update_interval=0.0).run(endless())
        first = await events.__anext__()
        await events.aclose()
        return first

    first = asyncio.run(run())
    assert first.kind == "update"
    assert first.text == "more "
    assert closed == [True]


class BlockingRetriever:
    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls = 0

    def retrieve(self, query, k=None):
        self.calls += 1
        self.release.wait(5)
        return []


def test_blocking_retrieval_does_not_stall_the_timeout():
    retriever = BlockingRetriever()
    service = ChatService(retriever)
    relay = ResponseRelay(timeout_seconds=0.1, update_interval=5.0, abandon_grace_seconds=0.1)
    history = [ChatMessage(role="user", content="Any good Regency romances?")]

    async def run():
        started = time.perf_counter()
        try:
            events = [event async for event in relay.run(service.stream(history))]
        finally:
            retriever.release.set()
        return events, time.perf_counter() - started

    events, elapsed = asyncio.run(run())
    assert elapsed < 2.0
    assert retriever.calls == 1
    assert [event.kind for event in events] == ["update", "done"]
    assert events[0].text == TIMEOUT_MESSAGE
    assert events[-1].state is RelayState.TIMED_OUT
