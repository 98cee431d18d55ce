import asyncio
import json

import pytest

from jobscout.core.events import (
    BudgetUpdate,
    CollectingSink,
    Completion,
    ErrorEvent,
    EventEmitter,
    QueueSink,
    StreamEvent,
    TextDelta,
    ToolResultEvent,
    ToolStart,
    ToolTransition,
    encode_sse,
)
from jobscout.errors import StreamClosedError


def test_wire_names() -> None:
    assert TextDelta("hi").to_wire() == {"type": "chunk", "content": "hi"}
    assert ToolStart("search_jobs_indeed", "t1", {"q": "x"}).to_wire() == {
        "type": "tool_start",
        "tool": "search_jobs_indeed",
        "toolId": "t1",
        "params": {"q": "x"},
    }
    assert ToolTransition("a", "b", 1).to_wire() == {"type": "tool_transition", "from": "a", "to": "b", "index": 1}
    assert Completion("abc", "stop_natural", "hi").to_wire() == {
        "type": "complete",
        "sessionId": "abc",
        "reason": "stop_natural",
        "text": "hi",
    }


def test_failed_tool_result_carries_error() -> None:
    wire = ToolResultEvent("search", "t1", False, error="Tool execution failed: boom").to_wire()
    assert wire["success"] is False
    assert wire["error"] == "Tool execution failed: boom"
    assert "message" not in wire


def test_budget_update_rounds_percentage() -> None:
    wire = BudgetUpdate(1234, 56, 1290, 0.645, 1).to_wire()
    assert wire == {
        "type": "context_usage",
        "inputTokens": 1234,
        "outputTokens": 56,
        "totalTokens": 1290,
        "contextPercentage": 0.65,
        "iteration": 1,
    }


def test_encode_sse_frame() -> None:
    frame = encode_sse(ErrorEvent("boom"))
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame.removeprefix("data: ")) == {"type": "error", "error": "boom"}


@pytest.mark.asyncio
async def test_emitter_closes_after_terminal_event() -> None:
    sink = CollectingSink()
    emitter = EventEmitter(sink)

    await emitter.emit(TextDelta("a"))
    await emitter.emit(Completion("s1", "stop_natural", "a"))

    assert emitter.closed
    assert not emitter.failed
    with pytest.raises(StreamClosedError):
        await emitter.emit(TextDelta("late"))
    assert [event.kind for event in sink.events] == ["text_delta", "completion"]
    assert emitter.count == 2


@pytest.mark.asyncio
async def test_emitter_fails_closed_when_sink_rejects_write() -> None:
    async def broken(event: StreamEvent) -> None:
        raise ConnectionResetError("client went away")

    emitter = EventEmitter(broken)
    with pytest.raises(StreamClosedError, match="client went away"):
        await emitter.emit(TextDelta("a"))

    assert emitter.closed
    assert emitter.failed
    with pytest.raises(StreamClosedError):
        await emitter.emit(TextDelta("b"))


@pytest.mark.asyncio
async def test_queue_sink_delivers_in_order_until_closed() -> None:
    sink = QueueSink()
    await sink(TextDelta("a"))
    await sink(TextDelta("b"))
    await sink.close()

    received = [event async for event in sink.events()]
    assert received == [TextDelta("a"), TextDelta("b")]


@pytest.mark.asyncio
async def test_detached_queue_sink_rejects_writes() -> None:
    sink = QueueSink()
    sink.detach()
    with pytest.raises(StreamClosedError):
        await sink(TextDelta("a"))


@pytest.mark.asyncio
async def test_detach_releases_a_write_blocked_on_a_full_queue() -> None:
    sink = QueueSink(maxsize=1)
    await sink(TextDelta("a"))
    blocked = asyncio.create_task(sink(TextDelta("b")))
    await asyncio.sleep(0)
    assert not blocked.done()

    sink.detach()

    with pytest.raises(StreamClosedError):
        await asyncio.wait_for(blocked, timeout=1)


def test_collecting_sink_text() -> None:
    sink = CollectingSink(events=[TextDelta("Hel"), ToolStart("x", "t1"), TextDelta("lo")])
    assert sink.text() == "Hello"
    assert len(sink.of_kind("tool_start")) == 1
