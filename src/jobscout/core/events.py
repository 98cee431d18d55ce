"""Outbound stream events and the single-writer emitter."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from loguru import logger

from jobscout.errors import StreamClosedError


@dataclass(frozen=True)
class StreamEvent:
    """Base class for every outbound event."""

    kind: ClassVar[str] = "event"
    wire_type: ClassVar[str] = "event"

    def payload(self) -> dict[str, Any]:
        return {}

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.wire_type, **self.payload()}


@dataclass(frozen=True)
class TextDelta(StreamEvent):
    kind: ClassVar[str] = "text_delta"
    wire_type: ClassVar[str] = "chunk"

    content: str

    def payload(self) -> dict[str, Any]:
        return {"content": self.content}


@dataclass(frozen=True)
class ToolStart(StreamEvent):
    kind: ClassVar[str] = "tool_start"
    wire_type: ClassVar[str] = "tool_start"

    tool: str
    tool_id: str
    params: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {"tool": self.tool, "toolId": self.tool_id, "params": self.params}


@dataclass(frozen=True)
class ToolResultEvent(StreamEvent):
    kind: ClassVar[str] = "tool_result"
    wire_type: ClassVar[str] = "tool_result"

    tool: str
    tool_id: str
    success: bool
    result: Any = None
    message: str | None = None
    error: str | None = None

    def payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool": self.tool,
            "toolId": self.tool_id,
            "success": self.success,
            "result": self.result,
        }
        if self.message is not None:
            data["message"] = self.message
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class BudgetUpdate(StreamEvent):
    kind: ClassVar[str] = "budget_update"
    wire_type: ClassVar[str] = "context_usage"

    input_tokens: int
    output_tokens: int
    total_tokens: int
    context_percentage: float
    iteration: int

    def payload(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "contextPercentage": round(self.context_percentage, 2),
            "iteration": self.iteration,
        }


@dataclass(frozen=True)
class Completion(StreamEvent):
    kind: ClassVar[str] = "completion"
    wire_type: ClassVar[str] = "complete"

    session_id: str
    decision: str
    text: str = ""

    def payload(self) -> dict[str, Any]:
        return {"sessionId": self.session_id, "reason": self.decision, "text": self.text}


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    kind: ClassVar[str] = "error"
    wire_type: ClassVar[str] = "error"

    error: str

    def payload(self) -> dict[str, Any]:
        return {"error": self.error}


@dataclass(frozen=True)
class ToolTransition(StreamEvent):
    """Narration hook between two consecutive tools of one batch."""

    kind: ClassVar[str] = "tool_transition"
    wire_type: ClassVar[str] = "tool_transition"

    previous_tool: str
    next_tool: str
    index: int

    def payload(self) -> dict[str, Any]:
        return {"from": self.previous_tool, "to": self.next_tool, "index": self.index}


@dataclass(frozen=True)
class StatusEvent(StreamEvent):
    kind: ClassVar[str] = "status"
    wire_type: ClassVar[str] = "status"

    content: str

    def payload(self) -> dict[str, Any]:
        return {"content": self.content}


TERMINAL_EVENTS = (Completion, ErrorEvent)

EventSink = Callable[[StreamEvent], Awaitable[None]]


def encode_sse(event: StreamEvent) -> str:
    """Serialize one event as a server-sent-events ``data:`` frame."""
    return f"data: {json.dumps(event.to_wire(), ensure_ascii=False, default=str)}\n\n"


class EventEmitter:
    """Strictly ordered writer for one session's event stream.

    A failed write closes the emitter and surfaces as ``StreamClosedError``;
    after a terminal event nothing else may be written.
    """

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink
        self._closed = False
        self._failed = False
        self._count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failed(self) -> bool:
        """True when the transport rejected a write."""
        return self._failed

    @property
    def count(self) -> int:
        return self._count

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            raise StreamClosedError(f"stream closed, cannot emit {event.kind}")
        try:
            await self._sink(event)
        except StreamClosedError:
            self._closed = True
            self._failed = True
            raise
        except Exception as exc:
            self._closed = True
            self._failed = True
            logger.warning("events.write.error kind={} error={}", event.kind, exc)
            raise StreamClosedError(f"transport rejected {event.kind}: {exc!s}") from exc
        self._count += 1
        if isinstance(event, TERMINAL_EVENTS):
            self._closed = True


class QueueSink:
    """Bridges the emitter to a consumer iterating on another task."""

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._detached = False

    async def __call__(self, event: StreamEvent) -> None:
        if self._detached:
            raise StreamClosedError("consumer detached")
        await self._queue.put(event)
        # A put blocked on a full queue is released by detach().
        if self._detached:
            raise StreamClosedError("consumer detached")

    def detach(self) -> None:
        """Mark the consumer as gone; pending and later writes fail."""
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def close(self) -> None:
        if self._detached:
            return
        await self._queue.put(None)

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


@dataclass
class CollectingSink:
    """In-memory sink keeping every event, used by the CLI renderer hook and tests."""

    events: list[StreamEvent] = field(default_factory=list)
    on_event: Callable[[StreamEvent], None] | None = None

    async def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)
        if self.on_event is not None:
            self.on_event(event)

    def of_kind(self, kind: str) -> list[StreamEvent]:
        return [event for event in self.events if event.kind == kind]

    def text(self) -> str:
        return "".join(event.content for event in self.events if isinstance(event, TextDelta))
