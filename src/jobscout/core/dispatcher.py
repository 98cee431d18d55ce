"""Sequential tool dispatch with one normalized result envelope."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from jobscout.core.conversation import ToolCall
from jobscout.core.events import EventEmitter, StatusEvent, ToolResultEvent, ToolStart, ToolTransition
from jobscout.errors import MalformedToolRequest, StreamClosedError, ToolExecutionError
from jobscout.tools.registry import CapabilityRegistry

CancelProbe = Callable[[], Awaitable[bool]]


class ToolResult(BaseModel):
    """Tagged success/failure envelope every handler output is normalized into."""

    model_config = ConfigDict(extra="allow")

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _failure_has_error(self) -> ToolResult:
        if not self.success and not self.error:
            self.error = self.message or "tool reported failure"
        return self

    @classmethod
    def failure(cls, error: str, *, message: str | None = None) -> ToolResult:
        return cls(success=False, error=error, message=message)


@dataclass
class ToolInvocation:
    """One tool call from request to normalized result."""

    id: str
    name: str
    input: dict[str, Any]
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    result: ToolResult | None = None

    @property
    def success(self) -> bool | None:
        return None if self.result is None else self.result.success

    @property
    def output(self) -> Any:
        return None if self.result is None else self.result.data

    @property
    def error(self) -> str | None:
        return None if self.result is None else self.result.error

    def finish(self, result: ToolResult) -> None:
        self.result = result
        self.completed_at = datetime.now(UTC)

    def result_content(self) -> str:
        """Serialized envelope handed back to the model as the tool result."""
        if self.result is None:
            return json.dumps({"success": False, "error": "tool did not run"})
        return json.dumps(self.result.model_dump(exclude_none=True), ensure_ascii=False, default=str)


def normalize_result(raw: Any) -> ToolResult:
    """Map any handler output onto ``ToolResult``.

    Mappings carrying a boolean ``success`` are validated as an envelope;
    everything else is treated as successful data.
    """
    if isinstance(raw, ToolResult):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, dict) and isinstance(raw.get("success"), bool):
        try:
            return ToolResult.model_validate(raw)
        except ValidationError as exc:
            return ToolResult.failure(f"{ToolExecutionError.__name__}: malformed result envelope: {exc.errors()!r}")
    return ToolResult(success=True, data=raw)


@dataclass
class DispatchOutcome:
    invocations: list[ToolInvocation]
    cancelled: bool = False


class ToolDispatcher:
    """Runs one response's tool calls one after another, in request order.

    Handler failures are contained and become failed results. Only emitter
    write failures propagate.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        emitter: EventEmitter,
        *,
        is_cancelled: CancelProbe | None = None,
    ) -> None:
        self._registry = registry
        self._emitter = emitter
        self._is_cancelled = is_cancelled

    async def dispatch(self, calls: Sequence[ToolCall]) -> DispatchOutcome:
        invocations: list[ToolInvocation] = []
        batch = len(calls) > 1
        if batch:
            await self._emitter.emit(StatusEvent(f"Executing {len(calls)} tools..."))

        for index, call in enumerate(calls):
            if await self._cancelled():
                logger.info("dispatch.cancelled remaining={}", len(calls) - index)
                return DispatchOutcome(invocations, cancelled=True)
            if index > 0:
                await self._emitter.emit(ToolTransition(calls[index - 1].name, call.name, index))

            invocation = ToolInvocation(id=call.id, name=call.name, input=dict(call.input))
            await self._emitter.emit(ToolStart(call.name, call.id, dict(call.input)))
            result = await self._run(call)
            invocation.finish(result)

            if await self._cancelled():
                logger.info("dispatch.discarded name={} id={}", call.name, call.id)
                return DispatchOutcome(invocations, cancelled=True)

            invocations.append(invocation)
            await self._emit_result(invocation, result)

        if batch:
            failures = sum(1 for item in invocations if not item.success)
            summary = f"Completed {len(calls)} tools successfully"
            if failures:
                summary = f"Completed {len(calls)} tools with {failures} error{'s' if failures > 1 else ''}"
            await self._emitter.emit(StatusEvent(summary))
        return DispatchOutcome(invocations)

    async def _run(self, call: ToolCall) -> ToolResult:
        if call.argument_error is not None:
            return ToolResult.failure(f"{MalformedToolRequest.__name__}: {call.argument_error}")
        if call.name not in self._registry:
            logger.warning("tool.unknown name={} id={}", call.name, call.id)
            return ToolResult.failure(f"{MalformedToolRequest.__name__}: unknown tool '{call.name}'")
        try:
            raw = await self._registry.execute(call.name, call.input)
        except StreamClosedError:
            raise
        except ValidationError as exc:
            return ToolResult.failure(
                f"{MalformedToolRequest.__name__}: invalid input for '{call.name}': {exc.error_count()} error(s)",
                message=str(exc),
            )
        except Exception as exc:
            return ToolResult.failure(f"Tool execution failed: {exc!s}", message=type(exc).__name__)
        return normalize_result(raw)

    async def _emit_result(self, invocation: ToolInvocation, result: ToolResult) -> None:
        await self._emitter.emit(
            ToolResultEvent(
                tool=invocation.name,
                tool_id=invocation.id,
                success=result.success,
                result=result.data,
                message=result.message,
                error=result.error,
            )
        )

    async def _cancelled(self) -> bool:
        if self._is_cancelled is None:
            return False
        return await self._is_cancelled()
