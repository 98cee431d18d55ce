"""Republic integration helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from contextlib import nullcontext
from typing import Any

from loguru import logger
from republic import LLM

from jobscout.config import Settings
from jobscout.core.budget import TokenUsage
from jobscout.core.conversation import ToolCall
from jobscout.core.provider import ModelEvent, ModelRequest, ModelResponse, StopReason, TextChunk
from jobscout.errors import ProviderCommunicationError

# Republic reports this when tool calls arrive with only schema tools attached;
# dispatch is ours, so it is not a provider failure.
TOOL_ERROR_KIND = "tool"


def build_llm(settings: Settings) -> LLM:
    """Build Republic LLM client configured for jobscout."""

    return LLM(
        settings.require_model(),
        api_key=settings.api_key,
        api_base=settings.api_base,
    )


def parse_tool_call(raw: Mapping[str, Any], index: int) -> ToolCall:
    """Convert one chat-completion tool call into a ``ToolCall``.

    Unparseable arguments are kept on the call so the dispatcher can report
    them as a failed result.
    """
    function = raw.get("function")
    if not isinstance(function, Mapping):
        function = {}
    call_id = str(raw.get("id") or f"call_{index}")
    name = str(function.get("name") or raw.get("name") or "")
    arguments = function.get("arguments", raw.get("input"))

    if arguments is None or arguments == "":
        return ToolCall(id=call_id, name=name)
    if isinstance(arguments, Mapping):
        return ToolCall(id=call_id, name=name, input=dict(arguments))
    try:
        parsed = json.loads(arguments)
    except (TypeError, json.JSONDecodeError) as exc:
        return ToolCall(id=call_id, name=name, argument_error=f"unparseable arguments for '{name}': {exc}")
    if not isinstance(parsed, dict):
        return ToolCall(id=call_id, name=name, argument_error=f"arguments for '{name}' must be an object")
    return ToolCall(id=call_id, name=name, input=parsed)


def parse_usage(raw: Mapping[str, Any] | None) -> TokenUsage:
    if not raw:
        return TokenUsage()
    input_tokens = raw.get("input_tokens", raw.get("prompt_tokens", 0)) or 0
    output_tokens = raw.get("output_tokens", raw.get("completion_tokens", 0)) or 0
    return TokenUsage(input_tokens=int(input_tokens), output_tokens=int(output_tokens))


def infer_stop_reason(tool_calls: tuple[ToolCall, ...], usage: TokenUsage, max_tokens: int) -> StopReason:
    if tool_calls:
        return StopReason.TOOL_USE
    if usage.output_tokens >= max_tokens:
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


class RepublicProvider:
    """``ModelProvider`` backed by ``republic.LLM.stream_events_async``.

    Tools are passed as schemas only; republic never runs them.
    """

    def __init__(self, llm: LLM, *, timeout_seconds: float | None = None) -> None:
        self._llm = llm
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> RepublicProvider:
        return cls(build_llm(settings), timeout_seconds=settings.model_timeout_seconds)

    async def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]:
        loop = asyncio.get_running_loop()
        deadline = None if self._timeout_seconds is None else loop.time() + self._timeout_seconds
        raw_calls: list[Mapping[str, Any]] = []
        raw_usage: Mapping[str, Any] | None = None
        text_parts: list[str] = []
        final: Mapping[str, Any] | None = None

        try:
            async with self._deadline(deadline):
                stream = await self._llm.stream_events_async(
                    system_prompt=request.system_prompt or None,
                    messages=request.messages,
                    max_tokens=request.max_tokens,
                    tools=request.tools or None,
                )
            iterator = aiter(stream)
            while True:
                async with self._deadline(deadline):
                    try:
                        event = await anext(iterator)
                    except StopAsyncIteration:
                        break
                if event.kind == "text":
                    delta = str(event.data.get("delta") or "")
                    if delta:
                        text_parts.append(delta)
                        yield TextChunk(delta)
                elif event.kind == "tool_call":
                    call = event.data.get("call")
                    if isinstance(call, Mapping):
                        raw_calls.append(call)
                elif event.kind == "usage":
                    raw_usage = event.data
                elif event.kind == "error":
                    self._raise_for_error(event.data, has_tool_calls=bool(raw_calls))
                elif event.kind == "final":
                    final = event.data
        except TimeoutError as exc:
            logger.error("model.call.timeout seconds={}", self._timeout_seconds)
            raise ProviderCommunicationError(f"model_timeout: no response within {self._timeout_seconds}s") from exc
        except ProviderCommunicationError:
            raise
        except Exception as exc:
            logger.exception("model.call.error")
            raise ProviderCommunicationError(f"model_call_error: {exc!s}") from exc

        if final is not None:
            if not raw_calls and isinstance(final.get("tool_calls"), list):
                raw_calls = [call for call in final["tool_calls"] if isinstance(call, Mapping)]
            if raw_usage is None and isinstance(final.get("usage"), Mapping):
                raw_usage = final["usage"]

        tool_calls = tuple(parse_tool_call(call, index) for index, call in enumerate(raw_calls))
        usage = parse_usage(raw_usage)
        yield ModelResponse(
            text="".join(text_parts),
            tool_calls=tool_calls,
            usage=usage,
            stop_reason=infer_stop_reason(tool_calls, usage, request.max_tokens),
        )

    @staticmethod
    def _raise_for_error(data: Mapping[str, Any], *, has_tool_calls: bool) -> None:
        kind = str(data.get("kind") or "unknown")
        message = str(data.get("message") or "provider error")
        if kind == TOOL_ERROR_KIND and has_tool_calls:
            return
        raise ProviderCommunicationError(f"{kind}: {message}")

    @staticmethod
    def _deadline(deadline: float | None) -> Any:
        if deadline is None:
            return nullcontext()
        return asyncio.timeout_at(deadline)
