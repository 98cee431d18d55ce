"""Contract between the orchestrator and a model provider."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from jobscout.core.budget import TokenUsage
from jobscout.core.conversation import ToolCall


class StopReason(StrEnum):
    """Typed completion signal reported with every model response."""

    END_TURN = "end_turn"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"


@dataclass(frozen=True)
class TextChunk:
    """Incremental assistant text."""

    delta: str


@dataclass(frozen=True)
class ModelResponse:
    """Final event of one model call."""

    text: str
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)
    stop_reason: StopReason = StopReason.END_TURN


ModelEvent = TextChunk | ModelResponse


@dataclass(frozen=True)
class ModelRequest:
    system_prompt: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    max_tokens: int


class ModelProvider(Protocol):
    """Streams one model call.

    Implementations yield any number of ``TextChunk`` followed by exactly one
    ``ModelResponse``, and raise ``ProviderCommunicationError`` when the
    provider cannot be reached or fails mid-stream.
    """

    def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]: ...
