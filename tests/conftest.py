from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field

import pytest

from jobscout.core.budget import TokenUsage
from jobscout.core.conversation import ToolCall
from jobscout.core.provider import ModelEvent, ModelRequest, ModelResponse, StopReason, TextChunk


@dataclass
class ScriptedProvider:
    """Plays back one scripted step per model call."""

    steps: list[list[ModelEvent] | Exception]
    requests: list[ModelRequest] = field(default_factory=list)

    async def stream(self, request: ModelRequest) -> AsyncIterator[ModelEvent]:
        self.requests.append(request)
        if not self.steps:
            raise AssertionError("unexpected model call")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        for event in step:
            yield event

    @staticmethod
    def reply(
        *chunks: str,
        calls: Iterable[ToolCall] = (),
        usage: tuple[int, int] = (100, 10),
        stop: StopReason | None = None,
    ) -> list[ModelEvent]:
        tool_calls = tuple(calls)
        if stop is None:
            stop = StopReason.TOOL_USE if tool_calls else StopReason.END_TURN
        events: list[ModelEvent] = [TextChunk(chunk) for chunk in chunks]
        events.append(
            ModelResponse(
                text="".join(chunks),
                tool_calls=tool_calls,
                usage=TokenUsage(*usage),
                stop_reason=stop,
            )
        )
        return events


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    return ScriptedProvider


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))
    monkeypatch.setenv("JOBSCOUT_HOME", str(tmp_path_factory.mktemp("home")))
    for name in ("JOBSCOUT_MODEL", "JOBSCOUT_API_KEY", "JOBSCOUT_CONTEXT_THRESHOLD", "JOBSCOUT_MAX_TOKENS"):
        monkeypatch.delenv(name, raising=False)
