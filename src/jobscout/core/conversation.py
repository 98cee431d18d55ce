"""Ordered turn history for one conversation session."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


@dataclass(frozen=True)
class ToolCall:
    """One tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    argument_error: str | None = field(default=None, compare=False)

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": dict(self.input)}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ToolCall:
        raw_input = payload.get("input")
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            input=dict(raw_input) if isinstance(raw_input, dict) else {},
        )


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the history: user, assistant or tool result."""

    role: Role
    content: str
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_name: str | None = None
    is_error: bool = False

    @classmethod
    def user(cls, content: str) -> ConversationTurn:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Iterable[ToolCall] = ()) -> ConversationTurn:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool_result(
        cls,
        tool_call_id: str,
        content: str,
        *,
        tool_name: str | None = None,
        is_error: bool = False,
    ) -> ConversationTurn:
        return cls(
            role=Role.TOOL_RESULT,
            content=content,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            is_error=is_error,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_name is not None:
            payload["tool_name"] = self.tool_name
        if self.is_error:
            payload["is_error"] = True
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ConversationTurn:
        raw_calls = payload.get("tool_calls") or []
        return cls(
            role=Role(payload["role"]),
            content=str(payload.get("content") or ""),
            tool_call_id=payload.get("tool_call_id"),
            tool_calls=tuple(ToolCall.from_payload(call) for call in raw_calls if isinstance(call, dict)),
            tool_name=payload.get("tool_name"),
            is_error=bool(payload.get("is_error", False)),
        )


def unique_call_ids(calls: Iterable[ToolCall]) -> tuple[ToolCall, ...]:
    """Rename repeated call ids (``t1``, ``t1_2``, ...) so each result answers exactly one call."""
    seen: set[str] = set()
    unique: list[ToolCall] = []
    for call in calls:
        call_id, suffix = call.id, 2
        while call_id in seen:
            call_id = f"{call.id}_{suffix}"
            suffix += 1
        seen.add(call_id)
        unique.append(call if call_id == call.id else replace(call, id=call_id))
    return tuple(unique)


class ConversationError(ValueError):
    """Raised when an append would break the turn ordering invariant."""


class Conversation:
    """Growing turn sequence owned by one session.

    Every tool_result turn must answer a call emitted by the assistant turn
    that immediately precedes the current run of tool results.
    """

    def __init__(self, turns: Iterable[ConversationTurn] = ()) -> None:
        self._turns: list[ConversationTurn] = []
        self._hydrated = 0
        for turn in turns:
            self._append(turn)
        self._hydrated = len(self._turns)

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def new_turns(self) -> list[ConversationTurn]:
        """Turns appended after hydration from persisted history."""
        return self._turns[self._hydrated :]

    def append_user(self, content: str) -> ConversationTurn:
        return self._append(ConversationTurn.user(content))

    def append_assistant(self, content: str, tool_calls: Iterable[ToolCall] = ()) -> ConversationTurn:
        return self._append(ConversationTurn.assistant(content, tool_calls))

    def append_tool_result(
        self,
        tool_call_id: str,
        content: str,
        *,
        tool_name: str | None = None,
        is_error: bool = False,
    ) -> ConversationTurn:
        return self._append(
            ConversationTurn.tool_result(tool_call_id, content, tool_name=tool_name, is_error=is_error)
        )

    def extend_last_assistant(self, text: str) -> ConversationTurn:
        """Append ``text`` to the latest turn, which must be an assistant turn without calls."""
        if not self._turns or self._turns[-1].role is not Role.ASSISTANT or self._turns[-1].tool_calls:
            raise ConversationError("no closing assistant turn to extend")
        last = self._turns[-1]
        self._turns[-1] = ConversationTurn.assistant(last.content + text)
        return self._turns[-1]

    def pending_tool_calls(self) -> list[ToolCall]:
        """Calls of the latest assistant turn that have no result yet."""
        assistant_index = self._open_assistant_index()
        if assistant_index is None:
            return []
        answered = {turn.tool_call_id for turn in self._turns[assistant_index + 1 :]}
        return [call for call in self._turns[assistant_index].tool_calls if call.id not in answered]

    def close_pending(self, reason: str) -> list[ConversationTurn]:
        """Answer every unanswered call with a failed result carrying ``reason``."""
        closed: list[ConversationTurn] = []
        for call in self.pending_tool_calls():
            content = json.dumps({"success": False, "error": reason}, ensure_ascii=False)
            closed.append(self.append_tool_result(call.id, content, tool_name=call.name, is_error=True))
        return closed

    def to_messages(self) -> list[dict[str, Any]]:
        """Render turns as chat-completion messages."""
        messages: list[dict[str, Any]] = []
        for turn in self._turns:
            if turn.role is Role.USER:
                messages.append({"role": "user", "content": turn.content})
            elif turn.role is Role.ASSISTANT:
                message: dict[str, Any] = {"role": "assistant", "content": turn.content or None}
                if turn.tool_calls:
                    message["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.input, ensure_ascii=False),
                            },
                        }
                        for call in turn.tool_calls
                    ]
                messages.append(message)
            else:
                messages.append({"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content})
        return messages

    def _append(self, turn: ConversationTurn) -> ConversationTurn:
        if turn.role is Role.TOOL_RESULT:
            self._check_tool_result(turn)
        self._turns.append(turn)
        return turn

    def _check_tool_result(self, turn: ConversationTurn) -> None:
        assistant_index = self._open_assistant_index()
        if assistant_index is None:
            raise ConversationError(f"tool result {turn.tool_call_id!r} has no preceding assistant turn")
        emitted = {call.id for call in self._turns[assistant_index].tool_calls}
        if turn.tool_call_id not in emitted:
            raise ConversationError(f"tool result {turn.tool_call_id!r} does not answer the preceding assistant turn")
        answered = {item.tool_call_id for item in self._turns[assistant_index + 1 :]}
        if turn.tool_call_id in answered:
            raise ConversationError(f"tool call {turn.tool_call_id!r} already has a result")

    def _open_assistant_index(self) -> int | None:
        # Walk back over the current run of tool results to the assistant turn that owns it.
        for index in range(len(self._turns) - 1, -1, -1):
            role = self._turns[index].role
            if role is Role.TOOL_RESULT:
                continue
            if role is Role.ASSISTANT:
                return index
            return None
        return None
