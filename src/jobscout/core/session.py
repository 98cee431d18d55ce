"""Per-message session state and the persistence contract."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from jobscout.core.budget import BudgetTracker
from jobscout.core.conversation import Conversation, ConversationTurn
from jobscout.core.dispatcher import ToolInvocation


@dataclass(frozen=True)
class ChatRequest:
    """Inbound user message. Without ``session_id`` a new session starts."""

    message: str
    agent_id: str
    session_id: str | None = None


class HistoryStore(Protocol):
    """Persistence collaborator for conversation turns."""

    async def load_history(self, session_id: str) -> list[ConversationTurn]: ...

    async def append_turns(self, session_id: str, turns: Sequence[ConversationTurn]) -> None: ...


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:16]}"


@dataclass
class ConversationSession:
    """State owned by one loop run; discarded once the run terminates."""

    session_id: str
    agent_id: str
    conversation: Conversation
    budget: BudgetTracker
    invocations: list[ToolInvocation] = field(default_factory=list)
