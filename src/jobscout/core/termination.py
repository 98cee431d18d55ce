"""Termination policy evaluated after every model response."""

from __future__ import annotations

from enum import StrEnum

from jobscout.core.budget import BudgetTracker
from jobscout.core.provider import ModelResponse, StopReason


class TerminationDecision(StrEnum):
    CONTINUE = "continue"
    STOP_NATURAL = "stop_natural"
    STOP_BUDGET = "stop_budget"
    STOP_MODEL_LIMIT = "stop_model_limit"
    STOP_ERROR = "stop_error"

    @property
    def is_stop(self) -> bool:
        return self is not TerminationDecision.CONTINUE


NATURAL_STOP_REASONS = frozenset({StopReason.END_TURN, StopReason.STOP_SEQUENCE})


def decide(response: ModelResponse, budget: BudgetTracker) -> TerminationDecision:
    """Pick the next step; the budget check wins over everything the model asked for."""
    if budget.is_over_threshold():
        return TerminationDecision.STOP_BUDGET
    if response.stop_reason in NATURAL_STOP_REASONS and not response.tool_calls:
        return TerminationDecision.STOP_NATURAL
    if response.stop_reason is StopReason.MAX_TOKENS:
        return TerminationDecision.STOP_MODEL_LIMIT
    return TerminationDecision.CONTINUE
