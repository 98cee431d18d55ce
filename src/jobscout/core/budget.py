"""Token budget accounting for one conversation session."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger


@dataclass(frozen=True)
class TokenUsage:
    """Usage reported by one model response."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class BudgetState:
    """Cumulative usage since the session was created."""

    input_tokens: int = 0
    output_tokens: int = 0
    iterations: int = 0

    @property
    def cumulative_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class BudgetTracker:
    """Accumulates reported usage against a provider's context window.

    The tracker only ever grows. A fresh tracker is created per session,
    which is the only way its counters return to zero.
    """

    def __init__(self, max_context: int, *, threshold: float = 0.95) -> None:
        if max_context <= 0:
            raise ValueError("max_context must be positive")
        if not 0 < threshold <= 1:
            raise ValueError("threshold must be in (0, 1]")
        self._max_context = max_context
        self._threshold = threshold
        self._state = BudgetState()

    @property
    def state(self) -> BudgetState:
        return self._state

    @property
    def max_context(self) -> int:
        return self._max_context

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def threshold_tokens(self) -> int:
        return int(self._max_context * self._threshold)

    def accumulate(self, usage: TokenUsage) -> BudgetState:
        if usage.input_tokens < 0 or usage.output_tokens < 0:
            raise ValueError(f"usage must be non-negative, got {usage}")
        self._state = BudgetState(
            input_tokens=self._state.input_tokens + usage.input_tokens,
            output_tokens=self._state.output_tokens + usage.output_tokens,
            iterations=self._state.iterations + 1,
        )
        logger.debug(
            "budget.update input={} output={} cumulative={} percentage={:.2f}",
            self._state.input_tokens,
            self._state.output_tokens,
            self._state.cumulative_tokens,
            self.percentage * 100,
        )
        return self._state

    @property
    def percentage(self) -> float:
        """Fraction of the context window consumed, 0.0 to 1.0 (may exceed 1.0)."""
        return self._state.cumulative_tokens / self._max_context

    def is_over_threshold(self, threshold: float | None = None) -> bool:
        fraction = self._threshold if threshold is None else threshold
        return self._state.cumulative_tokens >= int(self._max_context * fraction)
