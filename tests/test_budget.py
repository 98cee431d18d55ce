import pytest

from jobscout.core.budget import BudgetTracker, TokenUsage


def test_accumulate_sums_input_and_output() -> None:
    tracker = BudgetTracker(200_000)

    tracker.accumulate(TokenUsage(1200, 34))
    state = tracker.accumulate(TokenUsage(800, 16))

    assert state.input_tokens == 2000
    assert state.output_tokens == 50
    assert state.cumulative_tokens == 2050
    assert state.iterations == 2
    assert tracker.percentage == pytest.approx(2050 / 200_000)


def test_cumulative_tokens_never_decrease() -> None:
    tracker = BudgetTracker(10_000)
    seen: list[int] = []
    for usage in [TokenUsage(10, 1), TokenUsage(0, 0), TokenUsage(500, 20)]:
        seen.append(tracker.accumulate(usage).cumulative_tokens)

    assert seen == sorted(seen)
    assert seen[-1] == 531


def test_negative_usage_is_rejected() -> None:
    tracker = BudgetTracker(1000)
    with pytest.raises(ValueError, match="non-negative"):
        tracker.accumulate(TokenUsage(-1, 0))
    assert tracker.state.cumulative_tokens == 0


def test_threshold_is_inclusive() -> None:
    tracker = BudgetTracker(200_000, threshold=0.95)
    assert tracker.threshold_tokens == 190_000

    tracker.accumulate(TokenUsage(189_999, 0))
    assert not tracker.is_over_threshold()

    tracker.accumulate(TokenUsage(0, 1))
    assert tracker.is_over_threshold()


def test_threshold_override() -> None:
    tracker = BudgetTracker(1000, threshold=0.95)
    tracker.accumulate(TokenUsage(500, 0))

    assert tracker.is_over_threshold(0.5)
    assert not tracker.is_over_threshold()


@pytest.mark.parametrize(("max_context", "threshold"), [(0, 0.95), (100, 0.0), (100, 1.5)])
def test_invalid_configuration(max_context: int, threshold: float) -> None:
    with pytest.raises(ValueError):
        BudgetTracker(max_context, threshold=threshold)
