# tests/test_usage_tracker.py
from datetime import datetime, timezone

import pytest

from core.errors import DailyLimitExceededError
from core.usage import TokenUsage, UsageTracker


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_record_usage_accumulates(fixed_clock):
    tracker = UsageTracker(100, clock=fixed_clock)
    tracker.record_usage(10)
    tracker.record_usage(5)
    stats = tracker.snapshot()
    assert stats.total_requests == 2
    assert stats.total_tokens == 15
    assert stats.daily_usage == {"2025-03-01": 15}


def test_check_budget_allows_below_limit(fixed_clock):
    tracker = UsageTracker(100, clock=fixed_clock)
    tracker.record_usage(99)
    tracker.check_budget()


def test_check_budget_rejects_at_limit(fixed_clock):
    tracker = UsageTracker(100, clock=fixed_clock)
    tracker.record_usage(100)
    with pytest.raises(DailyLimitExceededError) as exc_info:
        tracker.check_budget()
    assert exc_info.value.used == 100
    assert exc_info.value.limit == 100


def test_check_budget_uses_override_limit(fixed_clock):
    tracker = UsageTracker(1_000, clock=fixed_clock)
    tracker.record_usage(50)
    with pytest.raises(DailyLimitExceededError):
        tracker.check_budget(daily_limit=50)


def test_new_day_starts_new_bucket():
    clock = MutableClock(datetime(2025, 3, 1, 23, 59, tzinfo=timezone.utc))
    tracker = UsageTracker(100, clock=clock)
    tracker.record_usage(100)
    with pytest.raises(DailyLimitExceededError):
        tracker.check_budget()

    clock.now = datetime(2025, 3, 2, 0, 1, tzinfo=timezone.utc)
    tracker.check_budget()
    tracker.record_usage(7)
    stats = tracker.snapshot()
    assert stats.daily_usage == {"2025-03-01": 100, "2025-03-02": 7}
    assert stats.total_tokens == 107


def test_snapshot_is_a_copy(fixed_clock):
    tracker = UsageTracker(100, clock=fixed_clock)
    tracker.record_usage(3)
    stats = tracker.snapshot()
    stats.daily_usage["2025-03-01"] = 999
    stats.total_requests = 42
    fresh = tracker.snapshot()
    assert fresh.daily_usage["2025-03-01"] == 3
    assert fresh.total_requests == 1


def test_stats_to_dict_uses_camel_case(fixed_clock):
    tracker = UsageTracker(100, clock=fixed_clock)
    tracker.record_usage(4)
    assert tracker.snapshot().to_dict() == {
        "totalRequests": 1,
        "totalTokens": 4,
        "dailyUsage": {"2025-03-01": 4},
    }


def test_token_usage_add():
    usage = TokenUsage()
    usage.add(TokenUsage(1, 2, 3))
    usage.add({"prompt_tokens": 1, "total_tokens": 1})
    usage.add(None)
    assert usage.to_dict() == {
        "prompt_tokens": 2,
        "completion_tokens": 2,
        "total_tokens": 4,
    }
