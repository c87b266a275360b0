# core/usage.py
"""Token usage records and the daily budget tracker."""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from core.errors import DailyLimitExceededError

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TokenUsage:
    """LLM token usage metrics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: TokenUsage | dict[str, int] | None) -> None:
        """Accumulate usage values from another instance or dictionary."""
        if not usage:
            return
        if isinstance(usage, TokenUsage):
            self.prompt_tokens += usage.prompt_tokens
            self.completion_tokens += usage.completion_tokens
            self.total_tokens += usage.total_tokens
        else:
            self.prompt_tokens += usage.get("prompt_tokens", 0)
            self.completion_tokens += usage.get("completion_tokens", 0)
            self.total_tokens += usage.get("total_tokens", 0)

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class UsageStats:
    """Process-lifetime request and token counters."""

    total_requests: int = 0
    total_tokens: int = 0
    daily_usage: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "totalRequests": self.total_requests,
            "totalTokens": self.total_tokens,
            "dailyUsage": dict(self.daily_usage),
        }


class UsageTracker:
    """Enforce the daily token budget and accumulate usage statistics.

    Daily buckets are keyed by the ISO date of ``clock()``, so a new day
    starts a fresh bucket without any explicit rollover.
    """

    def __init__(
        self,
        daily_limit: int,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.daily_limit = daily_limit
        self._clock = clock
        self._stats = UsageStats()

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def used_today(self) -> int:
        return self._stats.daily_usage.get(self._today(), 0)

    def check_budget(self, daily_limit: int | None = None) -> None:
        """Raise ``DailyLimitExceededError`` once today's usage reaches the limit."""
        limit = self.daily_limit if daily_limit is None else daily_limit
        used = self.used_today()
        if used >= limit:
            logger.warning(
                f"Daily token budget exhausted ({used}/{limit}). Rejecting request."
            )
            raise DailyLimitExceededError(used, limit)

    def record_usage(self, tokens: int) -> None:
        today = self._today()
        self._stats.total_requests += 1
        self._stats.total_tokens += tokens
        self._stats.daily_usage[today] = self._stats.daily_usage.get(today, 0) + tokens

    def snapshot(self) -> UsageStats:
        """Return a copy of the current stats; mutating it does not affect the tracker."""
        return copy.deepcopy(self._stats)
