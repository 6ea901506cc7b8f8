"""
Token cost accounting and the daily spend ceiling for agent calls.
"""

import threading
from datetime import date, datetime, UTC
from typing import Callable, Optional
from loguru import logger
from ..core.errors import BudgetExceededError
from ..models.pipeline import CostBreakdown, CostRecord

# USD per 1M tokens: (input, output)
PRICING: dict[str, tuple[float, float]] = {
    "extraction": (3.00, 15.00),  # multimodal tier
    "scoring": (0.80, 4.00),      # cheaper text tier
}
TOKENS_PER_UNIT = 1_000_000


def calculate_cost(tier: str, input_tokens: int, output_tokens: int) -> CostRecord:
    """
    Price one agent call.

    Args:
        tier: Pricing tier ("extraction" or "scoring")
        input_tokens: Prompt tokens reported by the API
        output_tokens: Completion tokens reported by the API

    Raises:
        ValueError: Unknown tier
    """
    if tier not in PRICING:
        raise ValueError(f"Unknown pricing tier: {tier}")

    input_rate, output_rate = PRICING[tier]
    input_cost = (input_tokens / TOKENS_PER_UNIT) * input_rate
    output_cost = (output_tokens / TOKENS_PER_UNIT) * output_rate

    return CostRecord(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_cost=input_cost + output_cost,
        breakdown=CostBreakdown(input=input_cost, output=output_cost),
    )


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DailyBudgetTracker:
    """
    Accumulates spend per UTC calendar day and refuses work past a ceiling.

    Shared across pipeline runs, so every read-modify-write (including the
    day rollover) happens under one lock.

    Args:
        daily_limit: Ceiling in USD for a single UTC day
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(self, daily_limit: float, clock: Callable[[], datetime] = _utc_now):
        self.daily_limit = daily_limit
        self._clock = clock
        self._lock = threading.Lock()
        self._day: Optional[date] = None
        self._total = 0.0

    def _today(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(UTC)
        return now.date()

    def _roll_over(self) -> None:
        today = self._today()
        if self._day != today:
            if self._day is not None:
                logger.info("Daily cost budget reset", previous_day=str(self._day), spent=self._total)
            self._day = today
            self._total = 0.0

    def check(self) -> None:
        """Raise BudgetExceededError once today's spend has reached the limit."""
        with self._lock:
            self._roll_over()
            if self._total >= self.daily_limit:
                logger.warning("Daily cost limit reached", daily_limit=self.daily_limit, spent=self._total)
                raise BudgetExceededError(self.daily_limit, self._total)

    def record(self, cost: float) -> float:
        """Add spend for today and return the new daily total."""
        if cost < 0:
            raise ValueError("Cost cannot be negative")
        with self._lock:
            self._roll_over()
            self._total += cost
            return self._total

    def usage(self) -> dict:
        with self._lock:
            self._roll_over()
            return {
                "date": self._day.isoformat(),
                "daily_total": self._total,
                "daily_limit": self.daily_limit,
                "remaining_budget": max(0.0, self.daily_limit - self._total),
            }
