"""Per-minute request counter for the Notion API."""

import time
from collections import deque
from typing import Callable

from loguru import logger

from notion_clipper.errors import RateLimitError

WINDOW_SECONDS = 60.0


class RequestBudget:
    """
    Sliding one-minute request counter.

    Advisory only: ``acquire`` raises RateLimitError before the call is made
    once the budget is spent. It never sleeps or queues.
    """

    def __init__(self, per_minute: int = 180, clock: Callable[[], float] = time.monotonic):
        if per_minute <= 0:
            raise ValueError("per_minute must be positive")
        self.per_minute = per_minute
        self._clock = clock
        self._calls = deque()

    def _expire(self, now: float):
        while self._calls and now - self._calls[0] >= WINDOW_SECONDS:
            self._calls.popleft()

    @property
    def remaining(self) -> int:
        self._expire(self._clock())
        return self.per_minute - len(self._calls)

    def acquire(self, label: str = "request"):
        now = self._clock()
        self._expire(now)
        if len(self._calls) >= self.per_minute:
            logger.warning("Request budget exhausted ({}/min) before {}", self.per_minute, label)
            raise RateLimitError(
                f"Request budget of {self.per_minute}/min exhausted; retry later"
            )
        self._calls.append(now)
