from __future__ import annotations

import time
from typing import Callable


class TurnBudget:
    """Wall-clock deadline shared by every suspension point of one conversational turn."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.deadline = clock() + max(0.0, seconds)

    def remaining(self) -> float:
        return max(0.0, self.deadline - self._clock())

    def cap(self, timeout_s: float) -> float:
        return min(timeout_s, self.remaining())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0
