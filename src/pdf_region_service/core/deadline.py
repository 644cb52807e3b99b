"""Wall-clock budget shared by every stage of one batch."""

import time
from typing import Callable, Optional


class DeadlineBudget:
    """Tracks time since batch start against a total deadline (milliseconds)."""

    def __init__(self, deadline_ms: int, clock: Optional[Callable[[], float]] = None):
        if deadline_ms < 0:
            raise ValueError(f"Deadline must be non-negative, got {deadline_ms}")
        self.deadline_ms = deadline_ms
        self._clock = clock or time.monotonic
        self._started = self._clock()

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def remaining_ms(self) -> int:
        return max(0, self.deadline_ms - self.elapsed_ms())

    def exhausted(self) -> bool:
        return self.remaining_ms() == 0

    def bound_ms(self, requested_ms: int) -> int:
        """
        Timeout for a sub-operation: never above the remaining budget and
        never below 1 ms.
        """
        return max(1, min(requested_ms, self.remaining_ms()))
