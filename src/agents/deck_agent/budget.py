"""Soft deadline shared by the generation stages."""

from __future__ import annotations

import time
from typing import Callable


class TimeBudget:
    """Tracks remaining time and hands out shrinking per-stage timeouts.

    A stage is entered only when ``can_spend`` says the expected cost plus a
    reserve still fits; ``stage_timeout_ms`` returns 0 when even the minimum
    timeout no longer fits, which callers treat as "skip the stage".
    """

    def __init__(self, total_ms: int = 26000, clock: Callable[[], float] = time.monotonic):
        self.total_ms = max(0, int(total_ms))
        self._clock = clock
        self._started = clock()

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def remaining_ms(self) -> int:
        return max(0, self.total_ms - self.elapsed_ms())

    def can_spend(self, expected_ms: int, reserve_ms: int = 2500) -> bool:
        return self.remaining_ms() >= expected_ms + reserve_ms

    def stage_timeout_ms(self, cap_ms: int, minimum_ms: int = 2000, reserve_ms: int = 1500) -> int:
        available = self.remaining_ms() - reserve_ms
        if available < minimum_ms:
            return 0
        return max(minimum_ms, min(cap_ms, available))


__all__ = ["TimeBudget"]
