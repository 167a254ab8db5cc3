"""Retry policy for generation units: attempt budget, exponential backoff and batch shrinking."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """How a unit reacts to failures.

    ``max_retries`` is the number of retries after the first attempt, shared by
    the shrink path (capacity errors) and the backoff path (everything else).
    ``sleep`` is injectable so tests can record delays instead of waiting.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    min_batch_size: int = 5
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based): base, 2*base, 4*base..."""
        return self.base_delay * (2 ** (attempt - 1))

    def shrink(self, batch_size: int) -> int | None:
        """Halved batch size, floored at min_batch_size; None when already at the floor."""
        if batch_size <= self.min_batch_size:
            return None
        return max(self.min_batch_size, batch_size // 2)

    def wait(self, attempt: int) -> float:
        delay = self.backoff_delay(attempt)
        if delay > 0:
            self.sleep(delay)
        return delay
