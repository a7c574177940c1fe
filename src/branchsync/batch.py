"""Throttled batch scheduling for bulk remote calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchScheduler:
    """Runs a worker over many items in fixed-size, spaced-out batches.

    The worker is expected to issue its remote calls through a
    :class:`~branchsync.ratelimit.RateLimitedExecutor`; the scheduler only
    adds the spacing between items and between batches.  The first failure
    aborts the remaining schedule.
    """

    def __init__(
        self,
        *,
        batch_size: int = 10,
        delay_between_items: float = 0.075,
        delay_between_batches: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.delay_between_items = delay_between_items
        self.delay_between_batches = delay_between_batches
        self._sleep = sleep

    def __repr__(self) -> str:
        return (f"BatchScheduler(batch_size={self.batch_size}, "
                f"delay_between_items={self.delay_between_items}, "
                f"delay_between_batches={self.delay_between_batches})")

    def run(self, items: Sequence[T], worker: Callable[[T], R], *, label: str = "batch") -> list[tuple[T, R]]:
        """Apply *worker* to every item; return ``(item, result)`` pairs."""
        items = list(items)
        if not items:
            return []
        batches = [items[i:i + self.batch_size] for i in range(0, len(items), self.batch_size)]
        results: list[tuple[T, R]] = []
        for index, batch in enumerate(batches):
            if index and self.delay_between_batches > 0:
                self._sleep(self.delay_between_batches)
            logger.debug("%s: batch %d/%d (%d items)", label, index + 1, len(batches), len(batch))
            for position, item in enumerate(batch):
                if position and self.delay_between_items > 0:
                    self._sleep(self.delay_between_items)
                results.append((item, worker(item)))
        return results
