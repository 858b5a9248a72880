from __future__ import annotations

import logging
import random
import time
from typing import Callable, Generic, Optional, TypeVar


S = TypeVar("S")

logger = logging.getLogger("mentionloop.interactions")


class RecurringTask(Generic[S]):
    """Run ``step(state) -> state`` forever, sleeping a random delay between runs.

    The delay is drawn uniformly from ``[min_delay, max_delay]`` after each run
    completes, so runs never overlap. ``sleep`` and ``rng`` are injectable.
    """

    def __init__(
        self,
        step: Callable[[S], S],
        min_delay: float,
        max_delay: float,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        name: str = "task",
    ):
        if min_delay < 0 or max_delay < 0:
            raise ValueError("Delays must be non-negative")
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self.step = step
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.name = name
        self.runs = 0
        self._stopped = False

    def next_delay(self) -> float:
        return self.rng.uniform(self.min_delay, self.max_delay)

    def stop(self) -> None:
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    def run_once(self, state: S) -> S:
        self.runs += 1
        try:
            return self.step(state)
        except Exception as e:
            logger.exception("Task %s run=%s failed error=%s", self.name, self.runs, e)
            return state

    def run(self, state: S, max_runs: Optional[int] = None) -> S:
        self._stopped = False
        completed = 0
        while not self._stopped:
            state = self.run_once(state)
            completed += 1
            if max_runs is not None and completed >= max_runs:
                break
            if self._stopped:
                break
            delay = self.next_delay()
            logger.info("Sleeping seconds=%s task=%s", round(delay, 1), self.name)
            self.sleep(delay)
        return state
