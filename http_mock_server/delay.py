"""Randomized response latency."""

from __future__ import annotations

import random
import threading
from typing import Optional

from .models import ResponseDelay


class DelayCalculator:
    """Draws delays from a single shared random source guarded by a lock."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self._lock = threading.Lock()

    def calculate(self, delay: ResponseDelay) -> int:
        """Delay in milliseconds, uniform over the inclusive ``[min, max]`` range."""

        if delay.max <= delay.min:
            return delay.min
        with self._lock:
            return self._rng.randint(delay.min, delay.max)
