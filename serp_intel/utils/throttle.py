"""
Rate-limiting policies for outbound calls.

The pipeline never parallelizes requests; it only waits a fixed amount of
time between competitors. The policy is injected so tests can use a zero
delay.
"""

import asyncio
from abc import ABC, abstractmethod

from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitPolicy(ABC):
    """Decides how long to pause between consecutive external calls."""

    @abstractmethod
    async def wait(self) -> float:
        """Pause before the next call. Returns seconds slept."""


class FixedDelayPolicy(RateLimitPolicy):
    """Sleep a constant delay on every call."""

    def __init__(self, delay_seconds: float = 0.5):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self.calls = 0

    @classmethod
    def from_milliseconds(cls, delay_ms: int) -> "FixedDelayPolicy":
        return cls(delay_ms / 1000)

    async def wait(self) -> float:
        self.calls += 1
        if self.delay_seconds > 0:
            logger.debug("Throttling", delay_seconds=self.delay_seconds)
            await asyncio.sleep(self.delay_seconds)
        return self.delay_seconds


class NoDelayPolicy(FixedDelayPolicy):
    """Never sleeps."""

    def __init__(self):
        super().__init__(0.0)
