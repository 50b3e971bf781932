"""
Retry Policies

Backoff configuration shared by the transaction executor. Delays are pure
functions of the attempt number so timeout and retry behaviour can be
tested without any network.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded attempts with exponential backoff between them."""

    max_attempts: int = 3
    initial_delay_seconds: float = 3.0
    exponential_base: float = 2.0
    max_delay_seconds: float = 30.0
    jitter: bool = False
    jitter_factor: float = 0.1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must not be negative")

    def get_delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** max(attempt - 1, 0)),
            self.max_delay_seconds,
        )
        if self.jitter and delay > 0:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0.0)

    def has_attempts_left(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts


async def sleep(seconds: float) -> None:
    """Default sleeper; the executor accepts a replacement for tests."""
    if seconds > 0:
        await asyncio.sleep(seconds)
