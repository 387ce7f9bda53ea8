"""Bounded retry policy for recipe model calls."""

from dataclasses import dataclass, field
from typing import Callable


def fixed_delay(delay: float) -> Callable[[int], float]:
    """Backoff that waits ``delay`` seconds after every failed attempt."""
    return lambda attempt: delay


def exponential_delay(base: float, cap: float = 30.0) -> Callable[[int], float]:
    """Backoff doubling from ``base`` after each failed attempt, up to ``cap``."""
    return lambda attempt: min(cap, base * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to call the model and how long to wait in between.

    ``backoff`` receives the 1-based number of the attempt that just failed.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: fixed_delay(1.0))

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_after(self, attempt: int) -> float:
        return max(0.0, self.backoff(attempt))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.generation_max_attempts,
            backoff=fixed_delay(settings.generation_retry_delay),
        )
