"""Backoff delay calculation.

Delay before retry n (attempt n failed, 1-indexed):

    d = min(max_delay, base * 2 ** (n - 1))
    d += uniform(-jitter_fraction * d, +jitter_fraction * d)
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Computes the delay in seconds after a failed attempt (1-indexed)."""

    def delay(self, attempt: int) -> float: ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Capped exponential backoff with proportional jitter.

    Attributes:
        base: Delay after the first failure, in seconds
        max_delay: Cap applied before jitter
        jitter_fraction: Half-width of the uniform perturbation, as a fraction of the delay
        rng: Random source (seedable for tests)
    """

    base: float
    max_delay: float
    jitter_fraction: float = 0.0
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.base <= 0:
            raise ValueError("base must be positive")
        if self.max_delay < self.base:
            raise ValueError("max_delay must be >= base")
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ValueError("jitter_fraction must be within [0, 1]")

    def delay(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt is 1-indexed")
        # Past ~64 doublings the cap always wins; skip the float overflow
        d = self.max_delay if attempt > 64 else min(self.max_delay, self.base * 2 ** (attempt - 1))
        if self.jitter_fraction:
            spread = self.jitter_fraction * d
            d += self.rng.uniform(-spread, spread)
        return max(0.0, d)
