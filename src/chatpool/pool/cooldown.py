"""Cooldown policy — how long a failed credential stays out of rotation.

Step function over the credential's error count:

    errors 0  → base × 1
    errors 1  → base × 1.5
    errors 2  → base × 2.5
    errors 3+ → base × 4

capped at ``max_seconds``.  Every recovery decrements the error count by one,
so a credential that keeps failing climbs the steps and one that recovers
walks back down.
"""

from __future__ import annotations

from dataclasses import dataclass

from chatpool.exceptions import ConfigurationError

DEFAULT_MULTIPLIERS: tuple[float, ...] = (1.0, 1.5, 2.5, 4.0)


@dataclass(frozen=True)
class CooldownPolicy:
    base_seconds: float = 30.0
    multipliers: tuple[float, ...] = DEFAULT_MULTIPLIERS
    max_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.base_seconds <= 0:
            raise ConfigurationError("cooldown base_seconds must be positive")
        if self.max_seconds < self.base_seconds:
            raise ConfigurationError("cooldown max_seconds must be >= base_seconds")
        if not self.multipliers:
            raise ConfigurationError("cooldown multipliers must not be empty")
        if any(m <= 0 for m in self.multipliers):
            raise ConfigurationError("cooldown multipliers must be positive")
        if any(b < a for a, b in zip(self.multipliers, self.multipliers[1:])):
            raise ConfigurationError("cooldown multipliers must be non-decreasing")

    def duration_for(self, error_count: int) -> float:
        """Seconds a credential with ``error_count`` errors must rest."""
        step = min(max(error_count, 0), len(self.multipliers) - 1)
        return min(self.base_seconds * self.multipliers[step], self.max_seconds)
