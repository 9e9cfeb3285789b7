"""In-flight guard and generation counter for activation attempts."""
from __future__ import annotations

from typing import Optional


class ActivationGuard:
    """Admits at most one activation attempt at a time.

    Every admitted attempt receives a new generation. Results are applied only
    while their generation is current; a retired generation (timed out or torn
    down) stays stale forever.
    """

    def __init__(self) -> None:
        self._in_flight = False
        self._generation = 0
        self._retired_through = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> Optional[int]:
        """Admit a new attempt, or return ``None`` when one is already running."""

        if self._in_flight:
            return None
        self._in_flight = True
        self._generation += 1
        return self._generation

    def end(self, generation: int) -> None:
        if generation == self._generation:
            self._in_flight = False

    def retire(self, generation: int) -> None:
        """Mark ``generation`` and everything before it as stale."""

        self._retired_through = max(self._retired_through, generation)
        self.end(generation)

    def is_current(self, generation: int) -> bool:
        return generation == self._generation and generation > self._retired_through


__all__ = ["ActivationGuard"]
