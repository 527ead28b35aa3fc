"""Time source and cancellation handle shared by emitter, watcher and spawner."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Time source used for every wait in the heartbeat protocol."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary, never-decreasing origin."""

    def time_ms(self) -> int:
        """Wall-clock epoch milliseconds written into heartbeat files."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task."""


class SystemClock:
    """Real clock backed by the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    def time_ms(self) -> int:
        return time.time_ns() // 1_000_000

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class CancelToken:
    """Single abort handle, optionally armed with a deadline.

    Once cancelled (explicitly or by passing the deadline) it stays cancelled.
    """

    def __init__(self, clock: Clock, deadline: float | None = None) -> None:
        self._clock = clock
        self._deadline = deadline
        self._reason: str | None = None

    @classmethod
    def with_timeout(cls, clock: Clock, seconds: float) -> CancelToken:
        return cls(clock, deadline=clock.monotonic() + seconds)

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        if self._reason is not None:
            return True
        if self._deadline is not None and self._clock.monotonic() >= self._deadline:
            self._reason = "deadline"
            return True
        return False

    @property
    def reason(self) -> str | None:
        return self._reason if self.cancelled else None

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when there is no deadline."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock.monotonic())
