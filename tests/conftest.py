"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from question_terminal.config import HeartbeatSettings, Settings, SpawnSettings

_EPOCH_MS = 1_700_000_000_000


class FakeClock:
    """Virtual clock: ``sleep`` advances time and fires actions scheduled on the way."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._actions: list[tuple[float, int, Callable[[], None]]] = []
        self._sequence = 0

    def monotonic(self) -> float:
        return self.now

    def time_ms(self) -> int:
        return _EPOCH_MS + round(self.now * 1000)

    def at(self, when: float, action: Callable[[], None]) -> None:
        self._sequence += 1
        self._actions.append((when, self._sequence, action))
        self._actions.sort(key=lambda item: (item[0], item[1]))

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        while self._actions and self._actions[0][0] <= self.now + 1e-9:
            _, _, action = self._actions.pop(0)
            action()
        await asyncio.sleep(0)

    def beat(self, path: Path) -> Callable[[], None]:
        """Action writing the current virtual time into ``path``."""

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(str(self.time_ms()), "utf-8")

        return _write


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        heartbeat=HeartbeatSettings(interval_ms=1_000, grace_multiplier=5, miss_threshold=2),
        spawn=SpawnSettings(session_root=tmp_path / "sessions", launcher="direct"),
    )
