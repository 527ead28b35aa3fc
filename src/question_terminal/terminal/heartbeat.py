"""Heartbeat file protocol: emitter in the spawned process, watcher in the parent.

The spawned process overwrites one file with the current epoch milliseconds every
interval and deletes it when it exits gracefully. The parent polls that file and
derives a liveness status:

- file never appears during the grace period -> ``dead``
- file disappears after at least one heartbeat -> ``completed``
- timestamp stops advancing for more than ``miss_threshold`` polls -> ``dead``
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path

from question_terminal.terminal.clock import CancelToken, Clock, SystemClock
from question_terminal.terminal.contracts import read_heartbeat, write_heartbeat
from question_terminal.terminal.errors import SessionSetupError
from question_terminal.terminal.models import HeartbeatReading, LivenessStatus

logger = logging.getLogger(__name__)

HEARTBEAT_FILENAME = "heartbeat.txt"
DEFAULT_GRACE_MULTIPLIER = 5


class HeartbeatEmitter:
    """Periodically writes the current time to the heartbeat file."""

    def __init__(
        self,
        path: Path,
        *,
        interval_seconds: float = 1.0,
        clock: Clock | None = None,
    ) -> None:
        self.path = path
        self.interval_seconds = interval_seconds
        self.clock = clock or SystemClock()
        self.beats_written = 0
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._write_failures = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_heartbeat(self.path, self.clock.time_ms())
        self.beats_written += 1
        self._running = True
        self._task = asyncio.create_task(self._beat_forever(), name="heartbeat-emitter")

    async def stop(self) -> None:
        """Stop beating and delete the file to signal a graceful exit."""

        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        try:
            self.path.unlink(missing_ok=True)
        except OSError as error:
            logger.warning("Failed to remove heartbeat file %s: %s", self.path, error)

    async def __aenter__(self) -> HeartbeatEmitter:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _beat_forever(self) -> None:
        while self._running:
            await self.clock.sleep(self.interval_seconds)
            if not self._running:
                return
            try:
                write_heartbeat(self.path, self.clock.time_ms())
            except OSError as error:
                self._write_failures += 1
                log = logger.warning if self._write_failures == 1 else logger.debug
                log("Heartbeat write failed for %s: %s", self.path, error)
                continue
            self.beats_written += 1


class HeartbeatStateMachine:
    """Liveness status derived from a sequence of heartbeat readings.

    ``status`` is only ever changed inside :meth:`observe`; terminal states are
    final.
    """

    def __init__(self, *, miss_threshold: int = 2) -> None:
        self.miss_threshold = miss_threshold
        self.status = LivenessStatus.UNKNOWN
        self.last_heartbeat_ms = 0
        self.beats_observed = 0
        self.missed_beats = 0

    def observe(self, reading: HeartbeatReading) -> LivenessStatus:
        if self.status.is_terminal:
            return self.status

        if not reading.present:
            if self.beats_observed == 0:
                self.status = LivenessStatus.DEAD
            else:
                self.status = LivenessStatus.COMPLETED
            return self.status

        timestamp = reading.timestamp_ms
        if timestamp is not None and timestamp > self.last_heartbeat_ms:
            self.status = LivenessStatus.ALIVE
            self.missed_beats = 0
            self.last_heartbeat_ms = timestamp
            self.beats_observed += 1
            return self.status

        self.missed_beats += 1
        if self.missed_beats > self.miss_threshold:
            self.status = LivenessStatus.DEAD
        return self.status


class HeartbeatWatcher:
    """Polls the heartbeat file and drives :class:`HeartbeatStateMachine`."""

    def __init__(  # noqa: PLR0913
        self,
        path: Path,
        *,
        interval_seconds: float = 1.0,
        grace_seconds: float | None = None,
        miss_threshold: int = 2,
        clock: Clock | None = None,
    ) -> None:
        self.path = path
        self.interval_seconds = interval_seconds
        if grace_seconds is None:
            grace_seconds = interval_seconds * DEFAULT_GRACE_MULTIPLIER
        self.grace_seconds = grace_seconds
        self.clock = clock or SystemClock()
        self._machine = HeartbeatStateMachine(miss_threshold=miss_threshold)
        self._watching = False

    @property
    def status(self) -> LivenessStatus:
        return self._machine.status

    @property
    def beats_observed(self) -> int:
        return self._machine.beats_observed

    @property
    def missed_beats(self) -> int:
        return self._machine.missed_beats

    @property
    def last_heartbeat_ms(self) -> int:
        return self._machine.last_heartbeat_ms

    async def watch(self, token: CancelToken) -> LivenessStatus:
        """Poll until a terminal status is reached or ``token`` is cancelled.

        Cancellation leaves the status as last observed; callers treat a
        non-terminal status on return as a timeout.
        """

        if self._watching:
            raise RuntimeError("HeartbeatWatcher.watch() is already running")
        if not self.path.parent.is_dir():
            raise SessionSetupError(f"Session directory does not exist: {self.path.parent}")

        self._watching = True
        try:
            await self._sleep(self.grace_seconds, token)
            while not token.cancelled:
                status = self._machine.observe(read_heartbeat(self.path))
                if status.is_terminal:
                    break
                await self._sleep(self.interval_seconds, token)
        finally:
            self._watching = False

        logger.debug(
            "Heartbeat watch finished: status=%s beats=%d missed=%d cancelled=%s",
            self.status.value,
            self.beats_observed,
            self.missed_beats,
            token.cancelled,
        )
        return self.status

    async def _sleep(self, seconds: float, token: CancelToken) -> None:
        remaining = token.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            await self.clock.sleep(seconds)
