"""Spawn a workload in a detached terminal and wait for its file-based result."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from question_terminal.config import Settings
from question_terminal.terminal.clock import CancelToken, Clock, SystemClock
from question_terminal.terminal.contracts import (
    SpawnInput,
    read_spawn_output,
    write_spawn_input,
)
from question_terminal.terminal.errors import (
    NeverAliveError,
    OutputCorruptedError,
    ProcessStalledError,
    SessionSetupError,
    SpawnTimeoutError,
)
from question_terminal.terminal.heartbeat import HeartbeatWatcher
from question_terminal.terminal.launcher import LaunchedProcess, ProcessLauncher, select_launcher
from question_terminal.terminal.models import LivenessStatus, SpawnOutcome, SpawnResult
from question_terminal.terminal.session import Session, SessionStore

logger = logging.getLogger(__name__)


class TerminalSpawner:
    """Runs one workload per :meth:`spawn` call in a fresh session.

    Session setup and launch failures are raised. Every other outcome is
    returned as a :class:`SpawnResult` with ``error`` set when not successful.
    The session directory is removed before ``spawn`` returns or raises.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        launcher: ProcessLauncher | None = None,
        store: SessionStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.settings.validate()
        self.store = store or SessionStore(
            self.settings.spawn.session_root,
            self.settings.spawn.session_prefix,
        )
        self.launcher = launcher or select_launcher(
            self.settings,
            session_root=self.store.root_dir,
            session_prefix=self.store.prefix,
        )
        self.clock = clock or SystemClock()

    async def spawn(
        self,
        workload: str,
        input_data: Any,
        ttl_ms: int | None = None,
    ) -> SpawnResult:
        effective_ttl_ms = ttl_ms if ttl_ms is not None else self.settings.spawn.ttl_ms
        if effective_ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be > 0, got {effective_ttl_ms}")

        started = self.clock.monotonic()
        launched: LaunchedProcess | None = None
        with self.store.open() as session:
            try:
                self._write_input(session, workload, input_data, effective_ttl_ms)
                launched = self.launcher.launch(session.session_id)
                logger.info(
                    "Session %s launched via %s (ttl=%dms)",
                    session.session_id,
                    self.launcher.name,
                    effective_ttl_ms,
                )
                watcher = self._make_watcher(session)
                token = CancelToken.with_timeout(self.clock, effective_ttl_ms / 1000)
                status = await watcher.watch(token)
                result = self._resolve(session, watcher, status, token)
            finally:
                if launched is not None:
                    launched.reap()
        result.elapsed_seconds = self.clock.monotonic() - started
        return result

    def spawn_blocking(
        self,
        workload: str,
        input_data: Any,
        ttl_ms: int | None = None,
    ) -> SpawnResult:
        """Run :meth:`spawn` to completion from synchronous code."""

        return asyncio.run(self.spawn(workload, input_data, ttl_ms))

    def _write_input(
        self,
        session: Session,
        workload: str,
        input_data: Any,
        ttl_ms: int,
    ) -> None:
        payload = SpawnInput(
            workload=workload,
            input_data=input_data,
            ttl_ms=ttl_ms,
            heartbeat_interval_ms=self.settings.heartbeat.interval_ms,
        )
        try:
            write_spawn_input(session.input_path, payload)
        except (OSError, TypeError, ValueError) as error:
            raise SessionSetupError(
                f"Cannot write input for session {session.session_id}: {error}",
            ) from error

    def _make_watcher(self, session: Session) -> HeartbeatWatcher:
        heartbeat = self.settings.heartbeat
        return HeartbeatWatcher(
            session.heartbeat_path,
            interval_seconds=heartbeat.interval_seconds,
            grace_seconds=heartbeat.grace_seconds,
            miss_threshold=heartbeat.miss_threshold,
            clock=self.clock,
        )

    def _resolve(
        self,
        session: Session,
        watcher: HeartbeatWatcher,
        status: LivenessStatus,
        token: CancelToken,
    ) -> SpawnResult:
        session_id = session.session_id
        logger.info(
            "Session %s finished watching: status=%s beats=%d",
            session_id,
            status.value,
            watcher.beats_observed,
        )

        if status is LivenessStatus.COMPLETED:
            try:
                output = read_spawn_output(session.output_path)
            except OutputCorruptedError as error:
                logger.warning("Session %s completed without usable output: %s", session_id, error)
                return _failure(session_id, SpawnOutcome.OUTPUT_CORRUPTED, error, timed_out=False)
            return SpawnResult(
                output=output,
                timed_out=False,
                is_success=True,
                outcome=SpawnOutcome.COMPLETED,
                session_id=session_id,
            )

        if watcher.beats_observed == 0:
            error = NeverAliveError(f"Spawned terminal for session {session_id} never came alive")
            return _failure(session_id, SpawnOutcome.NEVER_ALIVE, error, timed_out=True)

        if status is LivenessStatus.DEAD:
            error = ProcessStalledError(
                f"Spawned terminal for session {session_id} stopped sending heartbeats "
                f"after {watcher.beats_observed} beat(s)",
            )
            return _failure(session_id, SpawnOutcome.STALLED, error, timed_out=False)

        error = SpawnTimeoutError(
            f"Spawned terminal for session {session_id} did not finish before the deadline "
            f"({token.reason or 'deadline'})",
        )
        return _failure(session_id, SpawnOutcome.TIMED_OUT, error, timed_out=True)


def _failure(
    session_id: str,
    outcome: SpawnOutcome,
    error: Exception,
    *,
    timed_out: bool,
) -> SpawnResult:
    return SpawnResult(
        output=None,
        timed_out=timed_out,
        is_success=False,
        outcome=outcome,
        session_id=session_id,
        error=error,
    )
