"""Controllers for terminal spawning CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any

from question_terminal.config import Settings
from question_terminal.terminal.errors import LaunchError, SessionSetupError
from question_terminal.terminal.session import SessionStore
from question_terminal.terminal.spawner import TerminalSpawner


@dataclass(slots=True)
class SpawnCommand:
    """CLI input for one spawn-and-wait run."""

    workload: str
    input_json: str | None
    ttl_ms: int | None
    launcher: str | None


@dataclass(slots=True)
class SpawnCommandResult:
    """Spawn report to render in CLI."""

    lines: list[str]
    success: bool


@dataclass(slots=True)
class GcCommand:
    """CLI input for stale session pruning."""

    max_age_hours: int | None


class TerminalCliController:
    """Coordinates spawn and maintenance CLI operations."""

    def spawn(self, command: SpawnCommand) -> SpawnCommandResult:
        try:
            input_data = _parse_input(command.input_json)
        except ValueError as error:
            return SpawnCommandResult(lines=[f"Invalid --input: {error}"], success=False)

        settings = Settings.from_env()
        if command.launcher is not None:
            settings = replace(settings, spawn=replace(settings.spawn, launcher=command.launcher))
        try:
            spawner = TerminalSpawner(settings)
            result = spawner.spawn_blocking(command.workload, input_data, command.ttl_ms)
        except (ValueError, SessionSetupError, LaunchError) as error:
            lines = [f"Spawn failed: {type(error).__name__}: {error}"]
            if isinstance(error, LaunchError):
                lines.append(
                    "Launch failure is transient; retrying may succeed."
                    if error.transient
                    else "Launch failure is permanent; check the launcher configuration.",
                )
            return SpawnCommandResult(lines=lines, success=False)

        lines = [
            f"Session: {result.session_id}",
            (
                f"Outcome: {result.outcome.value} success={'yes' if result.is_success else 'no'} "
                f"timed_out={'yes' if result.timed_out else 'no'} "
                f"elapsed={result.elapsed_seconds:.1f}s"
            ),
        ]
        if result.error is not None:
            lines.append(f"Error: {type(result.error).__name__}: {result.error}")
        if result.is_success:
            lines.append(json.dumps(result.output, ensure_ascii=False, indent=2, sort_keys=True))
        return SpawnCommandResult(lines=lines, success=result.is_success)

    def gc(self, command: GcCommand) -> list[str]:
        settings = Settings.from_env()
        max_age_hours = (
            command.max_age_hours
            if command.max_age_hours is not None
            else settings.spawn.stale_session_hours
        )
        store = SessionStore(settings.spawn.session_root, settings.spawn.session_prefix)
        removed = store.prune_stale(max_age_hours)
        lines = [f"Removed stale sessions: {len(removed)} (older than {max_age_hours}h)"]
        lines.extend(f"  {path}" for path in removed)
        return lines


def _parse_input(raw: str | None) -> Any:
    if raw is None or not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as error:
        raise ValueError(f"not valid JSON ({error.msg} at position {error.pos})") from error
