"""Detached terminal spawning with file-based heartbeats.

The parent never holds a pipe to the spawned process: a terminal window opened
through ``osascript`` or a terminal emulator is not our child in any useful
sense. Liveness and results therefore travel through one session directory:

- ``input.json`` written by the parent before launch,
- ``heartbeat.txt`` refreshed by the child and deleted when it exits,
- ``output.json`` written by the child before it deletes the heartbeat.
"""

from question_terminal.terminal.errors import (
    LaunchError,
    NeverAliveError,
    OutputCorruptedError,
    ProcessStalledError,
    SessionSetupError,
    SpawnError,
    SpawnTimeoutError,
)
from question_terminal.terminal.models import LivenessStatus, SpawnOutcome, SpawnResult
from question_terminal.terminal.spawner import TerminalSpawner

__all__ = [
    "LaunchError",
    "LivenessStatus",
    "NeverAliveError",
    "OutputCorruptedError",
    "ProcessStalledError",
    "SessionSetupError",
    "SpawnError",
    "SpawnOutcome",
    "SpawnResult",
    "SpawnTimeoutError",
    "TerminalSpawner",
]
