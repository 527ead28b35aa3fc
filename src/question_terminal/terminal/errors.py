"""Error taxonomy for detached terminal spawns."""

from __future__ import annotations


class SpawnError(RuntimeError):
    """Base class for every spawn failure kind."""


class SessionSetupError(SpawnError):
    """Session directory or input file could not be created."""


class LaunchError(SpawnError):
    """The OS refused to create the terminal process."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class NeverAliveError(SpawnError):
    """No heartbeat was ever observed from the spawned process."""


class SpawnTimeoutError(SpawnError):
    """The process was alive but did not finish before the deadline."""


class ProcessStalledError(SpawnError):
    """The process stopped refreshing its heartbeat without signalling completion."""


class OutputCorruptedError(SpawnError):
    """The process completed but its output file is missing or unparsable."""
