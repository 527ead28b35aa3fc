"""Domain models for detached terminal sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class LivenessStatus(str, Enum):
    """Heartbeat-derived liveness states of the spawned process."""

    UNKNOWN = "unknown"
    ALIVE = "alive"
    DEAD = "dead"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (LivenessStatus.DEAD, LivenessStatus.COMPLETED)


class SpawnOutcome(str, Enum):
    """Normalized classification of one finished spawn attempt."""

    COMPLETED = "completed"
    NEVER_ALIVE = "never_alive"
    STALLED = "stalled"
    TIMED_OUT = "timed_out"
    OUTPUT_CORRUPTED = "output_corrupted"


@dataclass(frozen=True, slots=True)
class HeartbeatReading:
    """One observation of the heartbeat file.

    ``present`` is False only when the file does not exist. A present file whose
    content cannot be parsed has ``timestamp_ms=None``.
    """

    present: bool
    timestamp_ms: int | None = None

    @classmethod
    def absent(cls) -> HeartbeatReading:
        return cls(present=False)

    @classmethod
    def unreadable(cls) -> HeartbeatReading:
        return cls(present=True, timestamp_ms=None)


@dataclass(slots=True)
class SpawnResult:
    """Outcome returned to the caller of one spawn."""

    output: Any
    timed_out: bool
    is_success: bool
    outcome: SpawnOutcome
    session_id: str
    elapsed_seconds: float = 0.0
    error: Exception | None = None
