"""Runtime configuration for detached terminal spawning."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_LAUNCHERS = ("auto", "direct", "terminal")
SESSION_ROOT_ENV = "QUESTION_TERMINAL_SESSION_ROOT"
SESSION_PREFIX_ENV = "QUESTION_TERMINAL_SESSION_PREFIX"
DEFAULT_SESSION_PREFIX = "tmp-question-terminal"


@dataclass(slots=True)
class HeartbeatSettings:
    """Heartbeat emission and liveness judgement settings."""

    interval_ms: int = 1_000
    grace_multiplier: int = 5
    miss_threshold: int = 2

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000

    @property
    def grace_seconds(self) -> float:
        return self.interval_seconds * self.grace_multiplier


@dataclass(slots=True)
class SpawnSettings:
    """Session layout and process launch settings."""

    ttl_ms: int = 300_000
    session_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    session_prefix: str = DEFAULT_SESSION_PREFIX
    launcher: str = "auto"
    stale_session_hours: int = 24


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    heartbeat: HeartbeatSettings = field(default_factory=HeartbeatSettings)
    spawn: SpawnSettings = field(default_factory=SpawnSettings)

    @classmethod
    def from_env(cls, session_root: Path | None = None) -> Settings:
        """Load settings from environment with defaults matching interactive use."""

        root_raw = os.getenv(SESSION_ROOT_ENV, "").strip()
        return cls(
            heartbeat=HeartbeatSettings(
                interval_ms=_env_int("QUESTION_TERMINAL_HEARTBEAT_INTERVAL_MS", 1_000),
                grace_multiplier=_env_int("QUESTION_TERMINAL_GRACE_MULTIPLIER", 5),
                miss_threshold=_env_int("QUESTION_TERMINAL_MISS_THRESHOLD", 2),
            ),
            spawn=SpawnSettings(
                ttl_ms=_env_int("QUESTION_TERMINAL_TTL_MS", 300_000),
                session_root=session_root
                or (Path(root_raw) if root_raw else Path(tempfile.gettempdir())),
                session_prefix=os.getenv(SESSION_PREFIX_ENV, DEFAULT_SESSION_PREFIX).strip(),
                launcher=os.getenv("QUESTION_TERMINAL_LAUNCHER", "auto").strip().lower(),
                stale_session_hours=_env_int("QUESTION_TERMINAL_STALE_SESSION_HOURS", 24),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if self.heartbeat.interval_ms <= 0:
            raise ValueError("QUESTION_TERMINAL_HEARTBEAT_INTERVAL_MS must be > 0.")
        if self.heartbeat.grace_multiplier < 1:
            raise ValueError("QUESTION_TERMINAL_GRACE_MULTIPLIER must be >= 1.")
        if self.heartbeat.miss_threshold < 0:
            raise ValueError("QUESTION_TERMINAL_MISS_THRESHOLD must be >= 0.")
        if self.spawn.ttl_ms <= 0:
            raise ValueError("QUESTION_TERMINAL_TTL_MS must be > 0.")
        if not self.spawn.session_prefix or any(
            sep in self.spawn.session_prefix for sep in ("/", "\\")
        ):
            raise ValueError(
                "QUESTION_TERMINAL_SESSION_PREFIX must be a non-empty name without path "
                f"separators, got {self.spawn.session_prefix!r}.",
            )
        if self.spawn.launcher not in SUPPORTED_LAUNCHERS:
            raise ValueError(
                f"Unsupported QUESTION_TERMINAL_LAUNCHER: {self.spawn.launcher!r}. "
                f"Expected one of: {', '.join(SUPPORTED_LAUNCHERS)}.",
            )
        if self.spawn.stale_session_hours < 0:
            raise ValueError("QUESTION_TERMINAL_STALE_SESSION_HOURS must be >= 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
