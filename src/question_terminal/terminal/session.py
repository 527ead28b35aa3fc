"""Per-spawn session directories holding input, output and heartbeat files."""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from question_terminal.terminal.errors import SessionSetupError
from question_terminal.terminal.heartbeat import HEARTBEAT_FILENAME

logger = logging.getLogger(__name__)

INPUT_FILENAME = "input.json"
OUTPUT_FILENAME = "output.json"


@dataclass(frozen=True, slots=True)
class Session:
    """Paths owned by one spawn attempt."""

    session_id: str
    directory: Path

    @property
    def input_path(self) -> Path:
        return self.directory / INPUT_FILENAME

    @property
    def output_path(self) -> Path:
        return self.directory / OUTPUT_FILENAME

    @property
    def heartbeat_path(self) -> Path:
        return self.directory / HEARTBEAT_FILENAME


class SessionStore:
    """Creates and tears down ``<root>/<prefix>-<id>`` session directories."""

    def __init__(self, root_dir: Path, prefix: str = "tmp-question-terminal") -> None:
        self.root_dir = root_dir
        self.prefix = prefix

    def locate(self, session_id: str) -> Session:
        if not session_id or any(sep in session_id for sep in ("/", "\\", "..")):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return Session(
            session_id=session_id,
            directory=self.root_dir / f"{self.prefix}-{session_id}",
        )

    def create(self) -> Session:
        session = self.locate(uuid4().hex)
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            session.directory.mkdir(exist_ok=False)
        except OSError as error:
            raise SessionSetupError(
                f"Cannot create session directory {session.directory}: {error}",
            ) from error
        logger.info("Session %s set up at %s", session.session_id, session.directory)
        return session

    def destroy(self, session: Session) -> bool:
        """Remove the session tree; failures are logged, never raised."""

        try:
            shutil.rmtree(session.directory)
        except FileNotFoundError:
            pass
        except OSError as error:
            logger.warning("Failed to clean up session %s: %s", session.session_id, error)
            return False
        logger.info("Session %s cleaned up", session.session_id)
        return True

    @contextmanager
    def open(self) -> Iterator[Session]:
        """Create a session and destroy it exactly once on every exit path."""

        session = self.create()
        try:
            yield session
        finally:
            self.destroy(session)

    def prune_stale(self, max_age_hours: float, *, now: float | None = None) -> list[Path]:
        """Remove session directories older than ``max_age_hours``.

        Leftovers appear when a parent process is killed before its cleanup runs.
        """

        if not self.root_dir.is_dir():
            return []
        cutoff = (now if now is not None else time.time()) - max_age_hours * 3600
        removed: list[Path] = []
        for candidate in sorted(self.root_dir.glob(f"{self.prefix}-*")):
            try:
                if not candidate.is_dir() or candidate.stat().st_mtime >= cutoff:
                    continue
            except OSError:
                continue
            try:
                session = self.locate(candidate.name[len(self.prefix) + 1 :])
            except ValueError:
                continue
            if self.destroy(session):
                removed.append(candidate)
        return removed
