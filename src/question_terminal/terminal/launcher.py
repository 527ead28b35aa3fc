"""Platform strategies for starting the detached runner process."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from question_terminal.config import (
    DEFAULT_SESSION_PREFIX,
    SESSION_PREFIX_ENV,
    SESSION_ROOT_ENV,
    Settings,
)
from question_terminal.terminal.errors import LaunchError

logger = logging.getLogger(__name__)

RUNNER_MODULE = "question_terminal.terminal.runner"
LINUX_TERMINAL_EMULATORS = ("x-terminal-emulator", "gnome-terminal", "konsole", "xterm")

_CREATE_NEW_CONSOLE = 0x00000010
_CREATE_NEW_PROCESS_GROUP = 0x00000200

Popen = Callable[..., Any]


@dataclass(slots=True)
class LaunchedProcess:
    """Handle to a created (not finished) process."""

    launcher: str
    args: list[str]
    pid: int | None
    handle: Any = None

    def reap(self) -> int | None:
        """Collect the exit status if the process already ended."""

        if self.handle is None:
            return None
        try:
            return self.handle.poll()
        except OSError:
            return None


class ProcessLauncher(Protocol):
    """Starts the runner for one session and returns once the OS created it."""

    name: str

    def launch(self, session_id: str) -> LaunchedProcess:
        """Start the detached runner process."""


def build_entry_command(session_id: str, python: str | None = None) -> list[str]:
    return [python or sys.executable, "-m", RUNNER_MODULE, session_id]


class _PopenLauncher:
    name = "popen"

    def __init__(
        self,
        *,
        session_root: Path,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        python: str | None = None,
        popen: Popen = subprocess.Popen,
    ) -> None:
        self.session_root = session_root
        self.session_prefix = session_prefix
        self.python = python or sys.executable
        self.popen = popen

    def launch(self, session_id: str) -> LaunchedProcess:
        return self._start(self._build_args(session_id), **self._popen_kwargs())

    def _build_args(self, session_id: str) -> list[str]:
        return build_entry_command(session_id, self.python)

    def _popen_kwargs(self) -> dict[str, Any]:
        return {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "start_new_session": True,
            "env": self._environment(),
        }

    def _environment(self) -> dict[str, str]:
        env = os.environ.copy()
        env[SESSION_ROOT_ENV] = str(self.session_root)
        env[SESSION_PREFIX_ENV] = self.session_prefix
        return env

    def _start(self, args: list[str], **kwargs: Any) -> LaunchedProcess:
        try:
            process = self.popen(args, **kwargs)  # noqa: S603
        except (FileNotFoundError, PermissionError) as error:
            raise LaunchError(
                f"{self.name} launcher cannot start {args[0]!r}: {error}",
                transient=False,
            ) from error
        except OSError as error:
            raise LaunchError(
                f"{self.name} launcher failed to start process: {error}",
                transient=True,
            ) from error
        pid = getattr(process, "pid", None)
        logger.info("Launched %s process pid=%s", self.name, pid)
        return LaunchedProcess(launcher=self.name, args=args, pid=pid, handle=process)


class DirectLauncher(_PopenLauncher):
    """Runs the entry command directly in a new session, without a window."""

    name = "direct"


class MacTerminalLauncher(_PopenLauncher):
    """Opens Terminal.app through ``osascript`` and runs the entry command there.

    Terminal.app does not inherit our environment, so the session root and
    prefix are embedded into the shell script.
    """

    name = "macos-terminal"

    def _build_args(self, session_id: str) -> list[str]:
        command = shlex.join(build_entry_command(session_id, self.python))
        script = (
            f"{SESSION_ROOT_ENV}={shlex.quote(str(self.session_root))} "
            f"{SESSION_PREFIX_ENV}={shlex.quote(self.session_prefix)} "
            f"exec {command}; exit 0"
        )
        escaped = _escape_applescript(script)
        return [
            "osascript",
            "-e",
            'tell application "Terminal" to activate',
            "-e",
            f'tell application "Terminal" to do script "{escaped}"',
        ]


class LinuxTerminalLauncher(_PopenLauncher):
    """Runs the entry command inside an X11/Wayland terminal emulator."""

    name = "linux-terminal"

    def __init__(
        self,
        *,
        emulator: str,
        session_root: Path,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        python: str | None = None,
        popen: Popen = subprocess.Popen,
    ) -> None:
        super().__init__(
            session_root=session_root,
            session_prefix=session_prefix,
            python=python,
            popen=popen,
        )
        self.emulator = emulator

    def _build_args(self, session_id: str) -> list[str]:
        command = build_entry_command(session_id, self.python)
        if Path(self.emulator).name == "gnome-terminal":
            return [self.emulator, "--", *command]
        return [self.emulator, "-e", *command]


class WindowsConsoleLauncher(_PopenLauncher):
    """Starts the entry command in a new console window."""

    name = "windows-console"

    def _popen_kwargs(self) -> dict[str, Any]:
        return {
            "stdin": subprocess.DEVNULL,
            "creationflags": _CREATE_NEW_CONSOLE | _CREATE_NEW_PROCESS_GROUP,
            "close_fds": True,
            "env": self._environment(),
        }


def select_launcher(
    settings: Settings,
    *,
    session_root: Path | None = None,
    session_prefix: str | None = None,
    platform: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
    popen: Popen = subprocess.Popen,
) -> ProcessLauncher:
    """Pick the launch strategy once, from configuration and platform.

    ``session_root`` and ``session_prefix`` override the values from ``settings``
    so the child resolves the same directory as the parent's session store.
    """

    mode = settings.spawn.launcher
    location: dict[str, Any] = {
        "session_root": session_root or settings.spawn.session_root,
        "session_prefix": session_prefix or settings.spawn.session_prefix,
        "popen": popen,
    }
    current_platform = platform or sys.platform
    if mode == "direct":
        return DirectLauncher(**location)
    if current_platform == "darwin":
        return MacTerminalLauncher(**location)
    if current_platform.startswith("win"):
        return WindowsConsoleLauncher(**location)

    for candidate in LINUX_TERMINAL_EMULATORS:
        resolved = which(candidate)
        if resolved is not None:
            return LinuxTerminalLauncher(emulator=resolved, **location)

    if mode == "terminal":
        raise LaunchError(
            "No terminal emulator found in PATH "
            f"(tried: {', '.join(LINUX_TERMINAL_EMULATORS)}).",
            transient=False,
        )
    logger.warning("No terminal emulator found; running spawned workloads without a window")
    return DirectLauncher(**location)


def _escape_applescript(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')
