from __future__ import annotations

import subprocess
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import allure
import pytest

from question_terminal.config import SESSION_PREFIX_ENV, SESSION_ROOT_ENV, Settings
from question_terminal.terminal.errors import LaunchError
from question_terminal.terminal.launcher import (
    RUNNER_MODULE,
    DirectLauncher,
    LinuxTerminalLauncher,
    MacTerminalLauncher,
    WindowsConsoleLauncher,
    build_entry_command,
    select_launcher,
)

pytestmark = [
    allure.epic("Heartbeat Protocol"),
    allure.feature("Process Launch"),
]


class _FakeProcess:
    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.polled = 0

    def poll(self) -> int | None:
        self.polled += 1
        return 0


class _RecordingPopen:
    def __init__(self, error: OSError | None = None) -> None:
        self.calls: list[tuple[list[str], dict[str, Any]]] = []
        self.error = error

    def __call__(self, args: list[str], **kwargs: Any) -> _FakeProcess:
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return _FakeProcess(pid=4242)


def test_entry_command_passes_session_id_as_only_argument() -> None:
    assert build_entry_command("abc", "/usr/bin/python3") == [
        "/usr/bin/python3",
        "-m",
        RUNNER_MODULE,
        "abc",
    ]


def test_direct_launcher_detaches_without_stdio(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = DirectLauncher(session_root=tmp_path, python="py", popen=popen)

    launched = launcher.launch("sid")

    args, kwargs = popen.calls[0]
    assert args == ["py", "-m", RUNNER_MODULE, "sid"]
    assert kwargs["start_new_session"] is True
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert kwargs["stdout"] is subprocess.DEVNULL
    assert kwargs["stderr"] is subprocess.DEVNULL
    assert kwargs["env"][SESSION_ROOT_ENV] == str(tmp_path)
    assert kwargs["env"][SESSION_PREFIX_ENV] == "tmp-question-terminal"
    assert launched.pid == 4242
    assert launched.launcher == "direct"
    assert launched.reap() == 0


def test_macos_launcher_wraps_command_in_osascript(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = MacTerminalLauncher(
        session_root=tmp_path / "with space",
        python="/opt/py thon",
        popen=popen,
    )

    launcher.launch("sid")

    args, _ = popen.calls[0]
    assert args[:4] == ["osascript", "-e", 'tell application "Terminal" to activate', "-e"]
    script = args[4]
    assert script.startswith('tell application "Terminal" to do script "')
    assert f"{SESSION_ROOT_ENV}=" in script
    assert f"{SESSION_PREFIX_ENV}=tmp-question-terminal " in script
    assert f"exec '/opt/py thon' -m {RUNNER_MODULE} sid; exit 0" in script
    assert script.endswith('"')


def test_macos_launcher_escapes_applescript_quotes(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = MacTerminalLauncher(session_root=tmp_path, python='py"thon', popen=popen)

    launcher.launch("sid")

    script = popen.calls[0][0][4]
    assert 'py\\"thon' in script


def test_gnome_terminal_uses_double_dash(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = LinuxTerminalLauncher(
        emulator="/usr/bin/gnome-terminal",
        session_root=tmp_path,
        python="py",
        popen=popen,
    )

    launcher.launch("sid")

    assert popen.calls[0][0] == ["/usr/bin/gnome-terminal", "--", "py", "-m", RUNNER_MODULE, "sid"]


def test_xterm_uses_execute_flag(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = LinuxTerminalLauncher(
        emulator="/usr/bin/xterm",
        session_root=tmp_path,
        python="py",
        popen=popen,
    )

    launcher.launch("sid")

    assert popen.calls[0][0] == ["/usr/bin/xterm", "-e", "py", "-m", RUNNER_MODULE, "sid"]


def test_windows_launcher_opens_new_console(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = WindowsConsoleLauncher(session_root=tmp_path, python="py", popen=popen)

    launcher.launch("sid")

    args, kwargs = popen.calls[0]
    assert args == ["py", "-m", RUNNER_MODULE, "sid"]
    assert kwargs["creationflags"] & 0x00000010
    assert "start_new_session" not in kwargs


def test_missing_binary_is_a_permanent_launch_error(tmp_path: Path) -> None:
    launcher = DirectLauncher(
        session_root=tmp_path,
        popen=_RecordingPopen(error=FileNotFoundError(2, "No such file")),
    )

    with pytest.raises(LaunchError, match="cannot start") as excinfo:
        launcher.launch("sid")

    assert excinfo.value.transient is False


def test_other_os_errors_are_transient_launch_errors(tmp_path: Path) -> None:
    launcher = DirectLauncher(
        session_root=tmp_path,
        popen=_RecordingPopen(error=OSError(11, "Resource temporarily unavailable")),
    )

    with pytest.raises(LaunchError, match="failed to start") as excinfo:
        launcher.launch("sid")

    assert excinfo.value.transient is True


def _settings(tmp_path: Path, launcher: str) -> Settings:
    settings = Settings()
    return replace(
        settings,
        spawn=replace(settings.spawn, session_root=tmp_path, launcher=launcher),
    )


def test_select_launcher_honours_direct_mode(tmp_path: Path) -> None:
    launcher = select_launcher(_settings(tmp_path, "direct"), platform="darwin")

    assert isinstance(launcher, DirectLauncher)


@pytest.mark.parametrize(
    ("platform", "expected"),
    [("darwin", MacTerminalLauncher), ("win32", WindowsConsoleLauncher)],
)
def test_select_launcher_by_platform(tmp_path: Path, platform: str, expected: type) -> None:
    launcher = select_launcher(_settings(tmp_path, "auto"), platform=platform)

    assert isinstance(launcher, expected)


def test_select_launcher_prefers_available_linux_terminal(tmp_path: Path) -> None:
    available = {"konsole": "/usr/bin/konsole"}

    launcher = select_launcher(
        _settings(tmp_path, "auto"),
        platform="linux",
        which=available.get,
    )

    assert isinstance(launcher, LinuxTerminalLauncher)
    assert launcher.emulator == "/usr/bin/konsole"


def test_select_launcher_falls_back_to_direct_without_terminal(tmp_path: Path) -> None:
    launcher = select_launcher(_settings(tmp_path, "auto"), platform="linux", which=lambda _: None)

    assert isinstance(launcher, DirectLauncher)


def test_select_launcher_terminal_mode_requires_emulator(tmp_path: Path) -> None:
    with pytest.raises(LaunchError, match="No terminal emulator found"):
        select_launcher(_settings(tmp_path, "terminal"), platform="linux", which=lambda _: None)


def test_real_direct_launch_of_missing_interpreter_fails(tmp_path: Path) -> None:
    launcher = DirectLauncher(session_root=tmp_path, python=str(tmp_path / "no-python"))

    with pytest.raises(LaunchError):
        launcher.launch("sid")


def test_default_python_is_current_interpreter(tmp_path: Path) -> None:
    assert DirectLauncher(session_root=tmp_path).python == sys.executable


def test_custom_prefix_is_exported_to_the_child(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = DirectLauncher(session_root=tmp_path, session_prefix="custom", popen=popen)

    launcher.launch("sid")

    env = popen.calls[0][1]["env"]
    assert env[SESSION_ROOT_ENV] == str(tmp_path)
    assert env[SESSION_PREFIX_ENV] == "custom"


def test_macos_launcher_embeds_custom_prefix(tmp_path: Path) -> None:
    popen = _RecordingPopen()
    launcher = MacTerminalLauncher(session_root=tmp_path, session_prefix="my prefix", popen=popen)

    launcher.launch("sid")

    assert f"{SESSION_PREFIX_ENV}='my prefix' exec " in popen.calls[0][0][4]


@pytest.mark.parametrize("platform", ["linux", "darwin", "win32"])
def test_select_launcher_uses_explicit_session_location(tmp_path: Path, platform: str) -> None:
    launcher = select_launcher(
        _settings(tmp_path / "from-settings", "auto"),
        session_root=tmp_path / "store",
        session_prefix="store-prefix",
        platform=platform,
        which={"xterm": "/usr/bin/xterm"}.get,
    )

    assert launcher.session_root == tmp_path / "store"
    assert launcher.session_prefix == "store-prefix"
