"""Entry point executed inside the spawned terminal window.

Usage: ``python -m question_terminal.terminal.runner <session-id>``

Reads the session input, keeps the heartbeat file fresh while the workload runs,
and deletes it on exit so the parent can tell completion from a crash.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import inspect
import logging
import signal
import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from question_terminal.config import Settings
from question_terminal.terminal.contracts import read_spawn_input, write_spawn_output
from question_terminal.terminal.heartbeat import HeartbeatEmitter
from question_terminal.terminal.session import Session, SessionStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TIMEOUT = 124
EXIT_INTERRUPTED = 130

DEFAULT_WORKLOAD_ATTRIBUTE = "run"

Workload = Callable[[Any, Callable[[Any], None]], Any]


def resolve_workload(reference: str) -> Workload:
    """Import ``package.module:callable``; the attribute defaults to ``run``."""

    module_name, _, attribute = reference.partition(":")
    module_name = module_name.strip()
    attribute = attribute.strip() or DEFAULT_WORKLOAD_ATTRIBUTE
    if not module_name:
        raise ValueError(f"Invalid workload reference: {reference!r}")
    target: Any = importlib.import_module(module_name)
    for part in attribute.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise TypeError(f"Workload {reference!r} does not define {attribute!r}")
    if not callable(target):
        raise TypeError(f"Workload {reference!r} is not callable")
    return target


async def run_session(session: Session) -> int:
    """Execute one session's workload with heartbeats running around it."""

    spawn_input = read_spawn_input(session.input_path)
    workload = resolve_workload(spawn_input.workload)

    def write_output(data: Any) -> None:
        write_spawn_output(session.output_path, data)

    emitter = HeartbeatEmitter(
        session.heartbeat_path,
        interval_seconds=spawn_input.heartbeat_interval_ms / 1000,
    )
    async with emitter:
        task = asyncio.ensure_future(_invoke(workload, spawn_input.input_data, write_output))
        with _cancel_on_signals(task):
            try:
                if spawn_input.ttl_ms:
                    await asyncio.wait_for(task, timeout=spawn_input.ttl_ms / 1000)
                else:
                    await task
            except asyncio.TimeoutError:
                logger.error(
                    "Workload %s exceeded ttl of %dms",
                    spawn_input.workload,
                    spawn_input.ttl_ms,
                )
                return EXIT_TIMEOUT
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                logger.warning("Workload %s interrupted", spawn_input.workload)
                return EXIT_INTERRUPTED
    logger.info("Workload %s finished", spawn_input.workload)
    return EXIT_OK


async def _invoke(workload: Workload, input_data: Any, write_output: Callable[[Any], None]) -> Any:
    if inspect.iscoroutinefunction(workload):
        return await workload(input_data, write_output)
    # Blocking prompts must not starve the heartbeat task.
    result = await _run_in_daemon_thread(workload, input_data, write_output)
    if inspect.isawaitable(result):
        result = await result
    return result


def _run_in_daemon_thread(func: Callable[..., Any], *args: Any) -> asyncio.Future[Any]:
    """Run ``func`` in a daemon thread so an interrupted prompt cannot block exit."""

    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def _settle(setter: Callable[[Any], None], value: Any) -> None:
        if not future.done():
            setter(value)

    def _target() -> None:
        try:
            result = func(*args)
        except BaseException as error:  # noqa: BLE001
            outcome: tuple[Callable[[Any], None], Any] = (future.set_exception, error)
        else:
            outcome = (future.set_result, result)
        try:
            loop.call_soon_threadsafe(_settle, *outcome)
        except RuntimeError:
            # Loop already closed: the session was interrupted and nobody waits.
            return

    threading.Thread(target=_target, name="workload", daemon=True).start()
    return future


@contextmanager
def _cancel_on_signals(task: asyncio.Future[Any]) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    installed: list[int] = []
    for name in ("SIGINT", "SIGTERM"):
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            loop.add_signal_handler(signum, task.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(signum)
    try:
        yield
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def main(argv: list[str] | None = None) -> int:
    """Run the workload for the given session id."""

    parser = argparse.ArgumentParser(prog="question-terminal-runner")
    parser.add_argument("session_id")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    settings = Settings.from_env()
    store = SessionStore(settings.spawn.session_root, settings.spawn.session_prefix)
    try:
        session = store.locate(args.session_id)
        return asyncio.run(run_session(session))
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception:  # noqa: BLE001
        logger.exception("Session %s failed", args.session_id)
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
