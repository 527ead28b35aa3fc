"""Local demo workload for spawner integration tests and smoke runs."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any


async def run(input_data: Any, write_output: Callable[[Any], None]) -> None:
    """Echo ``input_data`` back, optionally after ``delay_seconds``."""

    delay = 0.0
    if isinstance(input_data, dict):
        delay = float(input_data.get("delay_seconds", 0) or 0)
    if delay > 0:
        await asyncio.sleep(delay)
    write_output({"echo": input_data})


def run_blocking(input_data: Any, write_output: Callable[[Any], None]) -> None:
    """Synchronous variant, executed off the event loop by the runner."""

    write_output({"echo": input_data, "mode": "blocking"})


def fail(input_data: Any, write_output: Callable[[Any], None]) -> None:
    """Raise without writing output."""

    raise RuntimeError(f"echo workload failure requested for {input_data!r}")
