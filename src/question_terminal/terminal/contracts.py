"""File-based contracts exchanged between the parent and the spawned process."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from question_terminal.terminal.errors import OutputCorruptedError
from question_terminal.terminal.models import HeartbeatReading


@dataclass(frozen=True, slots=True)
class SpawnInput:
    """Payload written to the session before launch."""

    workload: str
    input_data: Any
    ttl_ms: int | None = None
    heartbeat_interval_ms: int = 1_000


def write_json(path: Path, payload: Any) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_spawn_input(path: Path, payload: SpawnInput) -> None:
    """Serialize spawn input contract."""

    write_json(path, asdict(payload))


def read_spawn_input(path: Path) -> SpawnInput:
    """Deserialize and validate spawn input contract."""

    raw = load_json(path)
    workload = raw.get("workload")
    ttl_ms = raw.get("ttl_ms")
    interval_ms = raw.get("heartbeat_interval_ms", 1_000)
    if not isinstance(workload, str) or not workload.strip():
        raise ValueError("spawn_input.workload must be a non-empty string")
    if "input_data" not in raw:
        raise ValueError("spawn_input.input_data is required")
    if ttl_ms is not None and (not isinstance(ttl_ms, int) or isinstance(ttl_ms, bool)):
        raise TypeError("spawn_input.ttl_ms must be an integer when provided")
    if not isinstance(interval_ms, int) or isinstance(interval_ms, bool) or interval_ms <= 0:
        raise ValueError("spawn_input.heartbeat_interval_ms must be a positive integer")
    return SpawnInput(
        workload=workload,
        input_data=raw["input_data"],
        ttl_ms=ttl_ms,
        heartbeat_interval_ms=interval_ms,
    )


def write_spawn_output(path: Path, data: Any) -> None:
    """Serialize workload result; any JSON-serializable value is accepted."""

    write_json(path, data)


def read_spawn_output(path: Path) -> Any:
    """Load workload result written by the spawned process."""

    try:
        content = path.read_text("utf-8")
    except FileNotFoundError as error:
        raise OutputCorruptedError(f"Output file is missing: {path}") from error
    except OSError as error:
        raise OutputCorruptedError(f"Output file is unreadable: {path}") from error
    try:
        return json.loads(content)
    except json.JSONDecodeError as error:
        raise OutputCorruptedError(f"Output file is not valid JSON: {path}") from error


def write_heartbeat(path: Path, timestamp_ms: int) -> None:
    """Overwrite heartbeat file with a base-10 epoch-milliseconds timestamp."""

    path.write_text(str(timestamp_ms), "utf-8")


def read_heartbeat(path: Path) -> HeartbeatReading:
    """Read heartbeat file without ever raising.

    Partial writes, garbage and permission problems all come back as an
    unreadable reading so the watcher can count them as stale.
    """

    try:
        content = path.read_text("utf-8")
    except FileNotFoundError:
        return HeartbeatReading.absent()
    except (OSError, UnicodeDecodeError):
        return HeartbeatReading.unreadable()
    try:
        return HeartbeatReading(present=True, timestamp_ms=int(content.strip(), 10))
    except ValueError:
        return HeartbeatReading.unreadable()
