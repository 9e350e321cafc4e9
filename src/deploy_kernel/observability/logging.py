from __future__ import annotations

import json
import sys
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True, slots=True)
class LogMessage:
    # Structured log payload emitted by the engine and by step actions.
    level: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    fields: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.level or not self.message:
            raise ValueError("LogMessage requires non-empty level/message")
        if self.level not in LEVELS:
            raise ValueError(f"LogMessage.level must be one of {LEVELS}")


class ConsoleLogSink:
    # Human-readable progress lines, one per message.
    def __init__(self, stream: TextIO | None = None, *, min_level: str = "info") -> None:
        self._stream = stream
        self._min_rank = LEVELS.index(min_level)

    def emit(self, message: LogMessage) -> None:
        if LEVELS.index(message.level) < self._min_rank:
            return
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(format_console_line(message) + "\n")
        stream.flush()

    def close(self) -> None:
        return None


class StdoutLogSink:
    # Minimal structured sink: one compact JSON object per line on stdout.
    def emit(self, message: LogMessage) -> None:
        print(json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str))

    def close(self) -> None:
        return None


class JsonlLogSink:
    # Append-only run log; the file is created on the first message, not before.
    def __init__(self, path: Path) -> None:
        self._path = path
        self._file: TextIO | None = None

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, message: LogMessage) -> None:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self._path.open("a", encoding="utf-8")
        self._file.write(json.dumps(_log_to_dict(message), separators=(",", ":"), ensure_ascii=False, default=str) + "\n")
        # One flushed line per message; a crashed deployment keeps everything up to the failing step.
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


@dataclass
class MemoryLogSink:
    # Collects messages in order; used by tests and by callers that post-process logs.
    messages: list[LogMessage] = field(default_factory=list)

    def emit(self, message: LogMessage) -> None:
        self.messages.append(message)

    def close(self) -> None:
        return None

    def texts(self) -> list[str]:
        return [message.message for message in self.messages]


class FanoutLogSink:
    # Forwards every message to each configured sink.
    def __init__(self, sinks: Iterable[object]) -> None:
        self._sinks = list(sinks)

    def emit(self, message: LogMessage) -> None:
        for sink in self._sinks:
            sink.emit(message)  # type: ignore[attr-defined]

    def close(self) -> None:
        for sink in self._sinks:
            sink.close()  # type: ignore[attr-defined]


class LockedLogSink:
    # Serializes emit/close so concurrently running steps do not interleave lines.
    def __init__(self, sink: object) -> None:
        self._sink = sink
        self._lock = threading.Lock()

    def emit(self, message: LogMessage) -> None:
        with self._lock:
            self._sink.emit(message)  # type: ignore[attr-defined]

    def close(self) -> None:
        with self._lock:
            self._sink.close()  # type: ignore[attr-defined]


def format_console_line(message: LogMessage) -> str:
    # Step messages read "[outcome] <id> Name=address ... (reason)"; others are "message k=v".
    fields = dict(message.fields)
    step_id = fields.pop("step_id", None)
    outcome = fields.pop("outcome", None)
    if step_id is not None and outcome is not None:
        parts = [f"[{outcome}]", str(step_id)]
        artifacts = fields.pop("artifacts", None)
        if isinstance(artifacts, dict):
            parts.extend(f"{name}={address}" for name, address in artifacts.items())
        reason = fields.pop("reason", None)
        if reason:
            parts.append(f"({reason})")
        return " ".join(parts)
    prefix = f"{message.level.upper()}: " if message.level != "info" else ""
    if step_id is not None:
        # Action progress is indented under its step.
        prefix = f"  {prefix}{step_id}: "
    extra = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{prefix}{message.message}" + (f" {extra}" if extra else "")


def _log_to_dict(message: LogMessage) -> dict[str, object]:
    # Step id and outcome are lifted out of fields into the record itself.
    fields = dict(message.fields)
    record: dict[str, object] = {
        "ts": message.timestamp.isoformat().replace("+00:00", "Z"),
        "level": message.level,
        "message": message.message,
    }
    for key in ("step_id", "outcome"):
        if key in fields:
            record[key] = fields.pop(key)
    record["fields"] = fields
    return record
