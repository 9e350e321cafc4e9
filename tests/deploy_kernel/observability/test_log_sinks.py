from __future__ import annotations

import io
import json
import threading
from pathlib import Path

import pytest

from deploy_kernel.observability.logging import (
    ConsoleLogSink,
    FanoutLogSink,
    JsonlLogSink,
    LockedLogSink,
    LogMessage,
    MemoryLogSink,
    StdoutLogSink,
    format_console_line,
)


def test_log_message_validates_level() -> None:
    # Only known levels are accepted.
    with pytest.raises(ValueError):
        LogMessage(level="loud", message="x")
    with pytest.raises(ValueError):
        LogMessage(level="info", message="")


def test_console_line_for_step_outcome() -> None:
    # Step messages render outcome, id, artifacts and reason.
    message = LogMessage(
        level="info",
        message="step.executed_success",
        fields={"step_id": "Root:contract v1.0.0", "outcome": "executed_success", "artifacts": {"Root": "0xabc"}},
    )
    assert format_console_line(message) == "[executed_success] Root:contract v1.0.0 Root=0xabc"
    failed = LogMessage(
        level="error",
        message="step.cancelled",
        fields={"step_id": "C", "outcome": "cancelled", "reason": "not attempted: 'B' failed"},
    )
    assert format_console_line(failed) == "[cancelled] C (not attempted: 'B' failed)"


def test_console_line_for_action_log_is_indented() -> None:
    # Action logs are indented under their step id.
    message = LogMessage(level="warning", message="no chain id", fields={"step_id": "L2", "hint": "set chain_id"})
    assert format_console_line(message) == "  WARNING: L2: no chain id hint=set chain_id"


def test_console_sink_filters_by_level() -> None:
    # Messages below the minimum level are dropped.
    stream = io.StringIO()
    sink = ConsoleLogSink(stream, min_level="warning")
    sink.emit(LogMessage(level="info", message="quiet"))
    sink.emit(LogMessage(level="error", message="loud"))
    assert stream.getvalue() == "ERROR: loud\n"


def test_jsonl_sink_appends_lines(tmp_path: Path) -> None:
    # Each message becomes one JSON line with a Z timestamp; the file appears on the first message.
    path = tmp_path / "nested" / "run.jsonl"
    sink = JsonlLogSink(path)
    assert not path.parent.exists()
    sink.emit(LogMessage(level="info", message="run.start", fields={"steps": 3}))
    sink.close()
    sink.close()
    record = json.loads(path.read_text(encoding="utf-8"))
    assert record["message"] == "run.start"
    assert record["fields"] == {"steps": 3}
    assert record["ts"].endswith("Z")
    assert "step_id" not in record


def test_jsonl_sink_hoists_step_identity(tmp_path: Path) -> None:
    # Step id and outcome become top-level keys of the record.
    path = tmp_path / "run.jsonl"
    sink = JsonlLogSink(path)
    sink.emit(
        LogMessage(
            level="error",
            message="step.executed_failure",
            fields={"step_id": "Root:contract v1.0.0", "outcome": "executed_failure", "reason": "reverted"},
        )
    )
    sink.emit(LogMessage(level="info", message="deployed Root", fields={"step_id": "Root:contract v1.0.0"}))
    sink.close()
    first, second = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert first["step_id"] == "Root:contract v1.0.0"
    assert first["outcome"] == "executed_failure"
    assert first["fields"] == {"reason": "reverted"}
    assert second["step_id"] == "Root:contract v1.0.0"
    assert "outcome" not in second


def test_jsonl_sink_closed_before_any_message_leaves_no_file(tmp_path: Path) -> None:
    # Closing an unused sink is a no-op.
    path = tmp_path / "run.jsonl"
    JsonlLogSink(path).close()
    assert not path.exists()


def test_stdout_sink_prints_compact_json(capsys: pytest.CaptureFixture[str]) -> None:
    # Stdout sink prints one compact JSON object per message.
    StdoutLogSink().emit(LogMessage(level="info", message="run.finish", fields={"ok": True}))
    assert json.loads(capsys.readouterr().out)["fields"] == {"ok": True}


def test_fanout_and_locked_sinks_forward_everything() -> None:
    # Fanout reaches each sink; the locked wrapper keeps every message under concurrency.
    left, right = MemoryLogSink(), MemoryLogSink()
    sink = LockedLogSink(FanoutLogSink([left, right]))

    def _emit(worker: int) -> None:
        for index in range(50):
            sink.emit(LogMessage(level="debug", message=f"w{worker}-{index}"))

    threads = [threading.Thread(target=_emit, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    sink.close()
    assert len(left.messages) == len(right.messages) == 200
