from __future__ import annotations

from typing import Protocol, runtime_checkable

from deploy_kernel.observability.logging import LogMessage


# LogSink is the port engine and actions log through; adapters live in observability.logging.
@runtime_checkable
class LogSink(Protocol):
    def emit(self, message: LogMessage) -> None:
        """Consume one structured log message."""
        raise NotImplementedError("LogSink is a port; use a concrete adapter.")

    def close(self) -> None:
        """Release resources held by the sink."""
        raise NotImplementedError("LogSink is a port; use a concrete adapter.")
