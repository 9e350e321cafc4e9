from .logging import (
    ConsoleLogSink,
    FanoutLogSink,
    JsonlLogSink,
    LockedLogSink,
    LogMessage,
    MemoryLogSink,
    StdoutLogSink,
)

__all__ = [
    "ConsoleLogSink",
    "FanoutLogSink",
    "JsonlLogSink",
    "LockedLogSink",
    "LogMessage",
    "MemoryLogSink",
    "StdoutLogSink",
]
