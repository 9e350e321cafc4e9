from .artifact_backend import ArtifactBackend
from .log_sink import LogSink

__all__ = ["ArtifactBackend", "LogSink"]
