from .artifact_backends import InMemoryArtifactBackend, JsonDirectoryBackend

__all__ = ["InMemoryArtifactBackend", "JsonDirectoryBackend"]
