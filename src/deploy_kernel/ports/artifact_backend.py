from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from deploy_kernel.kernel.artifact import Artifact


# ArtifactBackend is the persistence port behind ArtifactStore; only the engine writes through it.
@runtime_checkable
class ArtifactBackend(Protocol):
    def load(self, environment_id: str) -> dict[str, Artifact]:
        """Return every persisted artifact for the environment, keyed by name."""
        raise NotImplementedError("ArtifactBackend is a port; use a concrete adapter.")

    def put(self, environment_id: str, artifact: Artifact) -> None:
        """Persist one artifact, replacing any previous record with the same name."""
        raise NotImplementedError("ArtifactBackend is a port; use a concrete adapter.")

    def load_completed(self, environment_id: str) -> set[str]:
        """Return ids of steps recorded as completed for the environment."""
        raise NotImplementedError("ArtifactBackend is a port; use a concrete adapter.")

    def record_completed(self, environment_id: str, step_id: str) -> None:
        """Append a step id to the completion ledger."""
        raise NotImplementedError("ArtifactBackend is a port; use a concrete adapter.")
