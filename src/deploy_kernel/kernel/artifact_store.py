from __future__ import annotations

import threading
from collections.abc import Mapping
from types import MappingProxyType

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.errors import MissingArtifact
from deploy_kernel.ports.artifact_backend import ArtifactBackend


class ArtifactStore:
    # Named-artifact registry for one environment; the only shared mutable state of a run.
    def __init__(
        self,
        *,
        backend: ArtifactBackend,
        environment_id: str,
        artifacts: Mapping[str, Artifact] | None = None,
        completed: set[str] | None = None,
    ) -> None:
        self._backend = backend
        self._environment_id = environment_id
        self._artifacts: dict[str, Artifact] = dict(artifacts or {})
        self._completed: set[str] = set(completed or ())
        # Guards the in-memory maps; per-name locks serialize backend writes.
        self._state_lock = threading.Lock()
        self._name_locks: dict[str, threading.Lock] = {}

    @classmethod
    def open(cls, backend: ArtifactBackend, environment_id: str) -> ArtifactStore:
        # Load prior persisted state once at run start.
        return cls(
            backend=backend,
            environment_id=environment_id,
            artifacts=backend.load(environment_id),
            completed=backend.load_completed(environment_id),
        )

    @property
    def environment_id(self) -> str:
        return self._environment_id

    def get(self, name: str) -> Artifact | None:
        with self._state_lock:
            return self._artifacts.get(name)

    def require(self, name: str, *, step: str | None = None) -> Artifact:
        artifact = self.get(name)
        if artifact is None:
            raise MissingArtifact(name, step=step)
        return artifact

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def names(self) -> list[str]:
        with self._state_lock:
            return sorted(self._artifacts)

    def snapshot(self) -> Mapping[str, Artifact]:
        with self._state_lock:
            return MappingProxyType(dict(self._artifacts))

    def put(self, artifact: Artifact) -> None:
        # Flush to the backend first so memory never claims what storage does not hold.
        with self._lock_for(artifact.name):
            self._backend.put(self._environment_id, artifact)
            with self._state_lock:
                self._artifacts[artifact.name] = artifact

    def is_completed(self, step_id: str) -> bool:
        with self._state_lock:
            return step_id in self._completed

    def mark_completed(self, step_id: str) -> None:
        self._backend.record_completed(self._environment_id, step_id)
        with self._state_lock:
            self._completed.add(step_id)

    def _lock_for(self, name: str) -> threading.Lock:
        with self._state_lock:
            lock = self._name_locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._name_locks[name] = lock
            return lock
