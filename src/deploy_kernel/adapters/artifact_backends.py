from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.ports.artifact_backend import ArtifactBackend

MIGRATIONS_FILE = ".migrations.json"


@dataclass
class InMemoryArtifactBackend(ArtifactBackend):
    # In-memory adapter for tests and dry runs; state lives as long as the object.
    _artifacts: dict[str, dict[str, Artifact]] = field(default_factory=dict)
    _completed: dict[str, dict[str, str]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def load(self, environment_id: str) -> dict[str, Artifact]:
        with self._lock:
            return dict(self._artifacts.get(environment_id, {}))

    def put(self, environment_id: str, artifact: Artifact) -> None:
        with self._lock:
            self._artifacts.setdefault(environment_id, {})[artifact.name] = artifact

    def load_completed(self, environment_id: str) -> set[str]:
        with self._lock:
            return set(self._completed.get(environment_id, {}))

    def record_completed(self, environment_id: str, step_id: str) -> None:
        with self._lock:
            self._completed.setdefault(environment_id, {})[step_id] = _now()


class JsonDirectoryBackend(ArtifactBackend):
    # One JSON document per artifact under <root>/<environment>/, plus a completion ledger.
    def __init__(self, root: Path) -> None:
        self._root = root
        self._ledger_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def load(self, environment_id: str) -> dict[str, Artifact]:
        directory = self._env_dir(environment_id)
        if not directory.is_dir():
            return {}
        artifacts: dict[str, Artifact] = {}
        for path in sorted(directory.glob("*.json")):
            if path.name == MIGRATIONS_FILE:
                continue
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError(f"Artifact file must hold a JSON object: {path}")
            artifact = Artifact.from_dict(raw)
            if _file_name(artifact.name) != path.name:
                raise ValueError(f"Artifact file {path} holds record for '{artifact.name}'")
            artifacts[artifact.name] = artifact
        return artifacts

    def put(self, environment_id: str, artifact: Artifact) -> None:
        file_name = _file_name(artifact.name)
        if file_name == MIGRATIONS_FILE:
            raise ValueError(f"Artifact name '{artifact.name}' is reserved for the completion ledger")
        payload = artifact.to_dict()
        payload["updated_at"] = _now()
        _atomic_write_json(self._env_dir(environment_id) / file_name, payload)

    def load_completed(self, environment_id: str) -> set[str]:
        return set(self._read_ledger(environment_id))

    def record_completed(self, environment_id: str, step_id: str) -> None:
        # The ledger is shared by every step of the environment; serialize read-modify-write.
        with self._ledger_lock:
            ledger = self._read_ledger(environment_id)
            ledger[step_id] = _now()
            _atomic_write_json(self._env_dir(environment_id) / MIGRATIONS_FILE, ledger)

    def _read_ledger(self, environment_id: str) -> dict[str, str]:
        path = self._env_dir(environment_id) / MIGRATIONS_FILE
        if not path.exists():
            return {}
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Completion ledger must hold a JSON object: {path}")
        return {str(key): str(value) for key, value in raw.items()}

    def _env_dir(self, environment_id: str) -> Path:
        return self._root / quote(environment_id, safe="")


def _file_name(name: str) -> str:
    # Artifact names like "Root:contract" or "a/b" must stay a single path segment.
    return quote(name, safe="") + ".json"


def _atomic_write_json(path: Path, payload: dict[str, object]) -> None:
    # Write to a sibling temp file and rename, so a crash never leaves a torn record.
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _now() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
