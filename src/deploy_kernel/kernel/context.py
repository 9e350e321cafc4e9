from __future__ import annotations

from collections.abc import Mapping

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.artifact_store import ArtifactStore
from deploy_kernel.kernel.environment import Environment
from deploy_kernel.kernel.errors import ArtifactWriteDenied
from deploy_kernel.kernel.step import Step
from deploy_kernel.observability.logging import LogMessage
from deploy_kernel.ports.log_sink import LogSink


class StepContext:
    """What an action sees while it runs.

    Reads go straight to the artifact store, so upstream results are visible by
    name. Writes are staged and limited to the names the step declares in
    ``produces``; the engine persists them only after the action returns.
    """

    def __init__(
        self,
        *,
        step: Step,
        environment: Environment,
        store: ArtifactStore,
        log_sink: LogSink | None = None,
    ) -> None:
        self._step = step
        self._environment = environment
        self._store = store
        self._log_sink = log_sink
        self._staged: dict[str, Artifact] = {}

    @property
    def step(self) -> Step:
        return self._step

    @property
    def environment(self) -> Environment:
        return self._environment

    def artifact(self, name: str) -> Artifact:
        # Raises MissingArtifact, e.g. when the producer was gate-skipped.
        staged = self._staged.get(name)
        if staged is not None:
            return staged
        return self._store.require(name, step=self._step.id)

    def get(self, name: str) -> Artifact | None:
        return self._staged.get(name) or self._store.get(name)

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def address(self, name: str) -> str:
        return self.artifact(name).address

    def publish(self, artifact: Artifact) -> Artifact:
        self.check_writable(artifact.name)
        self._staged[artifact.name] = artifact
        return artifact

    def check_writable(self, name: str) -> None:
        if name not in self._step.produces:
            raise ArtifactWriteDenied(self._step.id, name, self._step.produces)

    def staged(self) -> Mapping[str, Artifact]:
        return dict(self._staged)

    def log(self, message: str, *, level: str = "info", **fields: object) -> None:
        if self._log_sink is None:
            return
        self._log_sink.emit(LogMessage(level=level, message=message, fields={"step_id": self._step.id, **fields}))
