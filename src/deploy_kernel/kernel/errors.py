from __future__ import annotations

from collections.abc import Sequence


class DeployKernelError(Exception):
    # Base error for everything the orchestration engine raises.
    pass


class GraphError(DeployKernelError):
    # Structural errors: raised while registering or resolving, never mid-run.
    pass


class DuplicateId(GraphError):
    def __init__(self, step_id: str) -> None:
        super().__init__(f"Step id already registered: '{step_id}'")
        self.step_id = step_id


class DuplicateName(GraphError):
    def __init__(self, name: str, existing_id: str, new_id: str) -> None:
        super().__init__(
            f"Step name '{name}' already registered by '{existing_id}'; "
            f"'{new_id}' must be registered with override=True to replace it"
        )
        self.name = name
        self.existing_id = existing_id
        self.new_id = new_id


class DuplicateProducer(GraphError):
    def __init__(self, name: str, existing_id: str, new_id: str) -> None:
        super().__init__(f"Artifact '{name}' is already produced by '{existing_id}'; '{new_id}' cannot also produce it")
        self.name = name
        self.existing_id = existing_id
        self.new_id = new_id


class UnknownStep(GraphError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable instead.
        return f"Unknown step: '{self.name}'"


class CyclicDependency(GraphError):
    def __init__(self, path: Sequence[str]) -> None:
        self.path = tuple(path)
        super().__init__(f"Cyclic dependency: {' -> '.join(self.path)}")


class UnresolvedDependency(GraphError):
    def __init__(self, step: str, missing: str) -> None:
        super().__init__(f"Step '{step}' depends on '{missing}', which matches no registered step or tag")
        self.step = step
        self.missing = missing


class StepError(DeployKernelError):
    # Runtime errors scoped to a single step; they halt the run and land in RunResult.
    pass


class MissingArtifact(StepError):
    def __init__(self, name: str, *, step: str | None = None) -> None:
        where = f" (required by '{step}')" if step else ""
        super().__init__(f"Missing artifact '{name}'{where}")
        self.name = name
        self.step = step


class ArtifactWriteDenied(StepError):
    def __init__(self, step: str, name: str, allowed: Sequence[str]) -> None:
        super().__init__(f"Step '{step}' may not write artifact '{name}' (declared: {sorted(allowed)})")
        self.step = step
        self.name = name
        self.allowed = tuple(allowed)


class GateEvaluationError(StepError):
    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Gate of step '{step}' raised {type(cause).__name__}: {cause}")
        self.step = step
        self.cause = cause


class ActionFailure(StepError):
    # Wraps whatever the collaborator action raised; the cause stays opaque.
    def __init__(self, step: str, cause: BaseException | str) -> None:
        if isinstance(cause, BaseException):
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = cause
        super().__init__(f"Step '{step}' failed: {detail}")
        self.step = step
        self.cause = cause
