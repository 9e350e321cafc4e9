from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from deploy_kernel.kernel.artifact import Artifact


class Outcome(str, Enum):
    SKIPPED_ALREADY_SATISFIED = "skipped_already_satisfied"
    SKIPPED_GATE_FALSE = "skipped_gate_false"
    EXECUTED_SUCCESS = "executed_success"
    EXECUTED_FAILURE = "executed_failure"
    # Not attempted because a step it depends on (or, sequentially, any earlier step) failed.
    CANCELLED = "cancelled"

    @property
    def is_failure(self) -> bool:
        return self in (Outcome.EXECUTED_FAILURE, Outcome.CANCELLED)

    @property
    def satisfies_dependents(self) -> bool:
        return not self.is_failure


@dataclass(frozen=True, slots=True)
class StepResult:
    # Outcome of one step in one run.
    step_id: str
    name: str
    outcome: Outcome
    artifacts: tuple[Artifact, ...] = ()
    reason: str | None = None
    error: BaseException | None = None
    # Dependency chain leading to the step, outermost first.
    chain: tuple[str, ...] = ()
    duration_ms: float = 0.0
    note: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "step_id": self.step_id,
            "name": self.name,
            "outcome": self.outcome.value,
            "artifacts": {artifact.name: artifact.address for artifact in self.artifacts},
            "reason": self.reason,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "chain": list(self.chain),
            "duration_ms": round(self.duration_ms, 3),
            "note": self.note,
        }


@dataclass(frozen=True, slots=True)
class RunResult:
    # Per-step outcomes in execution order plus the store contents after the run.
    environment_id: str
    results: tuple[StepResult, ...]
    artifacts: Mapping[str, Artifact] = field(default_factory=dict)

    def __post_init__(self) -> None:
        names = [result.name for result in self.results]
        if len(names) != len(set(names)):
            raise ValueError("RunResult must list each step at most once")

    @property
    def ok(self) -> bool:
        return not any(result.outcome.is_failure for result in self.results)

    @property
    def failures(self) -> list[StepResult]:
        return [result for result in self.results if result.outcome is Outcome.EXECUTED_FAILURE]

    @property
    def order(self) -> list[str]:
        return [result.name for result in self.results]

    def outcome_of(self, name: str) -> Outcome:
        for result in self.results:
            if result.name == name:
                return result.outcome
        raise KeyError(f"Step '{name}' is not part of this run")

    def result_of(self, name: str) -> StepResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(f"Step '{name}' is not part of this run")

    def executed(self) -> list[StepResult]:
        return [result for result in self.results if result.outcome is Outcome.EXECUTED_SUCCESS]

    def summary(self) -> dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    def to_dict(self) -> dict[str, object]:
        return {
            "environment": self.environment_id,
            "ok": self.ok,
            "summary": self.summary(),
            "steps": [result.to_dict() for result in self.results],
            "artifacts": {name: artifact.to_dict() for name, artifact in sorted(self.artifacts.items())},
        }
