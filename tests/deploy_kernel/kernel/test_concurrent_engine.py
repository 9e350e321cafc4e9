from __future__ import annotations

import threading

from deploy_kernel.adapters.artifact_backends import InMemoryArtifactBackend
from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.engine import ExecutionEngine
from deploy_kernel.kernel.environment import Environment
from deploy_kernel.kernel.run_result import Outcome
from deploy_kernel.kernel.step import Step
from deploy_kernel.kernel.step_registry import StepRegistry
from deploy_kernel.observability.logging import MemoryLogSink


def _deploy(name: str, *, needs: tuple[str, ...] = (), log: list[str] | None = None):
    def _action(ctx):
        for upstream in needs:
            ctx.artifact(upstream)
        if log is not None:
            log.append(name)
        return Artifact(name=name, address=f"0x{name.lower()}")

    return _action


def test_independent_steps_run_in_parallel() -> None:
    # Two independent steps can be in flight at the same time.
    barrier = threading.Barrier(2, timeout=5)

    def _meet(name: str):
        def _action(ctx):
            barrier.wait()
            return Artifact(name=name, address=f"0x{name.lower()}")

        return _action

    registry = StepRegistry([Step(id="Left", action=_meet("Left")), Step(id="Right", action=_meet("Right"))])
    result = ExecutionEngine(registry=registry, backend=InMemoryArtifactBackend(), max_workers=2).run(
        Environment(network="localhost")
    )
    assert result.ok
    assert result.order == ["Left", "Right"]


def test_dependencies_still_complete_first() -> None:
    # Parallel mode never starts a step before its dependencies finished.
    started: list[str] = []
    registry = StepRegistry(
        [
            Step(id="Registry", action=_deploy("Registry", log=started)),
            Step(id="Registrar", action=_deploy("Registrar", needs=("Registry",), log=started), dependencies=("Registry",)),
            Step(id="Resolver", action=_deploy("Resolver", needs=("Registry",), log=started), dependencies=("Registry",)),
            Step(
                id="Controller",
                action=_deploy("Controller", needs=("Registrar", "Resolver"), log=started),
                dependencies=("Registrar", "Resolver"),
            ),
        ]
    )
    result = ExecutionEngine(registry=registry, backend=InMemoryArtifactBackend(), max_workers=4).run(
        Environment(network="localhost")
    )
    assert all(r.outcome is Outcome.EXECUTED_SUCCESS for r in result.results)
    assert started[0] == "Registry"
    assert started[-1] == "Controller"
    assert result.order == ["Registry", "Registrar", "Resolver", "Controller"]


def test_failure_cancels_only_dependents_in_parallel_mode() -> None:
    # An unrelated branch finishes; dependents of the failure are cancelled.
    def _explode(ctx):
        raise RuntimeError("boom")

    registry = StepRegistry(
        [
            Step(id="Broken", action=_explode),
            Step(id="Downstream", action=_deploy("Downstream"), dependencies=("Broken",)),
            Step(id="Further", action=_deploy("Further"), dependencies=("Downstream",)),
            Step(id="Independent", action=_deploy("Independent")),
        ]
    )
    sink = MemoryLogSink()
    result = ExecutionEngine(registry=registry, backend=InMemoryArtifactBackend(), log_sink=sink, max_workers=3).run(
        Environment(network="localhost")
    )
    assert result.outcome_of("Broken") is Outcome.EXECUTED_FAILURE
    assert result.outcome_of("Downstream") is Outcome.CANCELLED
    assert result.outcome_of("Further") is Outcome.CANCELLED
    assert result.outcome_of("Independent") is Outcome.EXECUTED_SUCCESS
    assert not result.ok
    assert sink.texts()[-1] == "run.finish"
