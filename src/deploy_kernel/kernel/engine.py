from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.artifact_store import ArtifactStore
from deploy_kernel.kernel.context import StepContext
from deploy_kernel.kernel.dag import DependencyResolver
from deploy_kernel.kernel.environment import Environment
from deploy_kernel.kernel.errors import ActionFailure, GateEvaluationError, StepError
from deploy_kernel.kernel.run_result import Outcome, RunResult, StepResult
from deploy_kernel.kernel.selection import TagSelector
from deploy_kernel.kernel.step import SKIP, ActionResult, Step
from deploy_kernel.kernel.step_registry import StepRegistry
from deploy_kernel.observability.logging import LockedLogSink, LogMessage
from deploy_kernel.ports.artifact_backend import ArtifactBackend
from deploy_kernel.ports.log_sink import LogSink


@dataclass(frozen=True, slots=True)
class _RunState:
    # Everything one run shares between steps; built in run() and dropped afterwards.
    environment: Environment
    store: ArtifactStore
    force: frozenset[str]
    dependencies: Mapping[str, tuple[str, ...]]
    log_sink: LogSink | None


@dataclass(frozen=True, slots=True)
class ExecutionEngine:
    # Walks the resolved order, enforcing gates, idempotency and halt-on-failure.
    registry: StepRegistry
    backend: ArtifactBackend
    log_sink: LogSink | None = None
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError("ExecutionEngine.max_workers must be >= 1")

    def plan(self, tags: Iterable[str] = ()) -> list[Step]:
        # The whole registry is validated first; a cycle anywhere is fatal before any action runs.
        resolver = DependencyResolver(self.registry)
        resolver.validate()
        return resolver.resolve(TagSelector(self.registry).select(tags))

    def run(
        self,
        environment: Environment,
        *,
        tags: Iterable[str] = (),
        force: Iterable[str] = (),
    ) -> RunResult:
        query = sorted(set(tags))
        forced = frozenset(force)
        for name in sorted(forced):
            # Unknown force targets are configuration mistakes; fail before touching the store.
            self.registry.lookup(name)

        order = self.plan(query)
        resolver = DependencyResolver(self.registry)
        log_sink = self.log_sink
        if log_sink is not None and self.max_workers > 1:
            log_sink = LockedLogSink(log_sink)
        state = _RunState(
            environment=environment,
            store=ArtifactStore.open(self.backend, environment.key),
            force=forced,
            dependencies={
                step.name: tuple(dependency.name for dependency in resolver.dependencies_of(step)) for step in order
            },
            log_sink=log_sink,
        )
        _emit(
            log_sink,
            "info",
            "run.start",
            network=environment.network,
            steps=len(order),
            tags=query,
            force=sorted(forced),
        )

        if self.max_workers == 1:
            results = self._run_sequential(order, state)
        else:
            results = self._run_concurrent(order, state)

        run_result = RunResult(
            environment_id=environment.key,
            results=tuple(results),
            artifacts=state.store.snapshot(),
        )
        _emit(
            log_sink,
            "info" if run_result.ok else "error",
            "run.finish",
            ok=run_result.ok,
            **run_result.summary(),
        )
        return run_result

    def _run_sequential(self, order: list[Step], state: _RunState) -> list[StepResult]:
        # Baseline model: one step at a time; the first failure halts everything after it.
        results: list[StepResult] = []
        failed: StepResult | None = None
        for step in order:
            if failed is not None:
                results.append(self._cancel(step, failed, state))
                continue
            result = self._execute(step, state)
            results.append(result)
            if result.outcome is Outcome.EXECUTED_FAILURE:
                failed = result
        return results

    def _run_concurrent(self, order: list[Step], state: _RunState) -> list[StepResult]:
        # Independent branches run in parallel; a failure cancels only its dependents.
        finished: dict[str, StepResult] = {}
        pending = list(order)
        running: dict[Future[StepResult], Step] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="deploy-step") as pool:
            while pending or running:
                still_pending: list[Step] = []
                for step in pending:
                    blockers = state.dependencies[step.name]
                    # Cancellation is checked before each start.
                    broken = next(
                        (finished[name] for name in blockers if name in finished and finished[name].outcome.is_failure),
                        None,
                    )
                    if broken is not None:
                        finished[step.name] = self._cancel(step, broken, state)
                    elif all(name in finished for name in blockers):
                        running[pool.submit(self._execute, step, state)] = step
                    else:
                        still_pending.append(step)
                pending = still_pending
                if not running:
                    # Every remaining step waits on something that will never finish.
                    break
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    step = running.pop(future)
                    finished[step.name] = future.result()
        return [finished[step.name] for step in order]

    def _execute(self, step: Step, state: _RunState) -> StepResult:
        started = time.perf_counter()

        def _finish(outcome: Outcome, **details: object) -> StepResult:
            result = StepResult(
                step_id=step.id,
                name=step.name,
                outcome=outcome,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                **details,  # type: ignore[arg-type]
            )
            _log_step(state.log_sink, result)
            return result

        try:
            gate_open = step.gate_open(state.environment)
        except Exception as exc:  # noqa: BLE001 - gate errors become a recorded failure
            error = GateEvaluationError(step.id, exc)
            error.__cause__ = exc
            return _finish(
                Outcome.EXECUTED_FAILURE,
                reason=str(error),
                error=error,
                chain=_chain(step.name, state.dependencies),
            )
        if not gate_open:
            # Vacuously satisfied for dependents; nothing runs, nothing is written.
            return _finish(Outcome.SKIPPED_GATE_FALSE)

        ctx = StepContext(step=step, environment=state.environment, store=state.store, log_sink=state.log_sink)
        try:
            if step.name not in state.force and _is_satisfied(step, ctx, state.store):
                return _finish(Outcome.SKIPPED_ALREADY_SATISFIED)
            returned = step.action(ctx)
            artifacts = _collect_artifacts(ctx, returned)
            if returned is not SKIP:
                missing = _missing_artifacts(step, artifacts, state.store)
                if missing:
                    raise ActionFailure(step.id, f"declared artifact '{missing[0]}' was not produced")
            for artifact in artifacts:
                state.store.put(artifact)
            if returned is not SKIP:
                state.store.mark_completed(step.id)
        except StepError as exc:
            return _finish(
                Outcome.EXECUTED_FAILURE,
                reason=str(exc),
                error=exc,
                chain=_chain(step.name, state.dependencies),
            )
        except Exception as exc:  # noqa: BLE001 - collaborator errors are wrapped, recorded and halt the run
            error = ActionFailure(step.id, exc)
            error.__cause__ = exc
            return _finish(
                Outcome.EXECUTED_FAILURE,
                reason=str(error),
                error=error,
                chain=_chain(step.name, state.dependencies),
            )
        return _finish(
            Outcome.EXECUTED_SUCCESS,
            artifacts=tuple(artifacts),
            note="action skipped" if returned is SKIP else None,
        )

    def _cancel(self, step: Step, failed: StepResult, state: _RunState) -> StepResult:
        result = StepResult(
            step_id=step.id,
            name=step.name,
            outcome=Outcome.CANCELLED,
            reason=f"not attempted: '{failed.step_id}' failed",
            chain=_chain(step.name, state.dependencies),
        )
        _log_step(state.log_sink, result)
        return result


def _is_satisfied(step: Step, ctx: StepContext, store: ArtifactStore) -> bool:
    # Explicit predicate first, then produced artifacts, then the completion ledger.
    if step.satisfied is not None:
        return bool(step.satisfied(ctx))
    if step.produces:
        return all(store.has(name) for name in step.produces)
    return store.is_completed(step.id)


def _collect_artifacts(ctx: StepContext, returned: ActionResult) -> list[Artifact]:
    # Returned artifacts go through the same write check as published ones.
    if returned is None or returned is SKIP:
        pass
    elif isinstance(returned, Artifact):
        ctx.publish(returned)
    elif isinstance(returned, (str, bytes, Mapping)) or not isinstance(returned, Iterable):
        raise TypeError(f"Action returned {type(returned).__name__}; expected Artifact, iterable of Artifact, SKIP or None")
    else:
        for item in returned:
            if not isinstance(item, Artifact):
                raise TypeError(f"Action returned a non-Artifact item: {type(item).__name__}")
            ctx.publish(item)
    return list(ctx.staged().values())


def _missing_artifacts(step: Step, artifacts: list[Artifact], store: ArtifactStore) -> list[str]:
    # A completed action must leave every declared artifact behind, written now or earlier.
    written = {artifact.name for artifact in artifacts}
    return [name for name in step.produces if name not in written and not store.has(name)]


def _chain(name: str, dependencies: Mapping[str, tuple[str, ...]]) -> tuple[str, ...]:
    # Transitive upstream of a step (dependencies first), ending with the step itself.
    ordered: list[str] = []
    seen: set[str] = {name}
    stack = [(name, iter(dependencies.get(name, ())))]
    while stack:
        current, pending = stack[-1]
        upstream = next(pending, None)
        if upstream is None:
            stack.pop()
            if stack:
                ordered.append(current)
        elif upstream not in seen:
            seen.add(upstream)
            stack.append((upstream, iter(dependencies.get(upstream, ()))))
    return (*ordered, name)


def _log_step(log_sink: LogSink | None, result: StepResult) -> None:
    if log_sink is None:
        return
    level = "error" if result.outcome is Outcome.EXECUTED_FAILURE else "info"
    fields: dict[str, object] = {
        "step_id": result.step_id,
        "name": result.name,
        "outcome": result.outcome.value,
        "duration_ms": round(result.duration_ms, 3),
    }
    if result.artifacts:
        fields["artifacts"] = {artifact.name: artifact.address for artifact in result.artifacts}
    if result.reason:
        fields["reason"] = result.reason
    if result.outcome is Outcome.EXECUTED_FAILURE:
        fields["chain"] = list(result.chain)
    log_sink.emit(LogMessage(level=level, message=f"step.{result.outcome.value}", fields=fields))


def _emit(log_sink: LogSink | None, level: str, message: str, **fields: object) -> None:
    if log_sink is not None:
        log_sink.emit(LogMessage(level=level, message=message, fields=fields))
