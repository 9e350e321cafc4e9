from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from deploy_kernel.adapters.artifact_backends import InMemoryArtifactBackend, JsonDirectoryBackend
from deploy_kernel.config.models import AppConfig, LoggingConfig, StoreConfig
from deploy_kernel.kernel.dag import DependencyResolver
from deploy_kernel.kernel.discovery import StepDiscoveryError, discover_steps, import_step_modules, load_callable
from deploy_kernel.kernel.engine import ExecutionEngine
from deploy_kernel.kernel.environment import Environment
from deploy_kernel.kernel.run_result import RunResult
from deploy_kernel.kernel.step_registry import StepRegistry
from deploy_kernel.observability.logging import ConsoleLogSink, FanoutLogSink, JsonlLogSink
from deploy_kernel.ports.artifact_backend import ArtifactBackend
from deploy_kernel.ports.log_sink import LogSink


@dataclass(frozen=True, slots=True)
class DeployRuntime:
    # Bundle of everything a driver needs to plan or run one configuration.
    engine: ExecutionEngine
    environment: Environment
    tags: tuple[str, ...]
    force: tuple[str, ...]

    @property
    def registry(self) -> StepRegistry:
        return self.engine.registry

    def run(self) -> RunResult:
        return self.engine.run(self.environment, tags=self.tags, force=self.force)

    def close(self) -> None:
        if self.engine.log_sink is not None:
            self.engine.log_sink.close()


def build_runtime(
    *,
    config: AppConfig,
    clients: Mapping[str, object] | None = None,
    backend: ArtifactBackend | None = None,
    log_sink: LogSink | None = None,
) -> DeployRuntime:
    # Wires registry, environment, store backend and log sinks from a validated config.
    registry = StepRegistry(discover_steps(import_step_modules(config.steps.modules)))
    if not len(registry):
        raise StepDiscoveryError(f"No steps found in modules {config.steps.modules}")
    # Structural errors surface here, before the driver does anything else.
    DependencyResolver(registry).validate()

    bound_clients = dict(clients) if clients is not None else _wire_clients(config)
    environment = Environment(
        network=config.environment.network,
        chain_id=config.environment.chain_id,
        tags=frozenset(config.environment.tags),
        accounts=config.environment.accounts,
        clients=bound_clients,
    )
    engine = ExecutionEngine(
        registry=registry,
        backend=backend if backend is not None else build_backend(config.store),
        log_sink=log_sink if log_sink is not None else build_log_sink(config.logging),
        max_workers=config.execution.max_workers,
    )
    return DeployRuntime(
        engine=engine,
        environment=environment,
        tags=tuple(config.selection.tags),
        force=tuple(config.selection.force),
    )


def build_backend(store: StoreConfig) -> ArtifactBackend:
    if store.kind == "memory":
        return InMemoryArtifactBackend()
    assert store.path is not None  # validated by config model
    return JsonDirectoryBackend(Path(store.path))


def build_log_sink(logging: LoggingConfig) -> LogSink | None:
    sinks: list[LogSink] = []
    if logging.console:
        sinks.append(ConsoleLogSink(min_level=logging.level))
    if logging.jsonl_path:
        sinks.append(JsonlLogSink(Path(logging.jsonl_path)))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return FanoutLogSink(sinks)


def _wire_clients(config: AppConfig) -> dict[str, object]:
    # The wiring factory receives the environment section and returns named client bindings.
    if config.steps.wiring is None:
        return {}
    factory = load_callable(config.steps.wiring)
    clients = factory(config.environment)
    if not isinstance(clients, Mapping):
        raise StepDiscoveryError(f"Wiring factory '{config.steps.wiring}' must return a mapping")
    return dict(clients)
