from __future__ import annotations

import importlib

from deploy_kernel.adapters.artifact_backends import InMemoryArtifactBackend
from deploy_kernel.config.loader import parse_config
from deploy_kernel.kernel.composition_root import DeployRuntime, build_runtime
from deploy_kernel.kernel.errors import ActionFailure
from deploy_kernel.kernel.run_result import Outcome
from deploy_kernel.observability.logging import MemoryLogSink
from ens_deploy.adapters.simulated_chain import SimulatedChain
from ens_deploy.steps import UNIVERSAL_SIG_VALIDATOR_ADDRESS
from ens_deploy.wiring import build_clients

DEPLOYER = "0xdeployer"
OWNER = "0xowner"


def _runtime(
    chain: SimulatedChain,
    backend: InMemoryArtifactBackend,
    *,
    network: str = "localhost",
    tags: list[str] | None = None,
    select: list[str] | None = None,
    chain_id: int | None = 31337,
    sink: MemoryLogSink | None = None,
) -> DeployRuntime:
    config = parse_config(
        {
            "version": 1,
            "environment": {
                "network": network,
                "chain_id": chain_id,
                "tags": tags if tags is not None else ["use_root", "local"],
                "accounts": {"deployer": DEPLOYER, "owner": OWNER},
            },
            "steps": {"modules": ["ens_deploy.steps"]},
            "selection": {"tags": select or []},
            "store": {"kind": "memory"},
            "logging": {"console": False},
        }
    )
    return build_runtime(config=config, clients={"chain": chain}, backend=backend, log_sink=sink)


def test_full_local_deployment_wires_ownership_and_controllers() -> None:
    # A local run deploys the catalog and leaves chain state wired up.
    chain = SimulatedChain(network="localhost", chain_id=31337)
    result = _runtime(chain, InMemoryArtifactBackend()).run()
    assert result.ok

    assert result.outcome_of("LegacyPublicResolver") is Outcome.SKIPPED_GATE_FALSE
    assert result.outcome_of("BaseRegistrarImplementation:setup") is Outcome.EXECUTED_SUCCESS
    order = result.order
    assert order.index("BaseRegistrarImplementation:setup") < order.index("ETHRegistrarController")
    assert order.index("ETHRegistrarController") < order.index("PublicResolver")

    artifacts = result.artifacts
    registrar = artifacts["BaseRegistrarImplementation"].address
    controller = artifacts["ETHRegistrarController"].address
    assert chain.call(registrar, "owner") == OWNER
    assert chain.call(artifacts["Root"].address, "subnodeOwner", ["eth"]) == registrar
    assert chain.call(controller, "owner") == OWNER
    assert chain.call(registrar, "controllers", [controller]) is True
    assert chain.call(artifacts["DefaultReverseRegistrar"].address, "controllers", [controller]) is True
    assert artifacts["UniversalSigValidator"].address == UNIVERSAL_SIG_VALIDATOR_ADDRESS
    assert artifacts["ENSRegistry"].metadata["deployer"] == DEPLOYER


def test_second_run_is_a_no_op() -> None:
    # Rerunning against the same store and chain sends no transactions.
    chain = SimulatedChain(network="localhost", chain_id=31337)
    backend = InMemoryArtifactBackend()
    _runtime(chain, backend).run()
    sent = len(chain.transactions)

    second = _runtime(chain, backend).run()
    assert second.ok
    assert second.executed() == []
    assert len(chain.transactions) == sent
    assert second.outcome_of("BaseRegistrarImplementation:setup") is Outcome.SKIPPED_ALREADY_SATISFIED


def test_without_use_root_setup_is_gated_and_registrar_controller_still_deploys() -> None:
    # Without use_root the Root contract and registrar setup are gate-skipped.
    chain = SimulatedChain(network="localhost", chain_id=31337)
    result = _runtime(chain, InMemoryArtifactBackend(), tags=["local"]).run()
    assert result.ok
    assert result.outcome_of("Root:contract") is Outcome.SKIPPED_GATE_FALSE
    assert result.outcome_of("BaseRegistrarImplementation:setup") is Outcome.SKIPPED_GATE_FALSE
    assert "Root" not in result.artifacts
    registrar = result.artifacts["BaseRegistrarImplementation"].address
    assert chain.call(registrar, "owner") == DEPLOYER


def test_resolvers_category_runs_only_extended_dns_resolver() -> None:
    # Selecting category:resolvers without the legacy flag touches only what it needs.
    chain = SimulatedChain(network="localhost", chain_id=31337)
    result = _runtime(chain, InMemoryArtifactBackend(), select=["category:resolvers"]).run()
    assert "ExtendedDNSResolver" in result.order
    assert "BatchGatewayProvider" not in result.order
    assert "UniversalSigValidator" not in result.order


def test_utils_selection_pulls_registry_dependency() -> None:
    # UniversalResolver brings its registry and gateway provider along.
    chain = SimulatedChain(network="localhost", chain_id=31337)
    result = _runtime(chain, InMemoryArtifactBackend(), select=["UniversalResolver"]).run()
    assert result.order == ["ENSRegistry", "BatchGatewayProvider", "UniversalResolver"]


def test_mainnet_leaves_controller_wiring_to_governance() -> None:
    # On mainnet without a fork flag, controllers are not added directly.
    chain = SimulatedChain(network="mainnet", chain_id=1)
    result = _runtime(chain, InMemoryArtifactBackend(), network="mainnet", tags=[], chain_id=1).run()
    assert result.ok
    registrar = result.artifacts["BaseRegistrarImplementation"].address
    controller = result.artifacts["ETHRegistrarController"].address
    assert chain.call(registrar, "controllers", [controller]) is False
    assert result.outcome_of("L2ReverseRegistrar") is Outcome.SKIPPED_GATE_FALSE


def test_preinstalled_sig_validator_is_not_redeployed() -> None:
    # Code already at the canonical address satisfies the step without an artifact.
    chain = SimulatedChain(
        network="localhost",
        chain_id=31337,
        preinstalled={UNIVERSAL_SIG_VALIDATOR_ADDRESS: "UniversalSigValidator"},
    )
    result = _runtime(chain, InMemoryArtifactBackend(), select=["UniversalSigValidator"]).run()
    assert result.outcome_of("UniversalSigValidator") is Outcome.SKIPPED_ALREADY_SATISFIED
    assert "UniversalSigValidator" not in result.artifacts


def test_l2_reverse_registrar_waits_for_chain_id() -> None:
    # Without a chain id the step skips and stays eligible for a later run.
    chain = SimulatedChain(network="localhost")
    backend = InMemoryArtifactBackend()
    sink = MemoryLogSink()
    first = _runtime(chain, backend, select=["L2ReverseRegistrar"], chain_id=None, sink=sink).run()
    assert first.result_of("L2ReverseRegistrar").note == "action skipped"
    assert "no chain id configured; skipping L2ReverseRegistrar" in sink.texts()

    second = _runtime(chain, backend, select=["L2ReverseRegistrar"], chain_id=10).run()
    assert second.outcome_of("L2ReverseRegistrar") is Outcome.EXECUTED_SUCCESS
    coin_type = second.artifacts["L2ReverseRegistrar"].metadata["args"]
    assert coin_type == f'["{0x80000000 | 10}"]'


def test_reverted_deployment_halts_dependents() -> None:
    # A revert fails the step and cancels everything after it.
    chain = SimulatedChain(network="localhost", chain_id=31337, fail_on=["DefaultReverseRegistrar"])
    result = _runtime(chain, InMemoryArtifactBackend()).run()
    failure = result.result_of("DefaultReverseRegistrar")
    assert failure.outcome is Outcome.EXECUTED_FAILURE
    assert isinstance(failure.error, ActionFailure)
    assert result.outcome_of("ETHRegistrarController") is Outcome.CANCELLED
    assert result.outcome_of("PublicResolver") is Outcome.CANCELLED


def test_concurrent_run_matches_sequential_outcomes() -> None:
    # Parallel execution reaches the same artifacts as a sequential run.
    config = parse_config(
        {
            "version": 1,
            "environment": {
                "network": "localhost",
                "chain_id": 31337,
                "tags": ["use_root", "local"],
                "accounts": {"deployer": DEPLOYER, "owner": OWNER},
            },
            "steps": {"modules": ["ens_deploy.steps"], "wiring": "ens_deploy.wiring:build_clients"},
            "store": {"kind": "memory"},
            "execution": {"max_workers": 4},
            "logging": {"console": False},
        }
    )
    result = build_runtime(config=config).run()
    assert result.ok
    assert set(result.artifacts) >= {"ENSRegistry", "Root", "ETHRegistrarController", "PublicResolver"}


def test_wiring_builds_a_chain_per_environment() -> None:
    # The wiring factory binds a simulated chain under the "chain" name.
    config = parse_config({"version": 1, "environment": {"network": "holesky"}, "steps": {"modules": ["ens_deploy.steps"]}})
    clients = build_clients(config.environment)
    assert isinstance(clients["chain"], SimulatedChain)


def test_catalog_steps_are_discoverable() -> None:
    # The catalog module exports every step with a unique logical name.
    module = importlib.import_module("ens_deploy.steps")
    runtime = _runtime(SimulatedChain(network="localhost"), InMemoryArtifactBackend())
    names = [step.name for step in runtime.registry]
    assert names[0] == "ENSRegistry"
    assert "LegacyPublicResolver" in names and "PublicResolver" in names
    assert runtime.registry.lookup("LegacyPublicResolver").id == "PublicResolver v1.0.0"
    assert module.l2_reverse_registrar.dependencies == ("UniversalSigValidator",)
