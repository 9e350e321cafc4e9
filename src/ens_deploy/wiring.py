from __future__ import annotations

from deploy_kernel.config.models import EnvironmentConfig
from ens_deploy.adapters.simulated_chain import SimulatedChain


def build_clients(environment: EnvironmentConfig) -> dict[str, object]:
    # Named client bindings handed to steps through Environment.clients.
    return {"chain": SimulatedChain(network=environment.network, chain_id=environment.chain_id)}
