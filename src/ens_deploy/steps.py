from __future__ import annotations

import json
from collections.abc import Sequence
from typing import cast

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.context import StepContext
from deploy_kernel.kernel.discovery import deploy_step
from deploy_kernel.kernel.step import SKIP, ActionResult, any_tag, require_tag
from ens_deploy.ports.chain import ChainClient

# Step catalog for an ENS-style registry deployment. Each step provisions one piece of
# chain state; the engine decides order, gating and whether the step needs to run at all.

# Canonical deterministic-deployment address of the universal signature validator.
UNIVERSAL_SIG_VALIDATOR_ADDRESS = "0x164af34faf9879394370c7f09064127c043a35e9"
ETH_LABEL = "eth"


def chain_of(ctx: StepContext) -> ChainClient:
    return cast(ChainClient, ctx.environment.client("chain"))


def deploy_contract(
    ctx: StepContext,
    contract: str,
    args: Sequence[object] = (),
    *,
    artifact_name: str | None = None,
    at: str | None = None,
) -> Artifact:
    # Deploy from the deployer account and publish the address under the step's artifact name.
    deployer = ctx.environment.account("deployer")
    address, tx_hash = chain_of(ctx).deploy(contract, args, sender=deployer, at=at)
    ctx.log(f"deployed {contract}", address=address, tx=tx_hash)
    return ctx.publish(
        Artifact(
            name=artifact_name or contract,
            address=address,
            metadata={
                "contract": contract,
                "deployer": deployer,
                "tx": tx_hash,
                "args": json.dumps([str(arg) for arg in args]),
            },
        )
    )


def _ensure_owner(ctx: StepContext, address: str, contract: str) -> None:
    # Hand ownership to the configured owner account unless it already has it.
    chain = chain_of(ctx)
    owner = ctx.environment.account("owner")
    current = chain.call(address, "owner")
    if current == owner:
        return
    tx_hash = chain.transact(address, "transferOwnership", [owner], sender=str(current))
    ctx.log(f"transferring ownership of {contract} to owner", tx=tx_hash)


def _ensure_controller(ctx: StepContext, target: str, controller: str, *, label: str) -> None:
    chain = chain_of(ctx)
    if chain.call(target, "controllers", [controller]):
        return
    sender = str(chain.call(target, "owner"))
    tx_hash = chain.transact(target, "addController", [controller], sender=sender)
    ctx.log(f"adding controller on {label}", controller=controller, tx=tx_hash)


@deploy_step(
    id="ENSRegistry v1.0.0",
    tags=["category:registry", "ENSRegistry"],
)
def ens_registry(ctx: StepContext) -> Artifact:
    return deploy_contract(ctx, "ENSRegistry")


@deploy_step(
    id="Root:contract v1.0.0",
    tags=["category:root", "Root", "Root:contract"],
    dependencies=["ENSRegistry"],
    gate=require_tag("use_root"),
    produces=["Root"],
)
def root_contract(ctx: StepContext) -> Artifact:
    registry = ctx.artifact("ENSRegistry")
    return deploy_contract(ctx, "Root", [registry.address])


@deploy_step(
    id="BaseRegistrarImplementation:contract v1.0.0",
    tags=["category:ethregistrar", "BaseRegistrarImplementation", "BaseRegistrarImplementation:contract"],
    dependencies=["ENSRegistry"],
    produces=["BaseRegistrarImplementation"],
)
def base_registrar_contract(ctx: StepContext) -> Artifact:
    registry = ctx.artifact("ENSRegistry")
    return deploy_contract(ctx, "BaseRegistrarImplementation", [registry.address, ETH_LABEL])


def _base_registrar_is_set_up(ctx: StepContext) -> bool:
    # Ownership transfer leaves no artifact behind; look at chain state instead.
    root = ctx.get("Root")
    registrar = ctx.get("BaseRegistrarImplementation")
    if root is None or registrar is None:
        return False
    chain = chain_of(ctx)
    return (
        chain.call(registrar.address, "owner") == ctx.environment.account("owner")
        and chain.call(root.address, "subnodeOwner", [ETH_LABEL]) == registrar.address
    )


@deploy_step(
    id="BaseRegistrarImplementation:setup v1.0.0",
    tags=["category:ethregistrar", "BaseRegistrarImplementation", "BaseRegistrarImplementation:setup"],
    dependencies=["Root", "BaseRegistrarImplementation:contract"],
    gate=require_tag("use_root"),
    produces=[],
    satisfied=_base_registrar_is_set_up,
)
def base_registrar_setup(ctx: StepContext) -> None:
    chain = chain_of(ctx)
    root = ctx.artifact("Root")
    registrar = ctx.artifact("BaseRegistrarImplementation")
    ctx.log("running base registrar setup")
    _ensure_owner(ctx, registrar.address, "BaseRegistrarImplementation")
    root_owner = str(chain.call(root.address, "owner"))
    tx_hash = chain.transact(root.address, "setSubnodeOwner", [ETH_LABEL, registrar.address], sender=root_owner)
    ctx.log("setting owner of eth node to registrar on root", tx=tx_hash)


@deploy_step(
    id="ExtendedDNSResolver v1.0.0",
    tags=["category:resolvers", "ExtendedDNSResolver"],
)
def extended_dns_resolver(ctx: StepContext) -> Artifact:
    return deploy_contract(ctx, "ExtendedDNSResolver")


@deploy_step(
    id="PublicResolver v1.0.0",
    name="LegacyPublicResolver",
    tags=["category:resolvers", "LegacyPublicResolver"],
    dependencies=["ENSRegistry"],
    gate=require_tag("legacy"),
)
def legacy_public_resolver(ctx: StepContext) -> Artifact:
    registry = ctx.artifact("ENSRegistry")
    return deploy_contract(ctx, "PublicResolver_mainnet_9412610", [registry.address], artifact_name="LegacyPublicResolver")


@deploy_step(
    id="DefaultReverseRegistrar v1.0.0",
    tags=["category:reverseregistrar", "DefaultReverseRegistrar"],
)
def default_reverse_registrar(ctx: StepContext) -> Artifact:
    return deploy_contract(ctx, "DefaultReverseRegistrar")


@deploy_step(
    id="ETHRegistrarController v3.0.0",
    tags=["category:ethregistrar", "ETHRegistrarController"],
    dependencies=["ENSRegistry", "BaseRegistrarImplementation", "DefaultReverseRegistrar"],
)
def eth_registrar_controller(ctx: StepContext) -> None:
    registry = ctx.artifact("ENSRegistry")
    registrar = ctx.artifact("BaseRegistrarImplementation")
    default_reverse = ctx.artifact("DefaultReverseRegistrar")
    controller = deploy_contract(
        ctx,
        "ETHRegistrarController",
        [registrar.address, 60, 86400, default_reverse.address, registry.address],
    )
    _ensure_owner(ctx, controller.address, "ETHRegistrarController")

    # Controller wiring is applied directly only off mainnet (or on a mainnet fork).
    if ctx.environment.network == "mainnet" and not ctx.environment.has_tag("tenderly"):
        return
    _ensure_controller(ctx, registrar.address, controller.address, label="BaseRegistrarImplementation")
    _ensure_controller(ctx, default_reverse.address, controller.address, label="DefaultReverseRegistrar")


@deploy_step(
    id="PublicResolver v3.0.0",
    tags=["category:resolvers", "PublicResolver"],
    dependencies=["ENSRegistry", "ETHRegistrarController", "DefaultReverseRegistrar"],
)
def public_resolver(ctx: StepContext) -> Artifact:
    registry = ctx.artifact("ENSRegistry")
    controller = ctx.artifact("ETHRegistrarController")
    default_reverse = ctx.artifact("DefaultReverseRegistrar")
    return deploy_contract(ctx, "PublicResolver", [registry.address, controller.address, default_reverse.address])


@deploy_step(
    id="BatchGatewayProvider v1.0.0",
    tags=["category:utils", "BatchGatewayProvider"],
)
def batch_gateway_provider(ctx: StepContext) -> Artifact:
    return deploy_contract(ctx, "BatchGatewayProvider", ["https://ccip-v3.ens.xyz/"])


@deploy_step(
    id="UniversalResolver v1.0.1",
    tags=["category:utils", "UniversalResolver"],
    dependencies=["ENSRegistry", "BatchGatewayProvider"],
)
def universal_resolver(ctx: StepContext) -> Artifact:
    registry = ctx.artifact("ENSRegistry")
    gateways = ctx.artifact("BatchGatewayProvider")
    return deploy_contract(ctx, "UniversalResolver", [registry.address, gateways.address])


def _sig_validator_present(ctx: StepContext) -> bool:
    # The validator lives at a fixed address on every chain; it may predate this deployment.
    if ctx.has("UniversalSigValidator"):
        return True
    return chain_of(ctx).code_at(UNIVERSAL_SIG_VALIDATOR_ADDRESS) is not None


@deploy_step(
    id="UniversalSigValidator v1.0.0",
    tags=["category:utils", "UniversalSigValidator"],
    satisfied=_sig_validator_present,
)
def universal_sig_validator(ctx: StepContext) -> Artifact:
    return deploy_contract(ctx, "UniversalSigValidator", at=UNIVERSAL_SIG_VALIDATOR_ADDRESS)


@deploy_step(
    id="L2ReverseRegistrar v1.0.0",
    tags=["category:reverseregistrar", "L2ReverseRegistrar"],
    dependencies=["UniversalSigValidator"],
    gate=any_tag("l2", "local"),
)
def l2_reverse_registrar(ctx: StepContext) -> ActionResult:
    chain_id = ctx.environment.chain_id
    if chain_id is None:
        # Coin type derivation needs a chain id; leave the step eligible for a later run.
        ctx.log("no chain id configured; skipping L2ReverseRegistrar", level="warning")
        return SKIP
    coin_type = (0x80000000 | chain_id) & 0xFFFFFFFF
    return deploy_contract(ctx, "L2ReverseRegistrar", [coin_type])
