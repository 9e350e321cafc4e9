from __future__ import annotations

import pytest

from ens_deploy.adapters.simulated_chain import SimulatedChain
from ens_deploy.ports.chain import ChainClient, ChainError


def test_simulated_chain_satisfies_port() -> None:
    # The simulated adapter implements the ChainClient protocol.
    assert isinstance(SimulatedChain(network="localhost"), ChainClient)


def test_deploy_addresses_are_deterministic() -> None:
    # Same network, sender and nonce sequence yields the same addresses.
    first = SimulatedChain(network="localhost", chain_id=31337)
    second = SimulatedChain(network="localhost", chain_id=31337)
    assert first.deploy("ENSRegistry", [], sender="0xd") == second.deploy("ENSRegistry", [], sender="0xd")
    other = SimulatedChain(network="sepolia", chain_id=11155111)
    assert other.deploy("ENSRegistry", [], sender="0xd")[0] != first.deploy("ENSRegistry", [], sender="0xd")[0]


def test_only_owner_may_transact() -> None:
    # State-changing calls from a non-owner are rejected.
    chain = SimulatedChain(network="localhost")
    address, _ = chain.deploy("BaseRegistrarImplementation", [], sender="0xd")
    with pytest.raises(ChainError):
        chain.transact(address, "addController", ["0xc"], sender="0xstranger")
    chain.transact(address, "transferOwnership", ["0xo"], sender="0xd")
    assert chain.call(address, "owner") == "0xo"
    chain.transact(address, "addController", ["0xc"], sender="0xo")
    assert chain.call(address, "controllers", ["0xc"]) is True
    chain.transact(address, "setController", ["0xc", False], sender="0xo")
    assert chain.call(address, "controllers", ["0xc"]) is False


def test_subnode_owner_and_unknown_methods() -> None:
    # Root tracks subnode owners; unknown methods and addresses are errors.
    chain = SimulatedChain(network="localhost")
    root, _ = chain.deploy("Root", ["0xregistry"], sender="0xd")
    chain.transact(root, "setSubnodeOwner", ["eth", "0xregistrar"], sender="0xd")
    assert chain.call(root, "subnodeOwner", ["eth"]) == "0xregistrar"
    assert chain.call(root, "args") == ("0xregistry",)
    with pytest.raises(ChainError):
        chain.call(root, "balanceOf")
    with pytest.raises(ChainError):
        chain.transact(root, "selfdestruct", sender="0xd")
    with pytest.raises(ChainError):
        chain.call("0xnothing", "owner")


def test_fixed_address_deploy_and_preinstalled_code() -> None:
    # Deploying at a fixed address works once; preinstalled code is visible.
    chain = SimulatedChain(network="localhost", preinstalled={"0xAbC": "UniversalSigValidator"})
    assert chain.code_at("0xabc") == "UniversalSigValidator"
    with pytest.raises(ChainError):
        chain.deploy("UniversalSigValidator", [], sender="0xd", at="0xABC")
    address, _ = chain.deploy("Other", [], sender="0xd", at="0xDEF")
    assert address == "0xdef"
    assert chain.code_at("0xdef") == "Other"
    assert chain.code_at("0x404") is None


def test_fail_on_simulates_reverts() -> None:
    # Contracts listed in fail_on revert on deploy.
    chain = SimulatedChain(network="localhost", fail_on=["PublicResolver"])
    with pytest.raises(ChainError, match="reverted"):
        chain.deploy("PublicResolver", [], sender="0xd")
    assert chain.transactions == []
