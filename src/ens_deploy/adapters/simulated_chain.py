from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from ens_deploy.ports.chain import ChainClient, ChainError


@dataclass
class DeployedContract:
    contract: str
    args: tuple[object, ...]
    owner: str
    controllers: set[str] = field(default_factory=set)
    subnodes: dict[str, str] = field(default_factory=dict)


class SimulatedChain(ChainClient):
    # Deterministic in-memory chain used for local runs and tests.
    # A real RPC-backed adapter would sit behind the same ChainClient port.
    def __init__(
        self,
        *,
        network: str,
        chain_id: int | None = None,
        preinstalled: Mapping[str, str] | None = None,
        fail_on: Iterable[str] = (),
    ) -> None:
        self._network = network
        self._chain_id = chain_id
        self._contracts: dict[str, DeployedContract] = {}
        self._nonce = 0
        self._fail_on = frozenset(fail_on)
        # Steps may run on several threads; nonce and state updates are serialized.
        self._lock = threading.RLock()
        self.transactions: list[tuple[str, str, str]] = []
        for address, contract in (preinstalled or {}).items():
            self._contracts[address.lower()] = DeployedContract(contract=contract, args=(), owner="")

    def deploy(self, contract: str, args: Sequence[object], *, sender: str, at: str | None = None) -> tuple[str, str]:
        with self._lock:
            return self._deploy(contract, args, sender=sender, at=at)

    def _deploy(self, contract: str, args: Sequence[object], *, sender: str, at: str | None) -> tuple[str, str]:
        if contract in self._fail_on:
            raise ChainError(f"deployment of {contract} reverted")
        address = (at or self._derive_address(sender, contract)).lower()
        if address in self._contracts:
            raise ChainError(f"address {address} already holds {self._contracts[address].contract}")
        self._contracts[address] = DeployedContract(contract=contract, args=tuple(args), owner=sender)
        return address, self._record(sender, address, "deploy")

    def call(self, address: str, method: str, args: Sequence[object] = ()) -> object:
        target = self._require(address)
        readers: dict[str, Callable[[], object]] = {
            "owner": lambda: target.owner,
            "controllers": lambda: _single(args, method) in target.controllers,
            "subnodeOwner": lambda: target.subnodes.get(str(_single(args, method))),
            "args": lambda: target.args,
        }
        reader = readers.get(method)
        if reader is None:
            raise ChainError(f"{target.contract} has no view method '{method}'")
        return reader()

    def transact(self, address: str, method: str, args: Sequence[object] = (), *, sender: str) -> str:
        with self._lock:
            return self._transact(address, method, args, sender=sender)

    def _transact(self, address: str, method: str, args: Sequence[object], *, sender: str) -> str:
        target = self._require(address)
        if sender != target.owner:
            raise ChainError(f"{method} on {target.contract}: caller {sender} is not the owner")
        if method == "transferOwnership":
            target.owner = str(_single(args, method))
        elif method == "addController":
            target.controllers.add(str(_single(args, method)))
        elif method == "setController":
            controller, enabled = args
            if enabled:
                target.controllers.add(str(controller))
            else:
                target.controllers.discard(str(controller))
        elif method == "setSubnodeOwner":
            label, owner = args
            target.subnodes[str(label)] = str(owner)
        else:
            raise ChainError(f"{target.contract} has no method '{method}'")
        return self._record(sender, address, method)

    def code_at(self, address: str) -> str | None:
        deployed = self._contracts.get(address.lower())
        return deployed.contract if deployed is not None else None

    def _require(self, address: str) -> DeployedContract:
        deployed = self._contracts.get(address.lower())
        if deployed is None:
            raise ChainError(f"no contract at {address}")
        return deployed

    def _derive_address(self, sender: str, contract: str) -> str:
        seed = f"{self._network}|{self._chain_id}|{sender}|{self._nonce}|{contract}"
        return "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:40]

    def _record(self, sender: str, address: str, method: str) -> str:
        self._nonce += 1
        self.transactions.append((sender, address, method))
        seed = f"{self._network}|tx|{self._nonce}|{sender}|{address}|{method}"
        return "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()


def _single(args: Sequence[object], method: str) -> object:
    if len(args) != 1:
        raise ChainError(f"{method} expects exactly one argument")
    return args[0]
