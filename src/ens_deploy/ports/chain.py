from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable


class ChainError(RuntimeError):
    # Raised by chain adapters when a call or transaction is rejected.
    pass


# ChainClient isolates remote provisioning calls; retry/backoff belongs to adapters, not to steps.
@runtime_checkable
class ChainClient(Protocol):
    def deploy(self, contract: str, args: Sequence[object], *, sender: str, at: str | None = None) -> tuple[str, str]:
        """Deploy a contract and return (address, transaction hash)."""
        raise NotImplementedError("ChainClient is a port; use a concrete adapter.")

    def call(self, address: str, method: str, args: Sequence[object] = ()) -> object:
        """Read contract state without sending a transaction."""
        raise NotImplementedError("ChainClient is a port; use a concrete adapter.")

    def transact(self, address: str, method: str, args: Sequence[object] = (), *, sender: str) -> str:
        """Send a state-changing transaction and return its hash once it succeeded."""
        raise NotImplementedError("ChainClient is a port; use a concrete adapter.")

    def code_at(self, address: str) -> str | None:
        """Return the contract name deployed at address, or None when empty."""
        raise NotImplementedError("ChainClient is a port; use a concrete adapter.")
