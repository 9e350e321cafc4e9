from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class Environment:
    # Per-run target configuration; built once by the driver and read-only afterwards.
    network: str
    chain_id: int | None = None
    tags: frozenset[str] = frozenset()
    accounts: Mapping[str, str] = field(default_factory=dict)
    clients: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.network:
            raise ValueError("Environment.network must be a non-empty string")
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "accounts", MappingProxyType(dict(self.accounts)))
        object.__setattr__(self, "clients", MappingProxyType(dict(self.clients)))

    @property
    def key(self) -> str:
        # Artifact stores are scoped by network name.
        return self.network

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def account(self, name: str) -> str:
        try:
            return self.accounts[name]
        except KeyError:
            raise KeyError(f"No account bound as '{name}' on network '{self.network}'") from None

    def client(self, name: str) -> object:
        try:
            return self.clients[name]
        except KeyError:
            raise KeyError(f"No client bound as '{name}' on network '{self.network}'") from None

    def with_tags(self, extra: Iterable[str]) -> Environment:
        # Derive a new environment; the original stays untouched.
        return Environment(
            network=self.network,
            chain_id=self.chain_id,
            tags=self.tags | frozenset(extra),
            accounts=self.accounts,
            clients=self.clients,
        )
