from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class Artifact:
    # Durable named result of a step: an address plus free-form string metadata.
    name: str
    address: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Artifact.name must be a non-empty string")
        if not self.address:
            raise ValueError(f"Artifact '{self.name}' requires a non-empty address")
        for key, value in self.metadata.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"Artifact '{self.name}' metadata must map str to str")
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "address": self.address, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> Artifact:
        name = raw.get("name")
        address = raw.get("address")
        metadata = raw.get("metadata", {})
        if not isinstance(name, str) or not isinstance(address, str):
            raise ValueError("Artifact record requires string 'name' and 'address'")
        if not isinstance(metadata, Mapping):
            raise ValueError(f"Artifact '{name}' metadata must be a mapping")
        return cls(name=name, address=address, metadata={str(k): str(v) for k, v in metadata.items()})
