from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from deploy_kernel.kernel.artifact import Artifact
from deploy_kernel.kernel.environment import Environment

if TYPE_CHECKING:
    from deploy_kernel.kernel.context import StepContext


class _Skip(Enum):
    SKIP = "skip"


# Returned by an action that decided not to act this time; the step stays eligible next run.
SKIP = _Skip.SKIP

ActionResult = Union[Artifact, Iterable[Artifact], _Skip, None]
Action = Callable[["StepContext"], ActionResult]
Gate = Callable[[Environment], bool]
SatisfiedCheck = Callable[["StepContext"], bool]

# "Root:contract v1.0.0" -> "Root:contract"
_VERSION_SUFFIX = re.compile(r"\s+v\d+(?:\.\d+)*$")


def logical_name(step_id: str) -> str:
    return _VERSION_SUFFIX.sub("", step_id).strip()


@dataclass(frozen=True, slots=True)
class Step:
    # Immutable step definition; collaborators build it once and hand it to the registry.
    id: str
    action: Action
    tags: frozenset[str] = frozenset()
    dependencies: tuple[str, ...] = ()
    gate: Gate | None = None
    produces: tuple[str, ...] | None = None
    satisfied: SatisfiedCheck | None = None
    name: str = ""

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Step.id must be a non-empty string")
        if not callable(self.action):
            raise TypeError(f"Step '{self.id}' action must be callable")
        name = self.name or logical_name(self.id)
        if not name:
            raise ValueError(f"Step '{self.id}' has an empty logical name")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "tags", frozenset(self.tags))

        dependencies = tuple(self.dependencies)
        if len(dependencies) != len(set(dependencies)):
            raise ValueError(f"Step '{self.id}' declares duplicate dependencies")
        if name in dependencies:
            raise ValueError(f"Step '{self.id}' depends on itself")
        object.__setattr__(self, "dependencies", dependencies)

        produces = (name,) if self.produces is None else tuple(self.produces)
        if len(produces) != len(set(produces)):
            raise ValueError(f"Step '{self.id}' declares duplicate produced artifacts")
        object.__setattr__(self, "produces", produces)

    def gate_open(self, environment: Environment) -> bool:
        # Missing gate means the step applies to every environment.
        if self.gate is None:
            return True
        return bool(self.gate(environment))

    def has_any_tag(self, query: Iterable[str]) -> bool:
        return not self.tags.isdisjoint(query)


def require_tag(tag: str) -> Gate:
    # Gate helper for the common "only when the network carries this flag" case.
    def _gate(environment: Environment) -> bool:
        return environment.has_tag(tag)

    _gate.__name__ = f"require_tag_{tag}"
    return _gate


def any_tag(*tags: str) -> Gate:
    def _gate(environment: Environment) -> bool:
        return any(environment.has_tag(tag) for tag in tags)

    _gate.__name__ = f"any_tag_{'_'.join(tags)}"
    return _gate
