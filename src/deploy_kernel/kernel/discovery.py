from __future__ import annotations

import importlib
from collections.abc import Callable, Iterable
from types import ModuleType

from deploy_kernel.kernel.errors import DeployKernelError
from deploy_kernel.kernel.step import Action, Gate, SatisfiedCheck, Step


class StepDiscoveryError(DeployKernelError):
    # Raised when a step module cannot be imported or exports conflicting definitions.
    pass


def deploy_step(
    *,
    id: str,
    tags: Iterable[str] = (),
    dependencies: Iterable[str] = (),
    gate: Gate | None = None,
    produces: Iterable[str] | None = None,
    satisfied: SatisfiedCheck | None = None,
    name: str = "",
) -> Callable[[Action], Step]:
    # Decorator turns a plain action function into an immutable Step definition.
    tag_set = frozenset(tags)
    dependency_list = tuple(dependencies)
    produced = None if produces is None else tuple(produces)

    def _decorate(action: Action) -> Step:
        return Step(
            id=id,
            action=action,
            tags=tag_set,
            dependencies=dependency_list,
            gate=gate,
            produces=produced,
            satisfied=satisfied,
            name=name,
        )

    return _decorate


def discover_steps(modules: Iterable[ModuleType]) -> list[Step]:
    # Collect module-level Step objects in definition order; re-exports of one object count once.
    found: list[Step] = []
    seen: dict[str, Step] = {}
    for module in modules:
        for value in list(module.__dict__.values()):
            if not isinstance(value, Step):
                continue
            previous = seen.get(value.id)
            if previous is value:
                continue
            if previous is not None:
                raise StepDiscoveryError(f"Duplicate step id discovered: {value.id} (in {module.__name__})")
            seen[value.id] = value
            found.append(value)
    return found


def import_step_modules(names: Iterable[str]) -> list[ModuleType]:
    modules: list[ModuleType] = []
    for name in names:
        try:
            modules.append(importlib.import_module(name))
        except ImportError as exc:
            raise StepDiscoveryError(f"Cannot import step module '{name}': {exc}") from exc
    return modules


def load_callable(reference: str) -> Callable[..., object]:
    # "package.module:attribute" -> the attribute, which must be callable.
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise StepDiscoveryError(f"Expected 'module:callable', got '{reference}'")
    module = import_step_modules([module_name])[0]
    target = getattr(module, attr, None)
    if not callable(target):
        raise StepDiscoveryError(f"'{reference}' does not name a callable")
    return target
