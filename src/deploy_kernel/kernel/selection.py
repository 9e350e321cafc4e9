from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from deploy_kernel.kernel.dag import DependencyResolver
from deploy_kernel.kernel.step import Step
from deploy_kernel.kernel.step_registry import StepRegistry


@dataclass(frozen=True, slots=True)
class TagSelector:
    # Narrows the registry to tagged steps, then closes the set under dependencies.
    registry: StepRegistry

    def select(self, query: Iterable[str] = ()) -> list[Step]:
        tags = frozenset(query)
        if not tags:
            # Empty query means a full run.
            return self.registry.all()

        resolver = DependencyResolver(self.registry)
        selected: dict[str, Step] = {step.name: step for step in self.registry.all() if step.has_any_tag(tags)}
        frontier = list(selected.values())
        # Closure: keep adding referenced dependencies until nothing new appears.
        while frontier:
            step = frontier.pop()
            for dependency in resolver.dependencies_of(step):
                if dependency.name not in selected:
                    selected[dependency.name] = dependency
                    frontier.append(dependency)
        return [step for step in self.registry.all() if step.name in selected]
