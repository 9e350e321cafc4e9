from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from deploy_kernel.kernel.errors import CyclicDependency, UnresolvedDependency
from deploy_kernel.kernel.step import Step
from deploy_kernel.kernel.step_registry import StepRegistry


@dataclass(frozen=True, slots=True)
class Dag:
    # Resolved graph for reporting: step names in execution order + (dependency, dependent) edges.
    nodes: list[str]
    edges: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DependencyResolver:
    # Turns a working set of steps into a dependency-respecting linear order.
    registry: StepRegistry

    def dependencies_of(self, step: Step) -> list[Step]:
        # Resolve declared references in order; a tag reference may fan out to several steps.
        resolved: list[Step] = []
        seen: set[str] = set()
        for ref in step.dependencies:
            matches = self.registry.resolve_reference(ref, referrer=step)
            if not matches:
                raise UnresolvedDependency(step.name, ref)
            for match in matches:
                if match.name not in seen:
                    seen.add(match.name)
                    resolved.append(match)
        return resolved

    def resolve(self, steps: Iterable[Step] | None = None) -> list[Step]:
        # Depth-first topological sort; roots and siblings follow registration order.
        working = self.registry.all() if steps is None else list(steps)
        rank = {step.name: index for index, step in enumerate(self.registry.all())}
        for step in working:
            # Steps handed in must be the registered definitions.
            if self.registry.lookup(step.name) is not step:
                raise ValueError(f"Step '{step.id}' is not the registered definition of '{step.name}'")
        roots = sorted({step.name: step for step in working}.values(), key=lambda step: rank[step.name])

        order: list[Step] = []
        done: set[str] = set()
        path: list[str] = []
        on_path: set[str] = set()

        for root in roots:
            if root.name in done:
                continue
            # Explicit stack of (step, remaining dependencies); path mirrors it by name.
            stack = [(root, iter(self.dependencies_of(root)))]
            path.append(root.name)
            on_path.add(root.name)
            while stack:
                step, pending = stack[-1]
                # Dependencies outside the working set are pulled in here.
                dependency = next(pending, None)
                if dependency is None:
                    stack.pop()
                    path.pop()
                    on_path.remove(step.name)
                    done.add(step.name)
                    order.append(step)
                elif dependency.name in on_path:
                    start = path.index(dependency.name)
                    raise CyclicDependency([*path[start:], dependency.name])
                elif dependency.name not in done:
                    stack.append((dependency, iter(self.dependencies_of(dependency))))
                    path.append(dependency.name)
                    on_path.add(dependency.name)
        return order

    def validate(self) -> None:
        # Whole-registry check so structural errors surface before anything runs.
        self.resolve()

    def graph(self, steps: Iterable[Step] | None = None) -> Dag:
        order = self.resolve(steps)
        edges = [
            (dependency.name, step.name)
            for step in order
            for dependency in self.dependencies_of(step)
        ]
        return Dag(nodes=[step.name for step in order], edges=edges)
