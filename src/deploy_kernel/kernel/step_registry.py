from __future__ import annotations

from collections.abc import Iterable, Iterator

from deploy_kernel.kernel.errors import DuplicateId, DuplicateName, DuplicateProducer, UnknownStep
from deploy_kernel.kernel.step import Step


class StepRegistry:
    # Holds every known step definition; registration order is the deterministic tie-break.
    def __init__(self, steps: Iterable[Step] = ()) -> None:
        self._by_name: dict[str, Step] = {}
        self._ids: dict[str, str] = {}
        # Artifact name -> id of the only step allowed to write it.
        self._produced_by: dict[str, str] = {}
        self.register_all(steps)

    def register(self, step: Step, *, override: bool = False) -> None:
        existing = self._by_name.get(step.name)
        owner = self._ids.get(step.id)
        # Re-registering an id is only legal when it overrides its own name slot.
        if owner is not None and not (override and owner == step.name):
            raise DuplicateId(step.id)
        if existing is not None and not override:
            raise DuplicateName(step.name, existing.id, step.id)
        released = set(existing.produces) if existing is not None else set()
        for artifact in step.produces:
            producer = self._produced_by.get(artifact)
            if producer is not None and artifact not in released:
                raise DuplicateProducer(artifact, producer, step.id)

        if existing is not None:
            # Override keeps the original registration position and frees its artifact names.
            del self._ids[existing.id]
            for artifact in existing.produces:
                del self._produced_by[artifact]
        for artifact in step.produces:
            self._produced_by[artifact] = step.id
        self._by_name[step.name] = step
        self._ids[step.id] = step.name

    def register_all(self, steps: Iterable[Step]) -> None:
        for step in steps:
            self.register(step)

    def lookup(self, name: str) -> Step:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownStep(name) from None

    def all(self) -> list[Step]:
        return list(self._by_name.values())

    def find_by_tag(self, tag: str) -> list[Step]:
        return [step for step in self._by_name.values() if tag in step.tags]

    def resolve_reference(self, ref: str, *, referrer: Step | None = None) -> tuple[Step, ...]:
        # Dependencies name a step; failing that, every step carrying the reference as a tag.
        step = self._by_name.get(ref)
        if step is not None:
            return (step,)
        return tuple(
            candidate
            for candidate in self._by_name.values()
            if ref in candidate.tags and candidate is not referrer
        )

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._by_name.values()))
