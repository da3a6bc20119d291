"""Generation grouping and modification → generation resolution.

The catalog can expose one visible generation (say "XV70") as several
backend records that differ only in hidden attributes. The editor shows one
option per name; the concrete generation id is recovered from whichever
modification the user picks, because every grouped modification remembers
the record it came from.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog
from pydantic import ConfigDict

from autolist.models.contracts import Generation, Modification

logger = structlog.get_logger()

ModificationShape = tuple[str | None, str | None, str | None, str | None]


class GroupedModification(Modification):
    model_config = ConfigDict(extra="allow")

    source_generation_id: int | None = None


@dataclass
class GenerationGroup:
    display_name: str
    member_ids: set[int] = field(default_factory=set)
    modifications: list[GroupedModification] = field(default_factory=list)
    image: str | None = None


@dataclass(frozen=True)
class ModificationSelection:
    modification_id: int
    generation_id: int | None
    modification: GroupedModification


@dataclass(frozen=True)
class ModificationCollision:
    """Identical modification shapes coming from different generation records."""

    group_name: str
    shape: ModificationShape
    generation_ids: frozenset[int | None]
    modification_ids: tuple[int, ...]


def _norm(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value.casefold() if value else None


def modification_shape(
    engine: str | None,
    fuel_type: str | None,
    transmission: str | None,
    drivetrain: str | None,
) -> ModificationShape:
    return (_norm(engine), _norm(fuel_type), _norm(transmission), _norm(drivetrain))


def shape_of(mod: Modification) -> ModificationShape:
    return modification_shape(mod.engine, mod.fuel_type, mod.transmission, mod.drivetrain)


def group_generations(generations: Iterable[Generation]) -> list[GenerationGroup]:
    """Partition generation records by name, in first-seen order."""
    groups: dict[str, GenerationGroup] = {}
    for gen in generations:
        group = groups.get(gen.name)
        if group is None:
            group = groups[gen.name] = GenerationGroup(display_name=gen.name)
        if gen.id is not None:
            group.member_ids.add(gen.id)
        if group.image is None and gen.image:
            group.image = gen.image
        for mod in gen.modifications:
            source_id = gen.id if gen.id is not None else mod.generation_id
            group.modifications.append(
                GroupedModification.model_validate(
                    {**mod.model_dump(), "source_generation_id": source_id}
                )
            )
    return list(groups.values())


def find_collisions(groups: Iterable[GenerationGroup]) -> list[ModificationCollision]:
    collisions = []
    for group in groups:
        by_shape: dict[ModificationShape, list[GroupedModification]] = {}
        for mod in group.modifications:
            by_shape.setdefault(shape_of(mod), []).append(mod)
        for shape, mods in by_shape.items():
            sources = frozenset(m.source_generation_id for m in mods)
            if len(sources) > 1:
                collisions.append(
                    ModificationCollision(
                        group_name=group.display_name,
                        shape=shape,
                        generation_ids=sources,
                        modification_ids=tuple(m.id for m in mods),
                    )
                )
    return collisions


class GenerationIndex:
    """Grouped view over one loaded generation list."""

    def __init__(self, generations: Iterable[Generation]) -> None:
        self.groups = group_generations(generations)
        self._by_name = {g.display_name: g for g in self.groups}
        self.collisions = find_collisions(self.groups)
        for collision in self.collisions:
            logger.warning(
                "generation_modification_collision",
                group=collision.group_name,
                shape=collision.shape,
                generation_ids=sorted(collision.generation_ids, key=lambda v: (v is None, v)),
                modification_ids=list(collision.modification_ids),
            )

    def __bool__(self) -> bool:
        return bool(self.groups)

    @property
    def names(self) -> list[str]:
        return [g.display_name for g in self.groups]

    def group(self, name: str) -> GenerationGroup | None:
        return self._by_name.get(name)

    def group_for_generation(self, generation_id: int) -> GenerationGroup | None:
        for group in self.groups:
            if generation_id in group.member_ids:
                return group
        return None

    def modifications(self, group_name: str | None = None) -> list[GroupedModification]:
        if group_name is not None:
            group = self.group(group_name)
            return list(group.modifications) if group else []
        return [m for g in self.groups for m in g.modifications]

    def select_modification(
        self,
        modification_id: int,
        group_name: str | None = None,
    ) -> ModificationSelection | None:
        """Resolve a picked modification to ``(modification_id, generation_id)``.

        Returns None when there is nothing to pick from yet (no generation
        data, or an unknown group). ``generation_id`` is None when the
        modification's source record carried no id.

        Raises:
            ValueError: the modification is not in the searched groups.
        """
        if not self.groups:
            return None
        if group_name is not None and self.group(group_name) is None:
            return None

        for mod in self.modifications(group_name):
            if mod.id == modification_id:
                if mod.source_generation_id is None:
                    logger.warning(
                        "modification_without_generation",
                        modification_id=modification_id,
                        group=group_name,
                    )
                return ModificationSelection(
                    modification_id=modification_id,
                    generation_id=mod.source_generation_id,
                    modification=mod,
                )
        raise ValueError(f"Modification {modification_id} is not in the loaded generations")
