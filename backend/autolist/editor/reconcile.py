"""Edit-mode reconciliation of persisted references against loaded lists.

Lists arrive asynchronously and out of order, so ``reconcile`` is a pure
function of ``(persisted, lists, draft, dirty)`` that the editor re-runs
after every arrival. It only ever moves an unset, non-dirty field to a set
value; it never clears and never touches a field the user has edited.

Resolution per field: id present in the list → name match → (modification
only) structural match on engine, fuel type, transmission and drivetrain.
Zero or several candidates leave the field unset; several are recorded as
ambiguous so validation can say why.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from autolist.editor.cascade import CascadeField
from autolist.editor.generations import (
    GenerationIndex,
    GroupedModification,
    ModificationShape,
    modification_shape,
    shape_of,
)
from autolist.models.contracts import (
    BodyType,
    Brand,
    CarModel,
    City,
    Color,
    ListingDraft,
    PersistedListing,
    ReferenceEntity,
    RefById,
    RefByName,
    RefByObject,
)

logger = structlog.get_logger()

GENERATION_NAME = "generation_name"
CITY = "city_id"
COLOR = "color_id"

_ATTR_KEYS: dict[str, tuple[str, ...]] = {
    "engine": ("engine",),
    "fuel_type": ("fuel_type", "fuelType"),
    "transmission": ("transmission",),
    "drivetrain": ("drivetrain", "drive_train"),
}


@dataclass
class LoadedLists:
    """Option lists for the current ancestor scope; None means not loaded."""

    brands: list[Brand] | None = None
    models: list[CarModel] | None = None
    years: list[int] | None = None
    body_types: list[BodyType] | None = None
    generations: GenerationIndex | None = None
    cities: list[City] | None = None
    colors: list[Color] | None = None


@dataclass
class ReconcileResult:
    values: dict[str, Any] = field(default_factory=dict)
    ambiguous: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.values)


@dataclass(frozen=True)
class _Match:
    value: Any = None
    ambiguous: bool = False


_NO_MATCH = _Match()


def _ref_id(ref: RefById | RefByName | RefByObject | None) -> int | None:
    if isinstance(ref, RefById | RefByObject):
        return ref.id
    return None


def _ref_name(ref: RefById | RefByName | RefByObject | None) -> str | None:
    if isinstance(ref, RefByName | RefByObject):
        return ref.name
    return None


def _unique(candidates: Sequence[Any]) -> _Match:
    ids = {getattr(c, "id", c) for c in candidates}
    if len(ids) == 1:
        return _Match(candidates[0])
    if len(ids) > 1:
        return _Match(ambiguous=True)
    return _NO_MATCH


def match_entity(
    ref: RefById | RefByName | RefByObject | None,
    options: Sequence[ReferenceEntity],
) -> _Match:
    """Id first, then exact name. Returns the matching entity."""
    if ref is None:
        return _NO_MATCH
    ref_id = _ref_id(ref)
    if ref_id is not None:
        for option in options:
            if option.id == ref_id:
                return _Match(option)
    name = _ref_name(ref)
    if name is not None:
        name = name.strip()
        return _unique([o for o in options if o.name.strip() == name])
    return _NO_MATCH


def persisted_shape(ref: RefById | RefByName | RefByObject | None) -> ModificationShape | None:
    """Structural shape of a persisted modification object; None without an engine."""
    if not isinstance(ref, RefByObject):
        return None
    attrs: dict[str, Any] = {}
    for attr, keys in _ATTR_KEYS.items():
        attrs[attr] = next((ref.attr(k) for k in keys if ref.attr(k) is not None), None)
    values = {k: v if isinstance(v, str) else None for k, v in attrs.items()}
    if not values["engine"]:
        return None
    return modification_shape(**values)


def match_modification(
    ref: RefById | RefByName | RefByObject | None,
    candidates: Sequence[GroupedModification],
) -> _Match:
    """Id, then exact name, then structural shape.

    An ambiguous name narrows the candidates to those sharing it before the
    shape is compared; the match stays ambiguous only if the shape cannot
    single one out either.
    """
    if ref is None or not candidates:
        return _NO_MATCH
    by_ref = match_entity(ref, candidates)  # type: ignore[arg-type]
    if by_ref.value is not None:
        return by_ref
    if by_ref.ambiguous:
        name = (_ref_name(ref) or "").strip()
        candidates = [m for m in candidates if m.name.strip() == name]
    shape = persisted_shape(ref)
    if shape is None:
        return by_ref
    by_shape = _unique([m for m in candidates if shape_of(m) == shape])
    if by_shape.value is None and by_ref.ambiguous:
        return by_ref
    return by_shape


class _Patch:
    def __init__(self, draft: ListingDraft, dirty: Collection[str]) -> None:
        self.draft = draft
        self.dirty = dirty
        self.values: dict[str, Any] = {}
        self.ambiguous: set[str] = set()

    def current(self, name: str) -> Any:
        return self.values[name] if name in self.values else getattr(self.draft, name)

    def open(self, name: str) -> bool:
        return name not in self.dirty and self.current(name) is None

    def put(self, name: str, value: Any) -> None:
        if value is not None and self.current(name) != value:
            self.values[str(name)] = value

    def put_match(self, name: str, match: _Match) -> None:
        if match.ambiguous:
            self.ambiguous.add(str(name))
        elif match.value is not None:
            self.put(name, match.value.id)


def reconcile(
    persisted: PersistedListing,
    lists: LoadedLists,
    draft: ListingDraft,
    dirty: Collection[str] = (),
) -> ReconcileResult:
    """Compute the draft values restorable from ``lists``. Pure; does not mutate."""
    patch = _Patch(draft, dirty)

    if lists.brands is not None and patch.open(CascadeField.BRAND):
        patch.put_match(CascadeField.BRAND, match_entity(persisted.brand, lists.brands))

    if lists.models is not None and patch.open(CascadeField.MODEL):
        patch.put_match(CascadeField.MODEL, match_entity(persisted.model, lists.models))

    if patch.open(CascadeField.STEERING) and patch.current(CascadeField.MODEL) is not None:
        patch.put(CascadeField.STEERING, persisted.wheel if persisted.wheel is not None else True)

    if lists.years is not None and patch.open(CascadeField.YEAR) and persisted.year in lists.years:
        patch.put(CascadeField.YEAR, persisted.year)

    if lists.body_types is not None and patch.open(CascadeField.BODY_TYPE):
        patch.put_match(CascadeField.BODY_TYPE, match_entity(persisted.body_type, lists.body_types))

    if lists.generations is not None:
        _reconcile_generation(persisted, lists.generations, patch)
        _reconcile_modification(persisted, lists.generations, patch)

    if lists.cities is not None and patch.open(CITY):
        patch.put_match(CITY, match_entity(persisted.city, lists.cities))

    if lists.colors is not None and patch.open(COLOR):
        patch.put_match(COLOR, match_entity(persisted.color, lists.colors))

    if patch.ambiguous:
        logger.info("reconcile_ambiguous", fields=sorted(patch.ambiguous))
    return ReconcileResult(values=patch.values, ambiguous=patch.ambiguous)


def _reconcile_generation(
    persisted: PersistedListing,
    index: GenerationIndex,
    patch: _Patch,
) -> None:
    if CascadeField.GENERATION in patch.dirty or patch.current(CascadeField.GENERATION) is not None:
        return
    ref = persisted.generation
    if ref is None:
        return

    ref_id = _ref_id(ref)
    if ref_id is not None:
        group = index.group_for_generation(ref_id)
        if group is not None:
            patch.put(CascadeField.GENERATION, ref_id)
            patch.put(GENERATION_NAME, group.display_name)
            return

    name = _ref_name(ref)
    group = index.group(name.strip()) if name else None
    if group is None:
        return
    if patch.current(GENERATION_NAME) is None:
        patch.put(GENERATION_NAME, group.display_name)
    if len(group.member_ids) == 1:
        patch.put(CascadeField.GENERATION, next(iter(group.member_ids)))
    # Several members: the concrete id is recovered from the modification.


def _modification_candidates(index: GenerationIndex, patch: _Patch) -> list[GroupedModification]:
    group_name = patch.current(GENERATION_NAME)
    candidates = index.modifications(group_name)
    generation_id = patch.current(CascadeField.GENERATION)
    if generation_id is not None:
        candidates = [m for m in candidates if m.source_generation_id in (generation_id, None)]
    return candidates


def _reconcile_modification(
    persisted: PersistedListing,
    index: GenerationIndex,
    patch: _Patch,
) -> None:
    if not patch.open(CascadeField.MODIFICATION):
        return

    match = match_modification(persisted.modification, _modification_candidates(index, patch))
    generation_dirty = CascadeField.GENERATION in patch.dirty
    unscoped = not generation_dirty and patch.current(GENERATION_NAME) is None
    if match.value is None and not match.ambiguous and unscoped:
        # No group known yet; the modification itself tells us which one.
        match = match_modification(persisted.modification, index.modifications())

    if match.ambiguous:
        patch.ambiguous.add(str(CascadeField.MODIFICATION))
        return
    mod: GroupedModification | None = match.value
    if mod is None:
        return

    patch.put(CascadeField.MODIFICATION, mod.id)
    if generation_dirty:
        return
    if patch.current(CascadeField.GENERATION) is None:
        patch.put(CascadeField.GENERATION, mod.source_generation_id)
    if patch.current(GENERATION_NAME) is None and mod.source_generation_id is not None:
        group = index.group_for_generation(mod.source_generation_id)
        if group is not None:
            patch.put(GENERATION_NAME, group.display_name)
