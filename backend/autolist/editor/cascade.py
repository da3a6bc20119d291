"""Cascade fields and the invalidation rule.

Order: brand < model < steering side < year < body type < generation <
modification. The year list is fetched per steering side, so a steering
change invalidates the year; a year change leaves the steering side alone.
"""

from __future__ import annotations

from enum import StrEnum


class CascadeField(StrEnum):
    """Values are the ``ListingDraft`` attribute names."""

    BRAND = "brand_id"
    MODEL = "model_id"
    STEERING = "wheel"
    YEAR = "year"
    BODY_TYPE = "body_type_id"
    GENERATION = "generation_id"
    MODIFICATION = "modification_id"


CASCADE_ORDER: tuple[CascadeField, ...] = tuple(CascadeField)

_DEPENDENTS: dict[CascadeField, frozenset[CascadeField]] = {
    CascadeField.BRAND: frozenset(
        {
            CascadeField.MODEL,
            CascadeField.YEAR,
            CascadeField.STEERING,
            CascadeField.BODY_TYPE,
            CascadeField.GENERATION,
            CascadeField.MODIFICATION,
        }
    ),
    CascadeField.MODEL: frozenset(
        {
            CascadeField.YEAR,
            CascadeField.STEERING,
            CascadeField.BODY_TYPE,
            CascadeField.GENERATION,
            CascadeField.MODIFICATION,
        }
    ),
    CascadeField.STEERING: frozenset(
        {
            CascadeField.YEAR,
            CascadeField.BODY_TYPE,
            CascadeField.GENERATION,
            CascadeField.MODIFICATION,
        }
    ),
    CascadeField.YEAR: frozenset(
        {CascadeField.BODY_TYPE, CascadeField.GENERATION, CascadeField.MODIFICATION}
    ),
    CascadeField.BODY_TYPE: frozenset({CascadeField.GENERATION, CascadeField.MODIFICATION}),
    CascadeField.GENERATION: frozenset({CascadeField.MODIFICATION}),
    CascadeField.MODIFICATION: frozenset(),
}


def dependents(field: CascadeField) -> frozenset[CascadeField]:
    """Every field transitively downstream of ``field``."""
    return _DEPENDENTS[field]


def on_field_changed(
    field: CascadeField,
    is_user_initiated: bool,
    changed: bool = True,
) -> frozenset[CascadeField]:
    """Fields to clear after ``field`` was set.

    Programmatic writes (edit-mode load, reconciliation) never clear
    anything; neither does a user re-selecting the value already there.
    """
    if not is_user_initiated or not changed:
        return frozenset()
    return _DEPENDENTS[field]


def ordered(fields: frozenset[CascadeField] | set[CascadeField]) -> list[CascadeField]:
    return [f for f in CASCADE_ORDER if f in fields]
