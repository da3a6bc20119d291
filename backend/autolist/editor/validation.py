"""Draft → payload flattening with field-by-field validation.

Runs entirely locally: a draft that fails here never reaches the network.
"""

from __future__ import annotations

from collections.abc import Collection

import structlog
from pydantic import ValidationError

from autolist.editor.profiles import EditorProfile
from autolist.errors import DraftValidationError
from autolist.models.contracts import ListingDraft, ListingPayload, Modification

logger = structlog.get_logger()

MAX_PHONE_NUMBERS = 3

REQUIRED_MESSAGES: dict[str, str] = {
    "brand_id": "Select a brand",
    "model_id": "Select a model",
    "year": "Select a year",
    "wheel": "Select the steering side",
    "body_type_id": "Select a body type",
    "generation_id": "Select a generation",
    "modification_id": "Select a modification",
    "city_id": "Select a city",
    "color_id": "Select a color",
    "price": "Enter a price",
    "odometer": "Enter the mileage",
}

AMBIGUOUS_MESSAGE = "Several options match the saved value; select one"
MISSING_GENERATION_MESSAGE = "The selected modification has no generation record; choose another"


def clean_phone_numbers(numbers: list[str]) -> list[str]:
    return [n.strip() for n in numbers if n and n.strip()]


def collect_errors(
    draft: ListingDraft,
    profile: EditorProfile,
    ambiguous: Collection[str] = (),
) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field, message in REQUIRED_MESSAGES.items():
        if getattr(draft, field) is not None:
            continue
        if field in ambiguous:
            errors[field] = AMBIGUOUS_MESSAGE
        elif field == "generation_id" and draft.modification_id is not None:
            errors[field] = MISSING_GENERATION_MESSAGE
        else:
            errors[field] = message

    if profile.require_vin and not draft.vin_code.strip():
        errors["vin_code"] = "Enter the VIN code"

    phones = clean_phone_numbers(draft.phone_numbers)
    if not phones:
        errors["phone_numbers"] = "Enter at least one phone number"
    elif len(phones) > MAX_PHONE_NUMBERS:
        errors["phone_numbers"] = f"At most {MAX_PHONE_NUMBERS} phone numbers"
    return errors


def build_payload(
    draft: ListingDraft,
    profile: EditorProfile,
    modification: Modification | None = None,
    ambiguous: Collection[str] = (),
) -> ListingPayload:
    """Flatten ``draft`` into the create/update body.

    Raises:
        DraftValidationError: with one message per offending field.
    """
    errors = collect_errors(draft, profile, ambiguous)
    if errors:
        logger.info("draft_invalid", fields=sorted(errors), profile=profile.name)
        raise DraftValidationError(errors)

    body = {
        "brand_id": draft.brand_id,
        "model_id": draft.model_id,
        "body_type_id": draft.body_type_id,
        "generation_id": draft.generation_id,
        "modification_id": draft.modification_id,
        "city_id": draft.city_id,
        "color_id": draft.color_id,
        "year": draft.year,
        "price": draft.price,
        "odometer": draft.odometer,
        "phone_numbers": clean_phone_numbers(draft.phone_numbers),
        "trade_in": draft.trade_in,
        "vin_code": draft.vin_code.strip(),
        "wheel": draft.wheel,
        "crash": draft.crash,
        "new": draft.new,
        "owners": draft.owners or 1,
        "description": draft.description,
    }
    if modification is not None:
        body.update(
            transmission_id=modification.transmission_id,
            drivetrain_id=modification.drivetrain_id,
            engine_id=modification.engine_id,
            fuel_type_id=modification.fuel_type_id,
        )

    try:
        return ListingPayload.model_validate(body)
    except ValidationError as exc:
        mapped: dict[str, str] = {}
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else "__root__"
            mapped.setdefault(field, err["msg"])
        logger.info("draft_invalid", fields=sorted(mapped), profile=profile.name)
        raise DraftValidationError(mapped) from exc
