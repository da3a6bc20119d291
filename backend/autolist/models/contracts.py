"""Autolist contract models — wire shapes, persisted references, draft and payload.

Reference fields on persisted listings arrive in several historical shapes
(bare id, bare name, partial object). They are normalized here, once, into
the ``Ref`` tagged union; nothing downstream sniffs raw shapes.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

# === Reference Catalog ===


class ReferenceEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""


class Brand(ReferenceEntity):
    pass


class CarModel(ReferenceEntity):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    brand_id: int | None = None


class BodyType(ReferenceEntity):
    pass


class City(ReferenceEntity):
    region_id: int | None = None


class Color(ReferenceEntity):
    pass


class Modification(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""
    generation_id: int | None = None
    body_type_id: int | None = None
    engine_id: int | None = None
    transmission_id: int | None = None
    drivetrain_id: int | None = None
    fuel_type_id: int | None = None
    engine: str | None = None
    fuel_type: str | None = None
    transmission: str | None = None
    drivetrain: str | None = None


class Generation(BaseModel):
    """Generation record. Several records may share one ``name``.

    ``id`` is optional because historical payloads occasionally omit it;
    such records still group by name but cannot yield a generation id.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: int | None = None
    name: str
    model_id: int | None = None
    start_year: int | None = None
    end_year: int | None = None
    image: str | None = None
    modifications: list[Modification] = []

    @field_validator("modifications", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class PriceRecommendation(BaseModel):
    min_price: float
    max_price: float
    avg_price: float


# === Persisted References (tagged union) ===


class RefById(BaseModel):
    kind: Literal["id"] = "id"
    id: int


class RefByName(BaseModel):
    kind: Literal["name"] = "name"
    name: str


class RefByObject(BaseModel):
    """Partial entity object; may carry an id, a name, and/or attributes."""

    kind: Literal["object"] = "object"
    entity: dict[str, Any] = {}

    @property
    def id(self) -> int | None:
        value = self.entity.get("id")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    @property
    def name(self) -> str | None:
        value = self.entity.get("name")
        return value if isinstance(value, str) and value else None

    def attr(self, key: str) -> Any:
        return self.entity.get(key)


Ref = Annotated[RefById | RefByName | RefByObject, Field(discriminator="kind")]

_REF_ADAPTER: TypeAdapter[RefById | RefByName | RefByObject] = TypeAdapter(Ref)
_REF_KINDS = {"id", "name", "object"}
_REF_KEYS = {"kind", "id", "name", "entity"}


def normalize_ref(value: Any) -> RefById | RefByName | RefByObject | None:
    """Map any historical reference shape onto the tagged union.

    - int -> RefById (bool is rejected; it is not an id)
    - non-empty str -> RefByName
    - dict -> RefByObject (or the already-tagged form produced by model_dump)
    - None, empty string, empty dict -> None
    """
    if value is None:
        return None
    if isinstance(value, RefById | RefByName | RefByObject):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return RefById(id=value)
    if isinstance(value, str):
        stripped = value.strip()
        return RefByName(name=stripped) if stripped else None
    if isinstance(value, dict):
        if value.get("kind") in _REF_KINDS and set(value) <= _REF_KEYS:
            return _REF_ADAPTER.validate_python(value)
        if not value:
            return None
        return RefByObject(entity=dict(value))
    return None


def media_url_from(value: Any) -> str | None:
    """Extract a media URL from a string or a ``{url|path|image}`` object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        for key in ("url", "path", "image"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate
    return None


_REF_FIELDS = ("brand", "model", "body_type", "generation", "modification", "city", "color")


class PersistedListing(BaseModel):
    """Listing as returned by the edit-data endpoint. Read-only."""

    model_config = ConfigDict(extra="ignore")

    id: int
    brand: Ref | None = None
    model: Ref | None = None
    body_type: Ref | None = None
    generation: Ref | None = None
    modification: Ref | None = None
    city: Ref | None = None
    color: Ref | None = None
    year: int | None = None
    wheel: bool | None = None
    price: int | None = None
    odometer: int | None = None
    vin_code: str | None = None
    description: str | None = None
    phone_numbers: list[str] = []
    trade_in: int | None = None
    crash: bool = False
    new: bool = False
    owners: int | None = None
    images: list[str] = []
    videos: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _normalize_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in _REF_FIELDS:
            if key in data:
                data[key] = normalize_ref(data[key])
        if data.get("trade_in") is None and data.get("trade_id") is not None:
            data["trade_in"] = data["trade_id"]
        for key in ("images", "videos"):
            raw = data.get(key) or []
            data[key] = [url for url in (media_url_from(item) for item in raw) if url]
        for key in ("phone_numbers",):
            if data.get(key) is None:
                data[key] = []
        for key in ("crash", "new"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


# === Media ===


class MediaFile(BaseModel):
    filename: str
    content: bytes
    content_type: str = "image/jpeg"

    @property
    def kind(self) -> Literal["image", "video", "other"]:
        if self.content_type.startswith("image/"):
            return "image"
        if self.content_type.startswith("video/"):
            return "video"
        return "other"

    @property
    def size(self) -> int:
        return len(self.content)


# === Draft ===


class ListingDraft(BaseModel):
    """In-progress form state owned by exactly one editor."""

    model_config = ConfigDict(protected_namespaces=())

    listing_id: int | None = None  # set in edit mode

    # Cascade
    brand_id: int | None = None
    model_id: int | None = None
    year: int | None = None
    wheel: bool | None = True  # steering side: True = left-hand drive
    body_type_id: int | None = None
    generation_id: int | None = None
    modification_id: int | None = None
    generation_name: str | None = None  # the group the user sees

    # Other references
    city_id: int | None = None
    color_id: int | None = None

    # Free fields
    price: int | None = None
    odometer: int | None = None
    vin_code: str = ""
    phone_numbers: list[str] = [""]
    trade_in: int = 1
    crash: bool = False
    new: bool = False
    owners: int | None = None
    description: str | None = None

    # Media
    new_files: list[MediaFile] = []
    existing_media_urls: list[str] = []
    pending_delete_urls: list[str] = []
    existing_video_urls: list[str] = []
    pending_delete_video_urls: list[str] = []

    @classmethod
    def for_edit(cls, persisted: PersistedListing) -> ListingDraft:
        """Seed the free fields from a persisted record.

        Reference fields stay unset; the reconciliation engine restores them
        as option lists arrive.
        """
        return cls(
            listing_id=persisted.id,
            wheel=None,
            price=persisted.price,
            odometer=persisted.odometer,
            vin_code=persisted.vin_code or "",
            phone_numbers=list(persisted.phone_numbers) or [""],
            trade_in=persisted.trade_in or 1,
            crash=persisted.crash,
            new=persisted.new,
            owners=persisted.owners,
            description=persisted.description,
            existing_media_urls=list(persisted.images),
            existing_video_urls=list(persisted.videos),
        )

    @property
    def is_edit(self) -> bool:
        return self.listing_id is not None


# === Listing Record API ===


def _max_year() -> int:
    return date.today().year + 1


class ListingPayload(BaseModel):
    """Flattened create/update body. Field constraints are the submit rules."""

    model_config = ConfigDict(protected_namespaces=())

    brand_id: int
    model_id: int
    body_type_id: int
    generation_id: int
    modification_id: int
    city_id: int
    color_id: int
    year: int = Field(ge=1900)
    price: int = Field(ge=1)
    odometer: int = Field(ge=0)
    phone_numbers: list[str] = Field(min_length=1, max_length=3)
    trade_in: int = Field(ge=1, le=5, default=1)
    vin_code: str = ""
    wheel: bool
    crash: bool = False
    new: bool = False
    owners: int = Field(ge=1, default=1)
    description: str | None = None
    transmission_id: int | None = None
    drivetrain_id: int | None = None
    engine_id: int | None = None
    fuel_type_id: int | None = None

    @field_validator("year")
    @classmethod
    def _not_in_future(cls, value: int) -> int:
        if value > _max_year():
            raise ValueError(f"Year must be at most {_max_year()}")
        return value


class CreateListingResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    success: bool = True


class SuccessResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: Any = None


class SubmitResult(BaseModel):
    success: bool
    listing_id: int
    created: bool
    media_errors: list[str] = []
