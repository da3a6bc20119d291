"""Listing record and media API.

The private-seller and dealer surfaces talk to different endpoint families
with slightly different verbs; ``ListingEndpoints`` captures the variation so
one ``ListingApi`` serves both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from autolist.api.client import ApiClient, extract_message
from autolist.errors import ApiError
from autolist.models.contracts import (
    CreateListingResponse,
    ListingPayload,
    MediaFile,
    PersistedListing,
    SuccessResponse,
)
from autolist.utils.image import normalize_upload_filename

logger = structlog.get_logger()


@dataclass(frozen=True)
class ListingEndpoints:
    base: str
    update_method: str  # "PUT" with id in body, or "POST" to base/{id}
    video_field: str

    def record(self, listing_id: int) -> str:
        return f"{self.base}/{listing_id}"

    def update_path(self, listing_id: int) -> str:
        return self.base if self.update_method == "PUT" else self.record(listing_id)

    def edit(self, listing_id: int) -> str:
        return f"{self.record(listing_id)}/edit"

    def images(self, listing_id: int) -> str:
        return f"{self.record(listing_id)}/images"

    def videos(self, listing_id: int) -> str:
        return f"{self.record(listing_id)}/videos"

    def sell(self, listing_id: int) -> str:
        return f"{self.record(listing_id)}/sell"

    def dont_sell(self, listing_id: int) -> str:
        return f"{self.record(listing_id)}/dont-sell"


PRIVATE_ENDPOINTS = ListingEndpoints(
    base="/api/v1/users/cars",
    update_method="PUT",
    video_field="video",
)

DEALER_ENDPOINTS = ListingEndpoints(
    base="/api/v1/third-party/dealer/car",
    update_method="POST",
    video_field="videos",
)

LIKES_PATH = "/api/v1/users/likes"


def _multipart(field: str, files: list[MediaFile]) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [
        (field, (normalize_upload_filename(f.filename), f.content, f.content_type))
        for f in files
    ]


class ListingApi:
    def __init__(self, client: ApiClient, endpoints: ListingEndpoints) -> None:
        self._client = client
        self.endpoints = endpoints

    async def create(self, payload: ListingPayload) -> int:
        data = await self._client.post(self.endpoints.base, json=payload.model_dump(mode="json"))
        response = CreateListingResponse.model_validate(data or {})
        logger.info("listing_created", listing_id=response.id)
        return response.id

    async def update(self, listing_id: int, payload: ListingPayload) -> SuccessResponse:
        body: dict[str, Any] = payload.model_dump(mode="json")
        if self.endpoints.update_method == "PUT":
            body = {"id": listing_id, **body}
        data = await self._client.request(
            self.endpoints.update_method,
            self.endpoints.update_path(listing_id),
            json=body,
        )
        response = SuccessResponse.model_validate(data or {})
        if not response.success:
            raise ApiError("UPDATE_REJECTED", _ack_message(response) or "Failed to update listing")
        logger.info("listing_updated", listing_id=listing_id)
        return response

    async def get_edit_data(self, listing_id: int) -> PersistedListing:
        data = await self._client.get(self.endpoints.edit(listing_id))
        return PersistedListing.model_validate(data)

    async def delete(self, listing_id: int) -> None:
        await self._client.delete(self.endpoints.record(listing_id))
        logger.info("listing_deleted", listing_id=listing_id)

    async def upload_images(self, listing_id: int, files: list[MediaFile]) -> Any:
        return await self._client.post(
            self.endpoints.images(listing_id),
            files=_multipart("images", files),
        )

    async def delete_image(self, listing_id: int, path: str) -> Any:
        return await self._client.request(
            "DELETE",
            self.endpoints.images(listing_id),
            json={"image": path},
        )

    async def upload_video(self, listing_id: int, file: MediaFile) -> Any:
        return await self._client.post(
            self.endpoints.videos(listing_id),
            files=_multipart(self.endpoints.video_field, [file]),
        )

    async def delete_video(self, listing_id: int, path: str) -> Any:
        return await self._client.request(
            "DELETE",
            self.endpoints.videos(listing_id),
            json={"video": path},
        )

    async def set_on_sale(self, listing_id: int) -> Any:
        return await self._client.post(self.endpoints.sell(listing_id))

    async def set_dont_sell(self, listing_id: int) -> Any:
        return await self._client.post(self.endpoints.dont_sell(listing_id))

    async def like(self, listing_id: int) -> Any:
        return await self._client.post(f"{LIKES_PATH}/{listing_id}")

    async def unlike(self, listing_id: int) -> Any:
        return await self._client.delete(f"{LIKES_PATH}/{listing_id}")


def _ack_message(response: SuccessResponse) -> str | None:
    return extract_message({"message": response.message})
