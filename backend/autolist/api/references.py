"""Reference catalog client — brands, models, years, body types, generations.

Every list is scoped by its ancestor selections and cached indefinitely in
the shared ``QueryCache``; nothing in the editor ever mutates these lists.
Generation fetches retry with exponential backoff because that endpoint is
the slowest and flakiest of the chain.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter

from autolist.api.client import ApiClient
from autolist.config import settings
from autolist.errors import ApiError
from autolist.models.contracts import (
    BodyType,
    Brand,
    CarModel,
    City,
    Color,
    Generation,
    PriceRecommendation,
)
from autolist.utils.query_cache import FOREVER, QueryCache

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)

RETRY_BASE_DELAY = 1.0

PRICE_RECOMMENDATION_PATH = "/api/v1/users/cars/price-recommendation"


def _items(data: Any) -> list[Any]:
    """Accept both flat lists and paginated ``{"items": [...]}`` envelopes."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = data.get("items")
        if isinstance(items, list):
            return items
    return []


def _parse_list(model: type[T], data: Any) -> list[T]:
    return TypeAdapter(list[model]).validate_python(_items(data))  # type: ignore[valid-type]


def _wheel_param(wheel: bool) -> str:
    return "true" if wheel else "false"


def retry_delay(attempt: int) -> float:
    """Backoff before retry number ``attempt`` (0-based), capped by settings."""
    return min(RETRY_BASE_DELAY * 2**attempt, settings.reference_retry_max_delay_seconds)


class ReferenceCatalog:
    def __init__(self, client: ApiClient, cache: QueryCache) -> None:
        self._client = client
        self._cache = cache

    async def brands(self) -> list[Brand]:
        return await self._cache.fetch(
            ("brands",),
            lambda: self._get_list(Brand, "/api/v1/users/brands"),
            stale_time=FOREVER,
        )

    async def models(self, brand_id: int) -> list[CarModel]:
        return await self._cache.fetch(
            ("models", brand_id),
            lambda: self._get_list(CarModel, f"/api/v1/users/brands/{brand_id}/models"),
            stale_time=FOREVER,
        )

    async def years(self, brand_id: int, model_id: int, wheel: bool) -> list[int]:
        async def _load() -> list[int]:
            data = await self._client.get(
                f"/api/v1/users/brands/{brand_id}/models/{model_id}/years",
                params={"wheel": _wheel_param(wheel)},
            )
            return TypeAdapter(list[int]).validate_python(_items(data))

        return await self._cache.fetch(
            ("years", brand_id, model_id, wheel), _load, stale_time=FOREVER
        )

    async def body_types(
        self,
        brand_id: int,
        model_id: int,
        year: int,
        wheel: bool,
    ) -> list[BodyType]:
        return await self._cache.fetch(
            ("bodyTypes", brand_id, model_id, year, wheel),
            lambda: self._get_list(
                BodyType,
                f"/api/v1/users/brands/{brand_id}/models/{model_id}/body-types",
                params={"year": str(year), "wheel": _wheel_param(wheel)},
            ),
            stale_time=FOREVER,
        )

    async def generations(
        self,
        brand_id: int,
        model_id: int,
        year: int,
        body_type_id: int,
        wheel: bool,
    ) -> list[Generation]:
        return await self._cache.fetch(
            ("generations", brand_id, model_id, year, body_type_id, wheel),
            lambda: self._get_generations(brand_id, model_id, year, body_type_id, wheel),
            stale_time=FOREVER,
        )

    async def prefetch_generations(
        self,
        brand_id: int,
        model_id: int,
        year: int,
        body_types: Sequence[BodyType],
        wheel: bool,
    ) -> None:
        """Warm the generation lists for every body type when there are few of them."""
        if not body_types or len(body_types) > settings.generation_prefetch_limit:
            return
        results = await asyncio.gather(
            *(self.generations(brand_id, model_id, year, bt.id, wheel) for bt in body_types),
            return_exceptions=True,
        )
        failed = sum(1 for r in results if isinstance(r, BaseException))
        if failed:
            logger.info("generation_prefetch_partial", failed=failed, total=len(results))

    async def cities(self) -> list[City]:
        return await self._cache.fetch(
            ("cities",),
            lambda: self._get_list(City, "/api/v1/users/cities"),
            stale_time=FOREVER,
        )

    async def colors(self) -> list[Color]:
        return await self._cache.fetch(
            ("colors",),
            lambda: self._get_list(Color, "/api/v1/users/colors"),
            stale_time=FOREVER,
        )

    async def price_recommendation(
        self,
        brand_id: int | None,
        model_id: int | None,
        year: int | None,
        odometer: int | None,
        generation_id: int | None = None,
    ) -> PriceRecommendation | None:
        """Suggested price band, or None when inputs are incomplete or unavailable."""
        if not brand_id or not model_id or not year or not odometer or odometer <= 0:
            return None

        params: dict[str, Any] = {
            "brand_id": brand_id,
            "model_id": model_id,
            "year": year,
            "odometer": odometer,
        }
        if generation_id:
            params["generation_id"] = generation_id

        async def _load() -> PriceRecommendation | None:
            try:
                data = await self._client.get(PRICE_RECOMMENDATION_PATH, params=params)
            except ApiError as exc:
                if exc.status_code != 404:
                    logger.warning(
                        "price_recommendation_failed",
                        code=exc.code,
                        status=exc.status_code,
                    )
                return None
            return PriceRecommendation.model_validate(data) if data else None

        return await self._cache.fetch(
            ("price-recommendation", brand_id, model_id, year, odometer, generation_id),
            _load,
            stale_time=settings.price_recommendation_stale_seconds,
        )

    async def _get_list(
        self,
        model: type[T],
        path: str,
        params: dict[str, Any] | None = None,
    ) -> list[T]:
        data = await self._client.get(path, params=params)
        return _parse_list(model, data)

    async def _get_generations(
        self,
        brand_id: int,
        model_id: int,
        year: int,
        body_type_id: int,
        wheel: bool,
    ) -> list[Generation]:
        path = f"/api/v1/users/brands/{brand_id}/models/{model_id}/generations"
        params = {
            "year": str(year),
            "body_type_id": str(body_type_id),
            "wheel": _wheel_param(wheel),
        }
        attempts = max(1, settings.reference_retry_attempts + 1)
        for attempt in range(attempts):
            try:
                return await self._get_list(Generation, path, params=params)
            except ApiError as exc:
                if not exc.retryable or attempt == attempts - 1:
                    raise
                delay = retry_delay(attempt)
                logger.warning(
                    "generations_fetch_retrying",
                    brand_id=brand_id,
                    model_id=model_id,
                    attempt=attempt + 1,
                    delay=delay,
                    code=exc.code,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")
