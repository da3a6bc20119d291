"""Shared fixtures: the Toyota Camry XV70 catalog used across editor tests."""

import asyncio
import copy
from typing import Any

import pytest

from autolist.models.contracts import (
    BodyType,
    Brand,
    CarModel,
    City,
    Color,
    Generation,
    ListingDraft,
    PersistedListing,
)


def make_generations() -> list[Generation]:
    """Two backend records share the name "XV70"; each has one modification."""
    return [
        Generation.model_validate(
            {
                "id": 101,
                "name": "XV70",
                "modifications": [
                    {
                        "id": 9,
                        "name": "2.5 AT",
                        "engine": "2.5L",
                        "fuel_type": "Petrol",
                        "transmission": "Automatic",
                        "drivetrain": "FWD",
                        "engine_id": 25,
                        "fuel_type_id": 1,
                        "transmission_id": 2,
                        "drivetrain_id": 3,
                    }
                ],
            }
        ),
        Generation.model_validate(
            {
                "id": 102,
                "name": "XV70",
                "modifications": [
                    {
                        "id": 10,
                        "name": "2.0 AT",
                        "engine": "2.0L",
                        "fuel_type": "Petrol",
                        "transmission": "Automatic",
                        "drivetrain": "FWD",
                        "engine_id": 20,
                        "fuel_type_id": 1,
                        "transmission_id": 2,
                        "drivetrain_id": 3,
                    }
                ],
            }
        ),
    ]


class FakeCatalog:
    """In-memory stand-in for ReferenceCatalog.

    ``gates`` hold a list kind back until its event is set; ``failures``
    make a kind raise instead of answering.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {
            "brands": [Brand(id=7, name="Toyota"), Brand(id=8, name="Honda")],
            "models": [CarModel(id=42, name="Camry"), CarModel(id=43, name="Corolla")],
            "years": [2018, 2019, 2020],
            "body_types": [BodyType(id=3, name="Sedan"), BodyType(id=4, name="Hatchback")],
            "generations": make_generations(),
            "cities": [City(id=1, name="Ashgabat"), City(id=2, name="Mary")],
            "colors": [Color(id=5, name="White"), Color(id=6, name="Black")],
        }
        self.calls: list[tuple[Any, ...]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}

    async def _serve(self, kind: str, *args: Any) -> Any:
        self.calls.append((kind, *args))
        gate = self.gates.get(kind)
        if gate is not None:
            await gate.wait()
        if kind in self.failures:
            raise self.failures[kind]
        return copy.deepcopy(self.data[kind])

    async def brands(self):
        return await self._serve("brands")

    async def models(self, brand_id):
        return await self._serve("models", brand_id)

    async def years(self, brand_id, model_id, wheel):
        return await self._serve("years", brand_id, model_id, wheel)

    async def body_types(self, brand_id, model_id, year, wheel):
        return await self._serve("body_types", brand_id, model_id, year, wheel)

    async def generations(self, brand_id, model_id, year, body_type_id, wheel):
        return await self._serve("generations", brand_id, model_id, year, body_type_id, wheel)

    async def cities(self):
        return await self._serve("cities")

    async def colors(self):
        return await self._serve("colors")

    async def prefetch_generations(self, brand_id, model_id, year, body_types, wheel):
        self.calls.append(("prefetch", brand_id, model_id, year, len(body_types), wheel))

    async def price_recommendation(self, brand_id, model_id, year, odometer, generation_id=None):
        self.calls.append(("price", brand_id, model_id, year, odometer, generation_id))
        return None

    def kinds_called(self) -> list[str]:
        return [call[0] for call in self.calls]


PERSISTED_XV70 = {
    "id": 555,
    "brand": 7,
    "model": "Camry",
    "year": 2019,
    "wheel": True,
    "body_type": {"id": 3, "name": "Sedan"},
    "generation": "XV70",
    "modification": {
        "engine": "2.0L",
        "fuelType": "Petrol",
        "transmission": "Automatic",
        "drivetrain": "FWD",
    },
    "city": {"name": "Ashgabat"},
    "color": 5,
    "price": 25000,
    "odometer": 40000,
    "vin_code": "JTNB11HK0J3000001",
    "phone_numbers": ["+99365000000"],
    "trade_id": 2,
    "owners": 2,
    "images": [
        "https://cdn.mashynbazar.com/images/cars/555/1.jpg",
        {"url": "https://cdn.mashynbazar.com/images/cars/555/2.jpg"},
    ],
}


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def generations() -> list[Generation]:
    return make_generations()


@pytest.fixture
def persisted_json() -> dict[str, Any]:
    return copy.deepcopy(PERSISTED_XV70)


@pytest.fixture
def persisted() -> PersistedListing:
    return PersistedListing.model_validate(copy.deepcopy(PERSISTED_XV70))


@pytest.fixture
def complete_draft() -> ListingDraft:
    """A create-mode draft that passes validation for both profiles."""
    return ListingDraft(
        brand_id=7,
        model_id=42,
        year=2019,
        wheel=True,
        body_type_id=3,
        generation_id=102,
        generation_name="XV70",
        modification_id=10,
        city_id=1,
        color_id=5,
        price=25000,
        odometer=40000,
        vin_code="JTNB11HK0J3000001",
        phone_numbers=["+99365000000", ""],
    )
