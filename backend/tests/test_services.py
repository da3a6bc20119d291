"""End-to-end wiring tests: real clients over httpx.MockTransport.

Mirrors the two user flows: create a listing from scratch, and open an
existing listing for editing and save it unchanged.
"""

import json

import httpx
import pytest

from autolist.editor.profiles import DEALER, PRIVATE_SELLER
from autolist.services import build_services, open_editor
from autolist.session import Session

BRANDS = "/api/v1/users/brands"
MODELS = f"{BRANDS}/7/models"
YEARS = f"{MODELS}/42/years"
BODY_TYPES = f"{MODELS}/42/body-types"
GENERATIONS = f"{MODELS}/42/generations"

GENERATIONS_JSON = [
    {
        "id": gen_id,
        "name": "XV70",
        "modifications": [
            {
                "id": mod_id,
                "engine": engine,
                "fuel_type": "Petrol",
                "transmission": "Automatic",
                "drivetrain": "FWD",
                "engine_id": engine_id,
            }
        ],
    }
    for gen_id, mod_id, engine, engine_id in ((101, 9, "2.5L", 25), (102, 10, "2.0L", 20))
]


class _Marketplace:
    """Minimal fake of the marketplace API."""

    def __init__(self, persisted: dict) -> None:
        self.requests: list[httpx.Request] = []
        self.routes = {
            ("GET", BRANDS): [{"id": 7, "name": "Toyota"}],
            ("GET", MODELS): {"items": [{"id": 42, "name": "Camry"}]},
            ("GET", YEARS): [2018, 2019],
            ("GET", BODY_TYPES): [{"id": 3, "name": "Sedan"}],
            ("GET", GENERATIONS): GENERATIONS_JSON,
            ("GET", "/api/v1/users/cities"): [{"id": 1, "name": "Ashgabat"}],
            ("GET", "/api/v1/users/colors"): [{"id": 5, "name": "White"}],
            ("GET", "/api/v1/users/cars/555/edit"): persisted,
            ("POST", "/api/v1/users/cars"): {"id": 900},
            ("PUT", "/api/v1/users/cars"): {"success": True},
            ("POST", "/api/v1/third-party/dealer/car"): {"id": 901},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.routes.get((request.method, request.url.path))
        if body is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json=body)

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if (r.method, r.url.path) == (method, path)]


@pytest.fixture
def marketplace(persisted_json):
    return _Marketplace(persisted_json)


class TestCreateFlow:
    @pytest.mark.asyncio
    async def test_pick_everything_and_submit(self, marketplace):
        services = build_services(
            Session("token"),
            PRIVATE_SELLER,
            transport=httpx.MockTransport(marketplace),
            base_url="https://api.test",
        )
        editor = await open_editor(services)
        editor.set_field("brand_id", 7)
        editor.set_field("model_id", 42)
        editor.set_field("wheel", True)
        await editor.refresh()
        editor.set_field("year", 2019)
        await editor.refresh()
        editor.set_field("body_type_id", 3)
        await editor.refresh()
        editor.select_generation("XV70")
        editor.select_modification(10)
        for field, value in {
            "city_id": 1,
            "color_id": 5,
            "price": 25000,
            "odometer": 40000,
            "vin_code": "JTNB11HK0J3000001",
            "phone_numbers": ["+99365000000"],
        }.items():
            editor.set_field(field, value)

        result = await editor.submit(services.new_pipeline())

        assert result.listing_id == 900
        body = json.loads(marketplace.sent("POST", "/api/v1/users/cars")[0].content)
        assert (body["generation_id"], body["modification_id"]) == (102, 10)
        assert body["engine_id"] == 20
        assert services.navigations == ["/cars/900"]
        await services.aclose()

    @pytest.mark.asyncio
    async def test_dealer_create_skips_vin(self, marketplace):
        services = build_services(
            Session("token"),
            DEALER,
            transport=httpx.MockTransport(marketplace),
            base_url="https://api.test",
        )
        editor = await open_editor(services)
        editor.draft = editor.state.draft = editor.draft.model_copy(
            update={
                "brand_id": 7,
                "model_id": 42,
                "year": 2019,
                "body_type_id": 3,
                "generation_id": 102,
                "modification_id": 10,
                "city_id": 1,
                "color_id": 5,
                "price": 25000,
                "odometer": 40000,
                "phone_numbers": ["+99365000000"],
            }
        )
        result = await editor.submit(services.new_pipeline())
        assert result.listing_id == 901
        assert services.navigations == ["/cars/901"]
        await services.aclose()


class TestEditFlow:
    @pytest.mark.asyncio
    async def test_open_reconciles_and_saves_unchanged(self, marketplace):
        services = build_services(
            Session("token"),
            PRIVATE_SELLER,
            transport=httpx.MockTransport(marketplace),
            base_url="https://api.test",
        )
        editor = await open_editor(services, 555)

        assert editor.mode == "edit"
        assert (editor.draft.generation_id, editor.draft.modification_id) == (102, 10)

        result = await editor.submit(services.new_pipeline())

        assert not result.created
        body = json.loads(marketplace.sent("PUT", "/api/v1/users/cars")[0].content)
        assert body["id"] == 555
        assert body["trade_in"] == 2
        assert body["owners"] == 2
        assert services.navigations == ["/cars/555"]
        assert services.notifier.history[-1].message == "Car listing updated successfully!"
        await services.aclose()

    @pytest.mark.asyncio
    async def test_reference_lists_shared_across_editors(self, marketplace):
        services = build_services(
            Session("token"),
            PRIVATE_SELLER,
            transport=httpx.MockTransport(marketplace),
            base_url="https://api.test",
        )
        await open_editor(services, 555)
        await open_editor(services, 555)
        assert len(marketplace.sent("GET", GENERATIONS)) == 1
        assert len(marketplace.sent("GET", "/api/v1/users/cars/555/edit")) == 2
        await services.aclose()


class TestPipelinePerEditor:
    def test_each_editor_gets_its_own_stage(self, marketplace):
        services = build_services(
            Session("token"),
            PRIVATE_SELLER,
            transport=httpx.MockTransport(marketplace),
            base_url="https://api.test",
        )
        first, second = services.new_pipeline(), services.new_pipeline()
        first.stage = "upload_media"
        assert first is not second
        assert second.stage == "idle"
