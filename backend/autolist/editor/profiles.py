"""Editor profiles: what differs between the private-seller and dealer editors.

Both surfaces run the same cascade, reconciliation and submission engine;
a profile only declares requirements, endpoints and the caches a save
affects.
"""

from __future__ import annotations

from dataclasses import dataclass

from autolist.api.listings import DEALER_ENDPOINTS, PRIVATE_ENDPOINTS, ListingEndpoints
from autolist.utils.query_cache import QueryKey


@dataclass(frozen=True)
class EditorProfile:
    name: str
    require_vin: bool
    endpoints: ListingEndpoints
    invalidate_keys: tuple[QueryKey, ...]
    detail_route: str
    active_list_key: QueryKey
    inactive_list_key: QueryKey
    # Dealer lists are disjoint (active vs drafts); private "my cars" holds both.
    moves_on_status_change: bool = False

    def detail_path(self, listing_id: int) -> str:
        return self.detail_route.format(id=listing_id)


PRIVATE_SELLER = EditorProfile(
    name="private",
    require_vin=True,
    endpoints=PRIVATE_ENDPOINTS,
    invalidate_keys=(
        ("cars",),
        ("car",),
        ("my-cars",),
        ("my-cars-on-sale",),
        ("liked-cars",),
    ),
    detail_route="/cars/{id}",
    active_list_key=("my-cars-on-sale",),
    inactive_list_key=("my-cars",),
)

DEALER = EditorProfile(
    name="dealer",
    require_vin=False,
    endpoints=DEALER_ENDPOINTS,
    invalidate_keys=(
        ("cars",),
        ("car",),
        ("dealer-cars-active",),
        ("dealer-cars-drafts",),
    ),
    detail_route="/cars/{id}",
    active_list_key=("dealer-cars-active",),
    inactive_list_key=("dealer-cars-drafts",),
    moves_on_status_change=True,
)
