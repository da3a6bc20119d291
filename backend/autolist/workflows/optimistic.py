"""Optimistic list mutations with all-or-nothing rollback.

Protocol for every mutation:

1. cancel in-flight refetches of the affected cache entries,
2. snapshot those entries (deep copy),
3. apply the local patch immediately,
4. call the server,
5. success → invalidate so the authoritative state is refetched;
   failure → restore the snapshot verbatim and notify.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from autolist.api.client import error_message
from autolist.api.listings import ListingApi
from autolist.editor.profiles import EditorProfile
from autolist.errors import ApiError
from autolist.utils.notify import Notifier
from autolist.utils.query_cache import QueryCache, QueryKey

logger = structlog.get_logger()

LIKED_CARS_KEY: QueryKey = ("liked-cars",)

# Receives a deep copy of the cached value (None when absent); returns the
# new value, or None to leave the entry alone.
Patch = Callable[[Any], Any]


@dataclass
class MutationOutcome:
    ok: bool
    result: Any = None
    error: Exception | None = None


async def optimistic_mutate(
    cache: QueryCache,
    patches: Mapping[QueryKey, Patch],
    remote_call: Callable[[], Awaitable[Any]],
    *,
    invalidate: Iterable[QueryKey] = (),
    notifier: Notifier | None = None,
    success_message: str | None = None,
    failure_message: str = "Something went wrong",
) -> MutationOutcome:
    keys = list(patches)
    for key in keys:
        await cache.cancel(key)

    snapshot = cache.snapshot(keys)
    for key, patch in patches.items():
        updated = patch(copy.deepcopy(cache.get(key)))
        if updated is not None:
            cache.set(key, updated)

    try:
        result = await remote_call()
    except Exception as exc:
        cache.restore(snapshot)
        logger.warning(
            "optimistic_mutation_rolled_back",
            keys=keys,
            code=exc.code if isinstance(exc, ApiError) else None,
            error_type=type(exc).__name__,
        )
        if notifier is not None:
            notifier.error(error_message(exc, failure_message))
        return MutationOutcome(ok=False, error=exc)
    except asyncio.CancelledError:
        # Outcome unknown: put the last known-good state back and refetch.
        cache.restore(snapshot)
        for key in keys:
            cache.invalidate(key)
        raise

    for key in (*keys, *invalidate):
        cache.invalidate(key)
    if notifier is not None and success_message:
        notifier.success(success_message)
    return MutationOutcome(ok=True, result=result)


# --- List patches ---
# Cached list pages come either as plain lists or as ``{"items": [...], ...}``.


def _item_id(item: Any) -> Any:
    return item.get("id") if isinstance(item, dict) else getattr(item, "id", None)


def _map_items(data: Any, fn: Callable[[list[Any]], list[Any]]) -> Any:
    if isinstance(data, list):
        return fn(data)
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        return {**data, "items": fn(data["items"])}
    return None


def remove_item(listing_id: int) -> Patch:
    def patch(data: Any) -> Any:
        return _map_items(data, lambda items: [i for i in items if _item_id(i) != listing_id])

    return patch


def prepend_item(item: Any) -> Patch:
    def patch(data: Any) -> Any:
        listing_id = _item_id(item)
        return _map_items(
            data,
            lambda items: [item, *(i for i in items if _item_id(i) != listing_id)],
        )

    return patch


def append_item(item: Any, *, create: bool = False) -> Patch:
    def patch(data: Any) -> Any:
        if data is None and create:
            return [item]
        return _map_items(data, lambda items: [*items, item])

    return patch


# --- Actions ---


async def delete_listing(
    cache: QueryCache,
    listings: ListingApi,
    profile: EditorProfile,
    listing_id: int,
    notifier: Notifier | None = None,
) -> MutationOutcome:
    """Remove a listing from the owner's lists now; restore them if the delete fails."""
    patches = {
        profile.active_list_key: remove_item(listing_id),
        profile.inactive_list_key: remove_item(listing_id),
    }
    return await optimistic_mutate(
        cache,
        patches,
        lambda: listings.delete(listing_id),
        invalidate=profile.invalidate_keys,
        notifier=notifier,
        success_message="Car deleted successfully",
        failure_message="Failed to delete car",
    )


async def deactivate_listing(
    cache: QueryCache,
    listings: ListingApi,
    profile: EditorProfile,
    listing: dict[str, Any],
    notifier: Notifier | None = None,
) -> MutationOutcome:
    """Take a listing off sale."""
    listing_id = listing["id"]
    patches: dict[QueryKey, Patch] = {profile.active_list_key: remove_item(listing_id)}
    if profile.moves_on_status_change:
        patches[profile.inactive_list_key] = prepend_item(listing)
    return await optimistic_mutate(
        cache,
        patches,
        lambda: listings.set_dont_sell(listing_id),
        invalidate=(profile.inactive_list_key, ("cars",)),
        notifier=notifier,
        success_message="Listing deactivated successfully",
        failure_message="Failed to deactivate listing",
    )


async def relist_listing(
    cache: QueryCache,
    listings: ListingApi,
    profile: EditorProfile,
    listing: dict[str, Any],
    notifier: Notifier | None = None,
) -> MutationOutcome:
    """Put a listing back on sale."""
    listing_id = listing["id"]
    patches: dict[QueryKey, Patch] = {profile.active_list_key: prepend_item(listing)}
    if profile.moves_on_status_change:
        patches[profile.inactive_list_key] = remove_item(listing_id)
    return await optimistic_mutate(
        cache,
        patches,
        lambda: listings.set_on_sale(listing_id),
        invalidate=(profile.inactive_list_key, ("cars",)),
        notifier=notifier,
        success_message="Car relisted successfully",
        failure_message="Failed to relist car",
    )


async def toggle_favorite(
    cache: QueryCache,
    listings: ListingApi,
    listing_id: int,
    is_liked: bool,
    listing: dict[str, Any] | None = None,
    notifier: Notifier | None = None,
) -> MutationOutcome:
    """Like or unlike; the liked list updates before the server answers."""
    if is_liked:
        patch = remove_item(listing_id)
        remote = lambda: listings.unlike(listing_id)  # noqa: E731
        message = "Removed from favorites"
    else:
        patch = append_item(listing or {"id": listing_id}, create=True)
        remote = lambda: listings.like(listing_id)  # noqa: E731
        message = "Added to favorites"
    return await optimistic_mutate(
        cache,
        {LIKED_CARS_KEY: patch},
        remote,
        notifier=notifier,
        success_message=message,
        failure_message="Failed to update favorites",
    )
