"""Wiring: build the session-bound collaborators an editor needs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from autolist.api.client import ApiClient
from autolist.api.listings import ListingApi
from autolist.api.references import ReferenceCatalog
from autolist.editor.listing_editor import ListingEditor
from autolist.editor.profiles import EditorProfile
from autolist.session import Session
from autolist.utils.notify import Notifier
from autolist.utils.query_cache import QueryCache
from autolist.workflows.submission import SubmissionPipeline


@dataclass
class Services:
    client: ApiClient
    cache: QueryCache
    catalog: ReferenceCatalog
    listings: ListingApi
    notifier: Notifier
    profile: EditorProfile
    navigate: Callable[[str], Any]
    navigations: list[str] = field(default_factory=list)

    def new_pipeline(self) -> SubmissionPipeline:
        """A pipeline for one editor; its ``stage`` tracks that editor's submit only."""
        return SubmissionPipeline(
            self.listings,
            self.cache,
            self.notifier,
            self.navigate,
            self.profile,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def build_services(
    session: Session,
    profile: EditorProfile,
    *,
    cache: QueryCache | None = None,
    navigate: Callable[[str], Any] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    base_url: str | None = None,
) -> Services:
    """Construct the client, catalog and listing API for ``profile``.

    ``cache`` is shared across editors when given. Without ``navigate`` the
    requested routes are recorded on ``Services.navigations``.
    """
    client = ApiClient(session, base_url=base_url, transport=transport)
    cache = cache if cache is not None else QueryCache()
    notifier = Notifier()
    navigations: list[str] = []
    listings = ListingApi(client, profile.endpoints)
    return Services(
        client=client,
        cache=cache,
        catalog=ReferenceCatalog(client, cache),
        listings=listings,
        notifier=notifier,
        profile=profile,
        navigate=navigate if navigate is not None else navigations.append,
        navigations=navigations,
    )


async def open_editor(services: Services, listing_id: int | None = None) -> ListingEditor:
    """Create an editor (edit mode when ``listing_id`` is given) and load its lists."""
    persisted = None
    if listing_id is not None:
        persisted = await services.listings.get_edit_data(listing_id)
    editor = ListingEditor(
        services.catalog,
        services.profile,
        persisted,
        notifier=services.notifier,
    )
    await editor.refresh()
    return editor
