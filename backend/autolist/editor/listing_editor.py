"""One listing editor instance: selection state, option loading, reconciliation.

The editor owns its ``ListingDraft`` exclusively. Two writers touch it:
user input (``set_field``, ``select_generation``, ``select_modification``)
and reconciliation after each list arrives. Reconciliation defers to the
dirty flags the user writes set, so the two never fight over a field.

Option lists are loaded concurrently by ``refresh()``. Every arrival is
checked against the editor's current state before it is used: a response
for a closed editor or for an ancestor scope the user has since changed is
dropped.
"""

from __future__ import annotations

import asyncio
import uuid
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from autolist.api.references import ReferenceCatalog
from autolist.config import settings
from autolist.editor.cascade import CascadeField, on_field_changed, ordered
from autolist.editor.generations import GenerationIndex, GroupedModification, ModificationSelection
from autolist.editor.profiles import EditorProfile
from autolist.editor.reconcile import LoadedLists, reconcile
from autolist.editor.validation import build_payload, collect_errors
from autolist.errors import ApiError, QueryCancelledError
from autolist.logging import editor_log_context
from autolist.models.contracts import (
    BodyType,
    Brand,
    CarModel,
    City,
    Color,
    ListingDraft,
    ListingPayload,
    MediaFile,
    PersistedListing,
    PriceRecommendation,
    SubmitResult,
)
from autolist.utils.media import file_extension, normalize_media_path
from autolist.utils.notify import Notifier

if TYPE_CHECKING:
    from autolist.workflows.submission import SubmissionPipeline

logger = structlog.get_logger()

STEERING_OPTIONS: tuple[bool, bool] = (True, False)

_CASCADE_VALUES = frozenset(f.value for f in CascadeField)
_MANUAL_FIELDS = frozenset({CascadeField.GENERATION, CascadeField.MODIFICATION})


class ListKind(StrEnum):
    BRANDS = "brands"
    MODELS = "models"
    YEARS = "years"
    BODY_TYPES = "body_types"
    GENERATIONS = "generations"
    CITIES = "cities"
    COLORS = "colors"


class EditorClosedError(RuntimeError):
    """The editor was closed; its draft is discarded."""


class SelectionState:
    """Cascade values (stored on the draft) plus per-field dirty flags."""

    def __init__(self, draft: ListingDraft) -> None:
        self.draft = draft
        self.dirty: set[str] = set()

    def value(self, field: str) -> Any:
        return getattr(self.draft, field)

    def is_dirty(self, field: str) -> bool:
        return field in self.dirty

    def set(self, field: CascadeField, value: Any, *, user_initiated: bool) -> list[CascadeField]:
        """Write ``field`` and clear its descendants when the rule says so.

        Cleared descendants become dirty too: values saved against the old
        ancestor must not be restored underneath the new one.
        """
        changed = self.value(field) != value
        setattr(self.draft, field, value)
        if user_initiated:
            self.dirty.add(str(field))
        cleared = ordered(on_field_changed(field, user_initiated, changed))
        for dependent in cleared:
            self.clear(dependent)
        return cleared

    def clear(self, field: CascadeField) -> None:
        setattr(self.draft, field, None)
        self.dirty.add(str(field))
        if field == CascadeField.GENERATION:
            self.draft.generation_name = None

    def apply(self, values: dict[str, Any]) -> None:
        """Programmatic write (load, reconciliation): never clears, never dirties."""
        for field, value in values.items():
            setattr(self.draft, field, value)


class ListingEditor:
    def __init__(
        self,
        catalog: ReferenceCatalog,
        profile: EditorProfile,
        persisted: PersistedListing | None = None,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.catalog = catalog
        self.profile = profile
        self.persisted = persisted
        self.notifier = notifier
        self.draft = ListingDraft.for_edit(persisted) if persisted is not None else ListingDraft()
        self.state = SelectionState(self.draft)
        self.ambiguous: set[str] = set()
        self.closed = False

        self._lists: dict[ListKind, tuple[tuple[Any, ...], Any]] = {}
        self._failed: dict[ListKind, tuple[Any, ...]] = {}
        self._inflight: dict[ListKind, tuple[Any, ...]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def mode(self) -> str:
        return "edit" if self.persisted is not None else "create"

    # --- Scopes & options ---

    def scope(self, kind: ListKind) -> tuple[Any, ...] | None:
        """Ancestor values a list is fetched for; None until all are set."""
        d = self.draft
        chains: dict[ListKind, tuple[Any, ...]] = {
            ListKind.BRANDS: (),
            ListKind.CITIES: (),
            ListKind.COLORS: (),
            ListKind.MODELS: (d.brand_id,),
            ListKind.YEARS: (d.brand_id, d.model_id, d.wheel),
            ListKind.BODY_TYPES: (d.brand_id, d.model_id, d.wheel, d.year),
            ListKind.GENERATIONS: (d.brand_id, d.model_id, d.wheel, d.year, d.body_type_id),
        }
        chain = chains[kind]
        return None if any(v is None for v in chain) else chain

    def options(self, kind: ListKind) -> Any | None:
        loaded = self._lists.get(kind)
        scope = self.scope(kind)
        if loaded is None or scope is None or loaded[0] != scope:
            return None
        return loaded[1]

    @property
    def brands(self) -> list[Brand] | None:
        return self.options(ListKind.BRANDS)

    @property
    def models(self) -> list[CarModel] | None:
        return self.options(ListKind.MODELS)

    @property
    def years(self) -> list[int] | None:
        return self.options(ListKind.YEARS)

    @property
    def steering_options(self) -> tuple[bool, bool] | None:
        if self.draft.brand_id is None or self.draft.model_id is None:
            return None
        return STEERING_OPTIONS

    @property
    def body_types(self) -> list[BodyType] | None:
        return self.options(ListKind.BODY_TYPES)

    @property
    def generations(self) -> GenerationIndex | None:
        return self.options(ListKind.GENERATIONS)

    @property
    def cities(self) -> list[City] | None:
        return self.options(ListKind.CITIES)

    @property
    def colors(self) -> list[Color] | None:
        return self.options(ListKind.COLORS)

    @property
    def modification_options(self) -> list[GroupedModification] | None:
        index = self.generations
        if index is None or self.draft.generation_name is None:
            return None
        return index.modifications(self.draft.generation_name)

    @property
    def selected_modification(self) -> GroupedModification | None:
        index = self.generations
        if index is None or self.draft.modification_id is None:
            return None
        try:
            selection = index.select_modification(
                self.draft.modification_id, self.draft.generation_name
            )
        except ValueError:
            return None
        return selection.modification if selection else None

    def loaded_lists(self) -> LoadedLists:
        return LoadedLists(
            brands=self.brands,
            models=self.models,
            years=self.years,
            body_types=self.body_types,
            generations=self.generations,
            cities=self.cities,
            colors=self.colors,
        )

    # --- Loading ---

    async def refresh(self) -> None:
        """Load every list whose ancestors are set, until nothing is left to load.

        Lists load concurrently and each one is reconciled as soon as it
        arrives. A list that failed for its current scope is not retried
        until the scope changes or ``retry_failed()`` is called.
        """
        self._ensure_open()
        with editor_log_context(self.id, self.mode, self.profile.name):
            while not self.closed:
                pending = self._pending_loads()
                if not pending:
                    return
                tasks = [self._spawn(self._load(kind, scope)) for kind, scope in pending]
                await asyncio.gather(*tasks, return_exceptions=True)

    def retry_failed(self) -> None:
        self._failed.clear()

    def _pending_loads(self) -> list[tuple[ListKind, tuple[Any, ...]]]:
        pending = []
        for kind in ListKind:
            scope = self.scope(kind)
            if scope is None:
                continue
            loaded = self._lists.get(kind)
            if loaded is not None and loaded[0] == scope:
                continue
            if self._failed.get(kind) == scope or self._inflight.get(kind) == scope:
                continue
            pending.append((kind, scope))
        return pending

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load(self, kind: ListKind, scope: tuple[Any, ...]) -> None:
        self._inflight[kind] = scope
        try:
            data = await self._fetch(kind, scope)
        except (ApiError, QueryCancelledError) as exc:
            self._failed[kind] = scope
            logger.warning(
                "reference_list_failed",
                kind=str(kind),
                scope=scope,
                code=getattr(exc, "code", "CANCELLED"),
            )
            return
        finally:
            if self._inflight.get(kind) == scope:
                del self._inflight[kind]

        if self.closed:
            logger.debug("reference_list_discarded", kind=str(kind), reason="closed")
            return
        if self.scope(kind) != scope:
            logger.debug("reference_list_discarded", kind=str(kind), reason="stale_scope")
            return

        if kind == ListKind.GENERATIONS:
            data = GenerationIndex(data)
        self._lists[kind] = (scope, data)
        self._failed.pop(kind, None)
        logger.debug("reference_list_loaded", kind=str(kind), scope=scope)

        if kind == ListKind.BODY_TYPES:
            brand_id, model_id, wheel, year = scope
            self._spawn(self.catalog.prefetch_generations(brand_id, model_id, year, data, wheel))

        self._reconcile()

    async def _fetch(self, kind: ListKind, scope: tuple[Any, ...]) -> Any:
        catalog = self.catalog
        if kind == ListKind.BRANDS:
            return await catalog.brands()
        if kind == ListKind.CITIES:
            return await catalog.cities()
        if kind == ListKind.COLORS:
            return await catalog.colors()
        if kind == ListKind.MODELS:
            (brand_id,) = scope
            return await catalog.models(brand_id)
        if kind == ListKind.YEARS:
            brand_id, model_id, wheel = scope
            return await catalog.years(brand_id, model_id, wheel)
        if kind == ListKind.BODY_TYPES:
            brand_id, model_id, wheel, year = scope
            return await catalog.body_types(brand_id, model_id, year, wheel)
        brand_id, model_id, wheel, year, body_type_id = scope
        return await catalog.generations(brand_id, model_id, year, body_type_id, wheel)

    def _reconcile(self) -> None:
        if self.persisted is None or self.closed:
            return
        while True:
            result = reconcile(self.persisted, self.loaded_lists(), self.draft, self.state.dirty)
            self.ambiguous = result.ambiguous
            if not result.changed:
                return
            self.state.apply(result.values)
            logger.info("editor_reconciled", fields=sorted(result.values))

    # --- User input ---

    def set_field(self, field: str, value: Any) -> list[CascadeField]:
        """User edit of any draft field. Returns the cascade fields it cleared."""
        self._ensure_open()
        if field in _CASCADE_VALUES:
            cascade_field = CascadeField(field)
            if cascade_field in _MANUAL_FIELDS:
                raise ValueError(f"Use select_generation/select_modification to set {field}")
            cleared = self.state.set(cascade_field, value, user_initiated=True)
            if cleared:
                logger.info("cascade_cleared", field=str(field), cleared=[str(f) for f in cleared])
            return cleared
        if field not in ListingDraft.model_fields or field == "listing_id":
            raise ValueError(f"Unknown draft field {field!r}")
        setattr(self.draft, field, value)
        self.state.dirty.add(field)
        return []

    def select_generation(self, name: str) -> list[CascadeField]:
        """User picks a generation by its display name."""
        self._ensure_open()
        index = self.generations
        group = index.group(name) if index is not None else None
        if group is None:
            raise ValueError(f"Generation {name!r} is not in the loaded list")
        changed = self.draft.generation_name != name
        single = next(iter(group.member_ids)) if len(group.member_ids) == 1 else None
        self.state.dirty.add(str(CascadeField.GENERATION))
        self.draft.generation_name = name
        if not changed:
            return []
        self.draft.generation_id = single
        cleared = ordered(on_field_changed(CascadeField.GENERATION, True, changed))
        for dependent in cleared:
            self.state.clear(dependent)
        return cleared

    def select_modification(self, modification_id: int) -> ModificationSelection | None:
        """User picks a modification; the concrete generation id follows from it.

        Returns None (draft untouched) while there is no generation data or
        no generation chosen yet.
        """
        self._ensure_open()
        index = self.generations
        if index is None or self.draft.generation_name is None:
            logger.info("modification_selection_deferred", modification_id=modification_id)
            return None
        selection = index.select_modification(modification_id, self.draft.generation_name)
        if selection is None:
            return None
        self.state.dirty.update({str(CascadeField.GENERATION), str(CascadeField.MODIFICATION)})
        self.draft.modification_id = selection.modification_id
        self.draft.generation_id = selection.generation_id
        return selection

    async def price_recommendation(self) -> PriceRecommendation | None:
        d = self.draft
        return await self.catalog.price_recommendation(
            d.brand_id, d.model_id, d.year, d.odometer, d.generation_id
        )

    # --- Media ---

    def add_files(self, files: list[MediaFile]) -> list[str]:
        """Queue new files for upload. Returns one message per rejected file."""
        self._ensure_open()
        rejected: list[str] = []
        allowed = {ext.lower() for ext in settings.allowed_image_extensions}
        for file in files:
            if file.kind == "video":
                self.draft.new_files.append(file)
                continue
            if file.kind != "image" or file_extension(file.filename) not in allowed:
                kinds = ", ".join(sorted(allowed))
                rejected.append(f"{file.filename}: only {kinds} images are allowed")
                continue
            if file.size > settings.max_image_bytes:
                limit_mb = settings.max_image_bytes // (1024 * 1024)
                rejected.append(f"{file.filename}: larger than {limit_mb} MB")
                continue
            if self.image_count >= settings.max_images:
                limit = settings.max_images
                rejected.append(f"{file.filename}: at most {limit} images per listing")
                continue
            self.draft.new_files.append(file)

        for message in rejected:
            logger.info("media_rejected", reason=message)
            if self.notifier is not None:
                self.notifier.error(message)
        return rejected

    @property
    def image_count(self) -> int:
        new_images = sum(1 for f in self.draft.new_files if f.kind == "image")
        return len(self.draft.existing_media_urls) + new_images

    def remove_new_file(self, index: int) -> MediaFile:
        self._ensure_open()
        return self.draft.new_files.pop(index)

    def remove_existing_media(self, url: str) -> None:
        """Drop an already-uploaded image; it is deleted after the next save."""
        self._ensure_open()
        self.draft.existing_media_urls.remove(url)
        path = normalize_media_path(url)
        if path not in self.draft.pending_delete_urls:
            self.draft.pending_delete_urls.append(path)

    def remove_existing_video(self, url: str) -> None:
        self._ensure_open()
        self.draft.existing_video_urls.remove(url)
        path = normalize_media_path(url)
        if path not in self.draft.pending_delete_video_urls:
            self.draft.pending_delete_video_urls.append(path)

    # --- Validation & submit ---

    def validate(self) -> dict[str, str]:
        return collect_errors(self.draft, self.profile, self.ambiguous)

    def build_payload(self) -> ListingPayload:
        return build_payload(self.draft, self.profile, self.selected_modification, self.ambiguous)

    async def submit(self, pipeline: SubmissionPipeline) -> SubmitResult:
        """Run the submission pipeline; closing the editor cancels it.

        Raises:
            EditorClosedError: the editor was closed before or during the submit.
        """
        self._ensure_open()
        with editor_log_context(self.id, self.mode, self.profile.name):
            task = self._spawn(
                pipeline.submit(
                    self.draft,
                    modification=self.selected_modification,
                    ambiguous=set(self.ambiguous),
                )
            )
            try:
                result: SubmitResult = await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if self.closed and current is not None and not current.cancelling():
                    raise EditorClosedError(f"Editor {self.id} closed during submit") from None
                raise
        if result.success:
            self.close()
        return result

    # --- Lifecycle ---

    def close(self) -> None:
        """Discard the editor: cancel loads and a pending submit, drop late responses."""
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        logger.info("editor_closed", editor_id=self.id, cancelled=len(self._tasks))

    def _ensure_open(self) -> None:
        if self.closed:
            raise EditorClosedError(f"Editor {self.id} is closed")

