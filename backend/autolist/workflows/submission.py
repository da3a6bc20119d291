"""Listing submission pipeline.

Stages run strictly in order, each one settling before the next starts:

    validate → persist → upload_media → delete_media → finalize

Only ``persist`` is fatal. Media stages collect per-item failures (one
notification each) and the pipeline moves on, because a listing should not
be lost over one photo. ``finalize`` (cache invalidation + navigation) runs
whenever ``persist`` succeeded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection
from typing import Any

import structlog

from autolist.api.client import error_message
from autolist.api.listings import ListingApi
from autolist.editor.profiles import EditorProfile
from autolist.editor.validation import build_payload
from autolist.errors import ApiError, DraftValidationError, SubmissionError
from autolist.models.contracts import ListingDraft, MediaFile, Modification, SubmitResult
from autolist.utils.image import compress_image
from autolist.utils.media import normalize_media_path
from autolist.utils.notify import Notifier
from autolist.utils.query_cache import QueryCache

logger = structlog.get_logger()

CREATED_MESSAGE = "Car listing created successfully!"
UPDATED_MESSAGE = "Car listing updated successfully!"
CREATE_FAILED_MESSAGE = "Failed to create car listing"
UPDATE_FAILED_MESSAGE = "Failed to update car listing"
VALIDATION_MESSAGE = "Please fill in all required fields"

Compressor = Callable[[MediaFile], Awaitable[MediaFile]]
Navigate = Callable[[str], Any]


class SubmissionPipeline:
    def __init__(
        self,
        listings: ListingApi,
        cache: QueryCache,
        notifier: Notifier,
        navigate: Navigate,
        profile: EditorProfile,
        compress: Compressor = compress_image,
    ) -> None:
        self._listings = listings
        self._cache = cache
        self._notifier = notifier
        self._navigate = navigate
        self._profile = profile
        self._compress = compress
        self.stage = "idle"

    async def submit(
        self,
        draft: ListingDraft,
        *,
        modification: Modification | None = None,
        ambiguous: Collection[str] = (),
    ) -> SubmitResult:
        """Persist ``draft`` and its media.

        Raises:
            DraftValidationError: before any network call.
            SubmissionError: the record could not be saved; the draft is untouched.
        """
        self.stage = "validate"
        try:
            payload = build_payload(draft, self._profile, modification, ambiguous)
        except DraftValidationError:
            self._notifier.error(VALIDATION_MESSAGE)
            self.stage = "failed"
            raise

        listing_id = draft.listing_id
        created = listing_id is None
        self.stage = "persist"
        try:
            if listing_id is None:
                listing_id = await self._listings.create(payload)
            else:
                await self._listings.update(listing_id, payload)
        except ApiError as exc:
            fallback = CREATE_FAILED_MESSAGE if created else UPDATE_FAILED_MESSAGE
            message = error_message(exc, fallback)
            logger.warning(
                "listing_persist_failed",
                code=exc.code,
                status=exc.status_code,
                created=created,
            )
            self._notifier.error(message)
            self.stage = "failed"
            raise SubmissionError("persist", message) from exc

        # A retry after this point must update, not create a duplicate.
        draft.listing_id = listing_id

        media_errors: list[str] = []
        try:
            self.stage = "upload_media"
            media_errors += await self._upload_media(listing_id, draft)
            if not created:
                self.stage = "delete_media"
                media_errors += await self._delete_removed_media(listing_id, draft)
        except asyncio.CancelledError:
            logger.info("submission_cancelled", listing_id=listing_id, stage=self.stage)
            self._invalidate()
            self.stage = "cancelled"
            raise

        self.stage = "finalize"
        self._invalidate()
        if not media_errors:
            self._notifier.success(CREATED_MESSAGE if created else UPDATED_MESSAGE)
        self._navigate(self._profile.detail_path(listing_id))
        self.stage = "done"

        logger.info(
            "listing_submitted",
            listing_id=listing_id,
            created=created,
            media_errors=len(media_errors),
        )
        return SubmitResult(
            success=True,
            listing_id=listing_id,
            created=created,
            media_errors=media_errors,
        )

    async def _upload_media(self, listing_id: int, draft: ListingDraft) -> list[str]:
        errors = []
        for file in list(draft.new_files):
            try:
                prepared = await self._compress(file)
                if prepared.kind == "video":
                    await self._listings.upload_video(listing_id, prepared)
                else:
                    await self._listings.upload_images(listing_id, [prepared])
            except Exception as exc:
                reason = error_message(exc, str(exc) or "upload error")
                message = f"Failed to upload {file.filename}: {reason}"
                logger.warning(
                    "media_upload_failed",
                    listing_id=listing_id,
                    filename=file.filename,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                self._notifier.error(message)
                errors.append(message)
                continue
            draft.new_files.remove(file)
        return errors

    async def _delete_removed_media(self, listing_id: int, draft: ListingDraft) -> list[str]:
        errors = []
        targets = [
            (draft.pending_delete_urls, self._listings.delete_image, "image"),
            (draft.pending_delete_video_urls, self._listings.delete_video, "video"),
        ]
        for pending, delete, kind in targets:
            for url in list(pending):
                path = normalize_media_path(url)
                try:
                    await delete(listing_id, path)
                except Exception as exc:
                    reason = error_message(exc, "delete error")
                    message = f"Failed to delete {kind} {path}: {reason}"
                    logger.warning(
                        "media_delete_failed",
                        listing_id=listing_id,
                        path=path,
                        kind=kind,
                        error=str(exc),
                    )
                    self._notifier.error(message)
                    errors.append(message)
                    continue
                pending.remove(url)
        return errors

    def _invalidate(self) -> None:
        for key in self._profile.invalidate_keys:
            self._cache.invalidate(key)
