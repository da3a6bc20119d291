"""Error types shared by the API clients, the editor and the submission pipeline."""

from __future__ import annotations


class ApiError(Exception):
    """A failed call to the marketplace API.

    ``retryable`` follows the transport rule: timeouts, network errors,
    HTTP 429 and 5xx are retryable; other 4xx are not.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        *,
        retryable: bool = False,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class DraftValidationError(Exception):
    """The draft cannot be submitted; ``errors`` maps field name to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))


class SubmissionError(Exception):
    """A fatal pipeline stage failed. The draft is left untouched for retry."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        self.message = message
        super().__init__(message)


class MediaProcessingError(Exception):
    """A media file could not be decoded or re-encoded before upload."""


class QueryCancelledError(Exception):
    """An in-flight cache fetch was cancelled by ``QueryCache.cancel``."""

    def __init__(self, key: tuple) -> None:
        self.key = key
        super().__init__(f"Query cancelled: {key!r}")
