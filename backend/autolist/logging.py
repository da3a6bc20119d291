"""structlog setup and the per-editor log context.

Several editors can be open at once (one per tab or listing). Everything an
editor logs, including from the load tasks it spawns, carries its id, mode
and profile through structlog contextvars.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO

import structlog

from autolist.config import settings

_LOG_LEVEL_MAP: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _open_log_file(path: str) -> IO[str] | None:
    try:
        return open(path, "a")  # noqa: SIM115
    except OSError as exc:
        # structlog is not configured yet at this point
        print(f"WARNING: Could not open log file {path!r}: {exc}. Using stdout.", file=sys.stderr)
        return None


def configure_logging() -> None:
    """Console renderer in development, JSON lines elsewhere.

    LOG_LEVEL sets the filtering level; when LOG_FILE is set and writable,
    entries go there instead of stdout.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    level = _LOG_LEVEL_MAP.get(settings.log_level.upper(), logging.INFO)
    log_file = _open_log_file(settings.log_file) if settings.log_file else None

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=log_file),
        cache_logger_on_first_use=True,
    )


@contextmanager
def editor_log_context(editor_id: str, mode: str, profile: str) -> Iterator[None]:
    """Bind editor identity for the duration of one editor operation.

    Tasks created inside the block copy the context, so their entries are
    tagged too. Previous bindings are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(
        editor_id=editor_id,
        editor_mode=mode,
        editor_profile=profile,
    ):
        yield
