"""Transient user notifications ("toasts").

The editor core never renders anything; it records notifications here and
the surrounding UI drains them. Every notification is also logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import structlog

logger = structlog.get_logger()

NotificationLevel = Literal["success", "error", "info"]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


class Notifier:
    def __init__(self) -> None:
        self.history: list[Notification] = []

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def info(self, message: str) -> None:
        self._push("info", message)

    @property
    def errors(self) -> list[Notification]:
        return [n for n in self.history if n.level == "error"]

    def _push(self, level: NotificationLevel, message: str) -> None:
        self.history.append(Notification(level, message))
        log = logger.warning if level == "error" else logger.info
        log("notification", level=level, message=message)
