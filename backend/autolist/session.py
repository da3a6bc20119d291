"""Explicit auth session passed to API clients.

Replaces ambient token storage: the session is created on login, handed to
``ApiClient``, updated on refresh and torn down on logout.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

logger = structlog.get_logger()

SessionListener = Callable[["Session"], None]


class Session:
    def __init__(self, access_token: str | None = None, refresh_token: str | None = None) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._listeners: list[SessionListener] = []

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)

    def subscribe(self, listener: SessionListener) -> None:
        """Call ``listener`` after every login, token refresh and logout."""
        self._listeners.append(listener)

    def login(self, access_token: str, refresh_token: str | None = None) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        logger.info("session_login")
        self._notify()

    def update_tokens(self, access_token: str, refresh_token: str | None = None) -> None:
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token
        logger.info("session_tokens_refreshed")
        self._notify()

    def logout(self) -> None:
        self.access_token = None
        self.refresh_token = None
        logger.info("session_logout")
        self._notify()

    def auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
