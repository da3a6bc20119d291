"""Marketplace HTTP client — httpx transport, bearer auth, refresh, error mapping.

Every remote failure surfaces as ``ApiError``. A 401 triggers one token
refresh (single-flight across concurrent requests) and one retry; a failed
refresh logs the session out.
"""

from __future__ import annotations

import asyncio
import json as jsonlib
from typing import Any

import httpx
import structlog

from autolist.config import settings
from autolist.errors import ApiError
from autolist.session import Session

logger = structlog.get_logger()

REFRESH_PATH = "/api/v1/auth/refresh"

_STATUS_CODES: dict[int, str] = {
    401: "SESSION_EXPIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    429: "RATE_LIMITED",
}

_MESSAGE_LANGS = ("ru", "en", "tk")


def extract_message(body: Any) -> str | None:
    """Pull a human message out of an error body.

    The server sends either ``{"message": "..."}`` or a localized object
    ``{"message": {"ru": ..., "en": ..., "tk": ...}}``.
    """
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if isinstance(message, str):
        return message or None
    if isinstance(message, dict):
        for lang in _MESSAGE_LANGS:
            localized = message.get(lang)
            if isinstance(localized, str) and localized:
                return localized
        return jsonlib.dumps(message, ensure_ascii=False) if message else None
    return None


def error_message(exc: BaseException, default: str) -> str:
    """User-facing message for any failure: server text first, else ``default``."""
    if isinstance(exc, ApiError) and exc.message:
        return exc.message
    return default


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ApiClient:
    """Thin async wrapper around ``httpx.AsyncClient`` bound to a ``Session``."""

    def __init__(
        self,
        session: Session,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        files: Any = None,
        skip_auth_refresh: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        token_used = self.session.access_token
        response = await self._send(method, path, params=params, json=json, files=files)

        if response.status_code == 401 and not skip_auth_refresh:
            await self._refresh(token_used)
            response = await self._send(method, path, params=params, json=json, files=files)

        return self._decode(method, path, response)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(
                method,
                path,
                headers=self.session.auth_headers(),
                **{k: v for k, v in kwargs.items() if v is not None},
            )
        except httpx.TimeoutException as exc:
            raise ApiError(
                "TIMEOUT",
                f"Timeout calling {method} {path}",
                retryable=True,
            ) from exc
        except httpx.RequestError as exc:
            raise ApiError(
                "REQUEST_FAILED",
                f"Network error calling {method} {path}: {type(exc).__name__}",
                retryable=True,
            ) from exc

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError as exc:
                if response.status_code < 400:
                    raise ApiError(
                        "PARSE_ERROR",
                        f"Invalid JSON from {method} {path}",
                        response.status_code,
                    ) from exc

        if response.status_code >= 400:
            code = _STATUS_CODES.get(response.status_code, "HTTP_ERROR")
            message = extract_message(body) or f"HTTP {response.status_code}"
            logger.warning(
                "api_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                code=code,
            )
            raise ApiError(
                code,
                message,
                response.status_code,
                retryable=_is_retryable(response.status_code),
            )
        return body

    async def _refresh(self, token_used: str | None) -> None:
        """Refresh the access token once, even when many requests hit 401 together."""
        async with self._refresh_lock:
            if self.session.access_token and self.session.access_token != token_used:
                return  # another request already refreshed

            refresh_token = self.session.refresh_token
            if not refresh_token:
                self.session.logout()
                raise ApiError("SESSION_EXPIRED", "Session expired", 401)

            try:
                data = await self.request(
                    "POST",
                    REFRESH_PATH,
                    json={"refresh_token": refresh_token},
                    skip_auth_refresh=True,
                )
            except ApiError as exc:
                logger.warning("session_refresh_failed", code=exc.code)
                self.session.logout()
                raise ApiError("SESSION_EXPIRED", "Session expired", 401) from exc

            access_token = (data or {}).get("access_token")
            if not access_token:
                self.session.logout()
                raise ApiError("SESSION_EXPIRED", "Refresh response carried no access token", 401)
            self.session.update_tokens(access_token, (data or {}).get("refresh_token"))
