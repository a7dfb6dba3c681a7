"""
keg_gateway.archive.store

HTTP client boundary for the partitioned document store.

Responsibilities:
- Hold the store session (cookie auth via `/_session`) on a shared httpx client.
- Re-authenticate once when the session has expired, then retry the request.
- Translate store statuses and transport failures into archive errors.
"""

from __future__ import annotations

from typing import Any

import httpx

from keg_gateway.errors import (
    ArchiveError,
    ArchiveForbiddenError,
    ArchiveUnavailableError,
    DocumentNotFoundError,
    InvalidDocumentError,
    RevisionConflictError,
)
from keg_gateway.observability.logging import get_logger
from keg_gateway.settings import ArchiveSettings

log = get_logger(__name__)


class ArchiveStore:
    """
    Thin session-aware wrapper around the store's HTTP API.

    The httpx client is owned by the application (created at startup, closed at
    shutdown); this class only borrows it.
    """

    def __init__(self, *, settings: ArchiveSettings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http

    @property
    def settings(self) -> ArchiveSettings:
        return self._settings

    async def authenticate(self) -> None:
        """Open a store session; the session cookie is kept by the httpx client."""
        response = await self._send(
            "POST",
            self._settings.endpoints.authentication,
            data={"name": self._settings.username, "password": self._settings.password},
        )
        if response.status_code in (401, 403):
            log.warning("archive_session_rejected", status=response.status_code)
            raise ArchiveForbiddenError("document store rejected the gateway credentials")
        if not response.is_success:
            raise error_for(response)
        log.info("archive_session_opened")

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        response = await self._send(method, path, params=params, json=json)
        if response.status_code == 401:
            # Session expired or never opened: one re-authentication, one retry.
            log.info("archive_session_expired", method=method, path=path)
            await self.authenticate()
            response = await self._send(method, path, params=params, json=json)
            if response.status_code == 401:
                raise ArchiveForbiddenError("document store session rejected after re-authentication")

        if not response.is_success:
            raise error_for(response)
        try:
            return response.json()
        except ValueError as e:
            raise ArchiveUnavailableError("document store returned an undecodable body") from e

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("archive_timeout", method=method, path=path)
            raise ArchiveUnavailableError("document store timed out") from e
        except httpx.HTTPError as e:
            log.warning("archive_unreachable", method=method, path=path, error=str(e))
            raise ArchiveUnavailableError(f"document store unreachable: {e}") from e


def error_for(response: httpx.Response) -> ArchiveError:
    status = response.status_code
    message = _reason(response)
    log.info("archive_request_failed", status=status, reason=message)

    if status == 404:
        return DocumentNotFoundError(message)
    if status == 409:
        return RevisionConflictError(message)
    if status in (401, 403):
        return ArchiveForbiddenError(message)
    if status in (400, 422):
        return InvalidDocumentError(message)
    return ArchiveUnavailableError(message)


def _reason(response: httpx.Response) -> str:
    # Store errors are {"error": "...", "reason": "..."}.
    try:
        body = response.json()
    except ValueError:
        return f"document store answered {response.status_code}"
    if isinstance(body, dict):
        reason = body.get("reason") or body.get("error")
        if reason:
            return str(reason)
    return f"document store answered {response.status_code}"
