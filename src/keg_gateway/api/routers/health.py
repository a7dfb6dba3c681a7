"""
keg_gateway.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`) by opening a document store session.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from keg_gateway.api.deps import archive_store
from keg_gateway.archive.store import ArchiveStore

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    # Liveness: process is up and serving HTTP.
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(store: ArchiveStore = Depends(archive_store)) -> dict[str, str]:
    # Readiness: the store accepts the gateway's credentials. Failures render as 502/503.
    await store.authenticate()
    return {"status": "ready"}


# --- Module Notes -----------------------------------------------------------
# The directory is not probed: a bind needs member credentials.
