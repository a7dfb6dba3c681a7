"""
keg_gateway.api.routers.info

Server information endpoint.

Responsibilities:
- Report the running version, start time and whether this is a development instance.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from keg_gateway import __version__

router = APIRouter(prefix="/v1", tags=["info"])


class ServerInfo(BaseModel):
    start: datetime
    version: str
    debug: bool


@router.get("/info", response_model=ServerInfo)
async def info(request: Request) -> ServerInfo:
    state = request.app.state
    return ServerInfo(
        start=state.started_at,
        version=f"keg-gateway/{__version__}",
        debug=state.settings.env == "dev",
    )
