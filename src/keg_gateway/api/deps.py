"""
keg_gateway.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Encapsulate app.state access patterns (services created in the app lifespan).
"""

from __future__ import annotations

from fastapi import Request

from keg_gateway.archive.gateway import ArchiveGateway
from keg_gateway.archive.statistics import StatisticsAggregator
from keg_gateway.archive.store import ArchiveStore
from keg_gateway.directory.client import DirectoryClient
from keg_gateway.services.authentication import AuthenticationService


def authentication_service(request: Request) -> AuthenticationService:
    return request.app.state.authentication  # type: ignore[attr-defined]


def archive_gateway(request: Request) -> ArchiveGateway:
    return request.app.state.archive  # type: ignore[attr-defined]


def statistics_aggregator(request: Request) -> StatisticsAggregator:
    return request.app.state.statistics  # type: ignore[attr-defined]


def archive_store(request: Request) -> ArchiveStore:
    return request.app.state.store  # type: ignore[attr-defined]


def directory_client(request: Request) -> DirectoryClient:
    return request.app.state.directory  # type: ignore[attr-defined]
