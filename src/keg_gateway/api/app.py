"""
keg_gateway.api.app

FastAPI app factory for the gateway.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Create and dispose shared infrastructure (key material, store HTTP client).
- Render every gateway error as `{"error": code, "detail": message}`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keg_gateway import __version__
from keg_gateway.api.routers.health import router as health_router
from keg_gateway.api.routers.info import router as info_router
from keg_gateway.api.routers.members import router as members_router
from keg_gateway.api.routers.scores import router as scores_router
from keg_gateway.api.routers.session import router as session_router
from keg_gateway.api.routers.statistics import router as statistics_router
from keg_gateway.archive.gateway import ArchiveGateway
from keg_gateway.archive.statistics import StatisticsAggregator
from keg_gateway.archive.store import ArchiveStore
from keg_gateway.auth.keys import KeyMaterial
from keg_gateway.auth.tokens import TokenService
from keg_gateway.directory.client import DirectoryClient
from keg_gateway.errors import GatewayError
from keg_gateway.observability.logging import configure_logging, get_logger
from keg_gateway.observability.middleware import RequestContextMiddleware
from keg_gateway.services.authentication import AuthenticationService
from keg_gateway.settings import Settings

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    keys: KeyMaterial | None = None,
    directory: DirectoryClient | None = None,
    archive_http: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Compose the application.

    `keys`, `directory` and `archive_http` replace the configured infrastructure;
    a passed-in HTTP client is borrowed and not closed on shutdown.
    """

    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        key_material = keys or KeyMaterial.load(
            public_key_path=settings.token.public_key_path,
            private_key_path=settings.token.private_key_path,
        )
        http = archive_http or httpx.AsyncClient(
            base_url=settings.archive.url,
            timeout=settings.archive.timeout_seconds,
            headers={"User-Agent": f"keg-gateway/{__version__}"},
        )

        tokens = TokenService(keys=key_material, settings=settings.token)
        store = ArchiveStore(settings=settings.archive, http=http)
        required_scope = settings.token.required_scope

        directory_client = directory or DirectoryClient(settings=settings.directory)

        app.state.settings = settings
        app.state.started_at = datetime.now(tz=UTC)
        app.state.directory = directory_client
        app.state.tokens = tokens
        app.state.store = store
        app.state.authentication = AuthenticationService(
            directory=directory_client,
            tokens=tokens,
            settings=settings.directory,
        )
        app.state.archive = ArchiveGateway(store=store, required_scope=required_scope)
        app.state.statistics = StatisticsAggregator(store=store, required_scope=required_scope)
        try:
            yield
        finally:
            if archive_http is None:
                await http.aclose()
            log.info("shutdown")

    app = FastAPI(
        title="KEG Gateway",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(session_router)
    app.include_router(scores_router)
    app.include_router(statistics_router)
    app.include_router(members_router)
    app.include_router(info_router)

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        log.info("request_rejected", error=exc.code, status=exc.status_code)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": exc.message},
            headers=headers,
        )

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; business logic stays in the services, directory
# and archive layers.
