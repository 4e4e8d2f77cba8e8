"""Read-only HTTP API over the cache search.

Endpoints:
- GET /health     - Health check
- GET /           - Standard caches around home (radius in meters, default 25000)
- GET /unsolved   - Unsolved puzzle caches around home (default 100000)

Nothing here writes to the spreadsheet; syncing is a CLI operation.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from cachesync.client import SyncClient
from cachesync.config import get_settings
from cachesync.exceptions import FetchError
from cachesync.fetcher import GeocachingFetcher
from cachesync.models import Geocache
from cachesync.search import DEFAULT_RADIUS, UNSOLVED_RADIUS

router = APIRouter()


def get_client(request: Request) -> SyncClient:
    """FastAPI dependency returning the client stored in app.state."""
    client: SyncClient = request.app.state.client
    return client


def parse_radius(value: str | None, default: int) -> int:
    """Radius in meters from a query value; anything unusable falls back to default."""
    if value is None:
        return default
    try:
        radius = int(value)
    except ValueError:
        return default
    return radius if radius > 0 else default


@router.get("/health")
def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "cachesync"}


@router.get("/")
def search(
    radius: str | None = Query(None),
    client: SyncClient = Depends(get_client),
) -> list[dict]:
    return _serialize(client.search(parse_radius(radius, DEFAULT_RADIUS)))


@router.get("/unsolved")
def search_unsolved(
    radius: str | None = Query(None),
    client: SyncClient = Depends(get_client),
) -> list[dict]:
    return _serialize(client.search_unsolved(parse_radius(radius, UNSOLVED_RADIUS)))


def _serialize(caches: list[Geocache]) -> list[dict]:
    return [cache.to_dict() for cache in caches]


async def fetch_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Upstream search failures surface as 502."""
    logger.error(f"Search failed for {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


def create_app(client: SyncClient | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        client: Client to serve from. When omitted, one is built from settings
            at startup and its fetcher closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if client is not None:
            app.state.client = client
            yield
            return

        settings = get_settings()
        fetcher = GeocachingFetcher(
            settings.geocaching_username,
            settings.geocaching_password,
            base_url=settings.geocaching_api_url,
        )
        app.state.client = SyncClient.from_settings(settings, fetcher)
        logger.info(f"Starting cachesync API on port {settings.port}")
        try:
            yield
        finally:
            fetcher.close()
            logger.info("Shutting down cachesync API")

    app = FastAPI(
        title="cachesync",
        description="Read-only geocache search",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(FetchError, fetch_error_handler)
    app.include_router(router)

    if client is not None:
        app.state.client = client
    return app

