"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The lifespan builds the process's single BackendClient (HTTP
pool + Redis change feed) and parks it on app.state; routes reach it only
through api.deps, never through a module global.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eduverse import __version__
from eduverse.api import api_router
from eduverse.backend.client import BackendClient
from eduverse.config import Settings, settings
from eduverse.log import configure_logging
from eduverse.realtime.feed import RedisChangeFeed

logger = structlog.get_logger()


def build_backend(config: Settings) -> BackendClient:
    feed = RedisChangeFeed.from_url(config.redis_url, prefix=config.change_channel_prefix)
    return BackendClient.from_settings(config, feed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    configure_logging(settings)
    logger.info(
        "eduverse.starting",
        version=__version__,
        environment=settings.environment,
        backend=settings.backend_url,
    )

    backend = build_backend(settings)
    app.state.backend = backend
    app.state.redis = None
    if await backend.feed.ping():
        app.state.redis = backend.feed.redis
        logger.info("eduverse.redis_connected", url=settings.redis_url)
    else:
        # Live counters degrade to one-shot counts without the feed
        logger.warning("eduverse.redis_unavailable", url=settings.redis_url)

    yield

    logger.info("eduverse.shutdown")
    await backend.aclose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="EduVerse Realtime",
        description="Live counters, tenant lookup and authorization for the school dashboard",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from eduverse.middleware.rate_limit import RateLimitMiddleware
    from eduverse.middleware.request_id import RequestIdMiddleware
    from eduverse.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, rpm=settings.rate_limit_rpm)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from eduverse.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: eduverse.main:app)
app = create_app()
