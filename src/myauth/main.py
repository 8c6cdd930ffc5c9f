"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, the revocation
ledger, its janitor, pending emails). Middleware, CORS, exception
handlers, and routers all registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from myauth import __version__
from myauth.api import api_router
from myauth.api.errors import register_exception_handlers
from myauth.auth import dependencies
from myauth.auth.ledger import build_ledger
from myauth.config import settings
from myauth.db.redis import close_redis, init_redis
from myauth.services.ledger_janitor import LedgerJanitor

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is only needed for the shared ledger and rate limits;
    without it the app still serves a single instance.
    """
    logger.info(
        "myauth.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    redis = None
    if settings.ledger_backend == "redis":
        try:
            redis = await init_redis()
            logger.info("myauth.redis_connected", url=settings.redis_url)
        except Exception as e:
            logger.warning("myauth.redis_unavailable", error=str(e))

    ledger = build_ledger(settings.ledger_backend, redis)
    dependencies.set_ledger(ledger)

    janitor = LedgerJanitor(ledger, poll_interval=settings.ledger_purge_interval_seconds)
    janitor_task = asyncio.create_task(janitor.run_loop())

    yield

    # Shutdown
    logger.info("myauth.shutdown")

    janitor.stop()
    janitor_task.cancel()
    try:
        await janitor_task
    except asyncio.CancelledError:
        pass

    # Let queued verification/reset emails finish
    await dependencies.get_mailer().drain()

    await close_redis()

    # Close database engine
    from myauth.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="MyAuth",
        description="User authentication — registration, email verification, sessions, password reset",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from myauth.middleware.rate_limit import RateLimitMiddleware
    from myauth.middleware.request_id import RequestIdMiddleware
    from myauth.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Mount API routes
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: myauth.main:app)
app = create_app()
