from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .core.security import FixedWindowRateLimiter
from .db.migrate import apply_migrations
from .db.store import RateStore
from .core import errors
from .routers import health, rates
from .services.ingestion import IngestionCoordinator
from .services.query import RatesFacade
from .services.scheduler import IngestionScheduler
from .services.upstream import FrankfurterClient, SnapshotSource

logger = logging.getLogger("ratekeeper")


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler: IngestionScheduler = app.state.scheduler
    if app.state.settings.scheduler_enabled:
        await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


def create_app(
    settings_override: Settings | None = None,
    upstream_override: SnapshotSource | None = None,
) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    upstream_override: replaces the Frankfurter client (tests, smoke scripts).
    """
    settings = settings_override or get_settings()
    settings.init_post_load()
    # Initialize logging early
    init_logging(debug=settings.debug)

    # Ensure database schema (idempotent) so test-injected fresh DBs have tables
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        # Failing to init DB is fatal; re-raise after logging
        logger.exception("failed to apply migrations on startup")
        raise

    # One store handle shared by ingestion, queries and the scheduler
    store = RateStore(settings.db_path)  # type: ignore[arg-type]
    upstream = upstream_override or FrankfurterClient(
        str(settings.upstream_base_url),
        timeout=settings.http_timeout_seconds,
        max_attempts=settings.upstream_max_attempts,
        backoff=settings.upstream_backoff_seconds,
    )
    coordinator = IngestionCoordinator(store, upstream, targets=settings.default_targets)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.facade = RatesFacade(store, coordinator)
    app.state.scheduler = IngestionScheduler(
        coordinator,
        interval_seconds=settings.scheduler_interval_seconds,
        base=settings.default_base,
    )
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window_seconds
    )

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, errors.http_exception_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(errors.NotFound, errors.not_found_handler)
    app.add_exception_handler(errors.UpstreamUnavailable, errors.upstream_unavailable_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(rates.router)

    if not settings.api_key:
        logger.warning("API_KEY is not set; all /rates requests will be refused")

    return app
