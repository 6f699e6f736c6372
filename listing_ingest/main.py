"""
Listing ingest - queue-driven listing scraper and AI normalization service.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from listing_ingest.config import get_settings
from listing_ingest.api.router import api_router
from listing_ingest.utils.logging import (
    configure_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("listing_ingest")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Listing ingest starting up (env=%s)", settings.app_env)

    if settings.app_env == "production" and not settings.internal_api_token:
        logger.warning(
            "INTERNAL_API_TOKEN not set - self-trigger calls will only be "
            "accepted via the cron header."
        )
    if not settings.firecrawl_api_key and settings.generic_scraper_provider == "firecrawl":
        logger.warning("FIRECRAWL_API_KEY not set - generic scraping will fail")

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []

    # Self-trigger continuation drives the queue; the polling worker is a safety net
    if settings.scrape_worker_enabled:
        from listing_ingest.workers.scrape_worker import run_scrape_worker
        worker_tasks.append(asyncio.create_task(run_scrape_worker()))
        logger.info("Scrape worker started")
    else:
        logger.info("Scrape worker disabled (SCRAPE_WORKER_ENABLED=false)")

    yield

    logger.info("Listing ingest shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=10.0)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    from listing_ingest.database import dispose_engine
    from listing_ingest.utils.redis_client import close_redis
    await close_redis()
    await dispose_engine()
    logger.info("Listing ingest shutdown complete")


def _cors_origins(settings) -> list[str]:
    origins = ["http://localhost:3000", "http://localhost:5173"]
    origins.extend(o.strip() for o in settings.allowed_origins.split(",") if o.strip())
    return origins


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_logging(settings.log_level, structured=settings.app_env == "production")

    application = FastAPI(
        title="Listing Ingest",
        description="Property listing scraper and AI normalization pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "X-Internal-Token", "X-Cron", "Accept", "Origin",
        ],
    )

    # Added after CORS so it runs on every request
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
