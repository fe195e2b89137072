"""
Language School Enrollment API - Main Application Entry Point

Reservation and payment backend for a language school:
- Capacity-1 weekly slots held with timeslot row locks
- Idempotent payment reconciliation from processor webhooks
- Background sweeper returning abandoned holds to availability
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from enrollment.core.config import get_settings
from enrollment.core.exceptions import register_exception_handlers
from enrollment.core.logging import setup_logging, get_logger
from enrollment.core.metrics import metrics_endpoint
from enrollment.api.deps import close_payment_processor
from enrollment.api.router import api_router
from enrollment.api.middleware import RequestLoggingMiddleware
from enrollment.db.session import AsyncSessionLocal
from enrollment.services.cache_service import get_redis, close_redis, get_cache_stats
from enrollment.services.expiry_sweeper import ExpirySweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without payment markers")

    sweeper_task = None
    if settings.SWEEPER_ENABLED:
        sweeper = ExpirySweeper(AsyncSessionLocal, interval_seconds=settings.SWEEPER_INTERVAL_SECONDS)
        sweeper_task = asyncio.create_task(sweeper.run_forever())
    else:
        logger.warning("sweeper_disabled")

    yield

    # Cleanup
    if sweeper_task:
        sweeper_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper_task
    await close_payment_processor()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Slot reservation and payment reconciliation API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "sweeper_enabled": settings.SWEEPER_ENABLED,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
