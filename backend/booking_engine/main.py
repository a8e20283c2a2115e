"""
Tour Booking Engine - application entry point.

Booking lifecycle and payment reconciliation for a tour catalog:
- Per-departure seat ledger with optimistic locking (no overbooking)
- Booking state machine with guarded, versioned transitions
- Direct and redirect (gateway) payments with signed provider callbacks
- Redis-cached availability, structured logging, Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.core.logging import setup_logging, get_logger
from booking_engine.core.metrics import metrics_endpoint
from booking_engine.api.errors import register_exception_handlers
from booking_engine.api.router import api_router
from booking_engine.api.middleware import RequestLoggingMiddleware
from booking_engine.db.session import get_db
from booking_engine.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        payment_gateway=settings.PAYMENT_GATEWAY,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Availability served without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tour booking lifecycle and payment reconciliation",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus database and cache reachability."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        get_logger(__name__).error("health_database_error", error=str(e))
        database = "error"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": database,
        "cache": await get_cache_stats(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()
