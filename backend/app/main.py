"""
Tour Booking API

Booking, inventory and promotion engine for scheduled tour departures:
- Pending bookings hold seats and may overbook a departure
- Confirmation is gated by a conditional UPDATE on confirmed seats
- Excess pending bookings are auto-rejected once a departure fills
- Best single promotion / coupon discount per booking
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.config import get_settings
from app.core.exceptions import BookingError
from app.core.logging import get_logger, setup_logging
from app.core.metrics import metrics_endpoint
from app.infrastructure.redis_client import close_redis, get_redis, redis_status

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    if await get_redis():
        logger.info("redis_ready", channel=settings.BOOKING_EVENTS_CHANNEL)
    else:
        logger.warning("redis_unavailable", message="Booking events will not be published")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tour booking API with seat inventory, overbooking control and promotions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
app.include_router(api_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Domain errors raised outside the booking services' own result handling."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await redis_status(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()
