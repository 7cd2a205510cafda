import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .cache import RegistrationCache
from .config import FRONTEND_URL, is_production
from .dependencies import get_calendar_client, get_registration_cache
from .domain.calendar.client import GoogleCalendarClient
from .domain.calendar.router import router as calendar_router
from .domain.payments.router import router as payments_router
from .domain.registrations.router import admin_router as admin_registrations_router
from .domain.registrations.router import router as registrations_router
from .storage import is_storage_configured

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)

ALLOWED_ORIGINS = [FRONTEND_URL]
if not is_production():
    ALLOWED_ORIGINS += ["http://localhost:5173", "http://localhost:3000"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if not is_storage_configured():
        logger.warning("⚠️ Object store credentials not set - registrations cannot be stored")
    if not get_registration_cache().cache.enabled:
        logger.info("ℹ️ REDIS_URL not set - dashboard cache disabled")

    yield

    client = get_calendar_client()
    if client is not None:
        await client.aclose()
    logger.info("Application shutting down...")


app = FastAPI(title="New Era Hockey Booking API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ {request.method} {request.url.path} - Error: {str(e)}")
        raise
    if not request.url.path.startswith("/health"):
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "X-Admin-Key"],
)

app.include_router(calendar_router)
app.include_router(registrations_router)
app.include_router(admin_registrations_router)
app.include_router(payments_router)


@app.get("/")
def root():
    return {"message": "New Era Hockey Booking API is running"}


@app.get("/health")
def health(
    cache: RegistrationCache = Depends(get_registration_cache),
    calendar: Optional[GoogleCalendarClient] = Depends(get_calendar_client),
):
    """Liveness plus which backing services are configured"""
    return {
        "status": "healthy",
        "storage": is_storage_configured(),
        "cache": cache.cache.enabled,
        "calendar": calendar is not None,
    }


@app.get("/health/cache")
def cache_health(cache: RegistrationCache = Depends(get_registration_cache)):
    """Redis round trip for monitoring; the cache being down never fails bookings"""
    redis_status = cache.cache.ping()
    if not redis_status["configured"]:
        status = "disabled"
    else:
        status = "healthy" if redis_status["connected"] else "degraded"
    return {"status": status, "redis": redis_status}
