import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import appointments, availability, notifications, payments, schedules, services
from app.core.config import settings, _ENV_FILE
from app.core.db import async_session_maker
from app.services.change_feed import AppointmentFeed
from app.services.errors import AppointmentError, ConflictError
from app.services.lifecycle_sweep import run_lifecycle_sweep
from app.services.notifier import EmailSmsNotifier
from app.services.payment_gateway import HttpCaptureHook

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_lifecycle_sweep(feed: AppointmentFeed) -> None:
    """Expire unanswered requests and complete finished appointments."""
    try:
        notifier = EmailSmsNotifier(async_session_maker)
        await run_lifecycle_sweep(async_session_maker, notifier, feed, HttpCaptureHook())
    except Exception as e:
        logger.exception("Lifecycle sweep failed: %s", e)


async def _sweep_loop(feed: AppointmentFeed) -> None:
    while True:
        await asyncio.sleep(settings.lifecycle_sweep_interval_seconds)
        await _run_lifecycle_sweep(feed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    feed = AppointmentFeed(async_session_maker)
    app.state.appointment_feed = feed
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    if not settings.email_enabled:
        logger.warning("Email: NOT configured. Set SMTP_HOST, SMTP_USER, SMTP_PASSWORD and FROM_EMAIL in %s", _ENV_FILE)
    if not settings.sms_enabled:
        logger.warning("SMS: NOT configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER")
    if not settings.lifecycle_sweep_enabled:
        logger.info("Lifecycle sweep disabled")
        yield
        return
    logger.info("Lifecycle sweep every %d seconds", settings.lifecycle_sweep_interval_seconds)
    # Startup: run once, then on the interval
    await _run_lifecycle_sweep(feed)
    task = asyncio.create_task(_sweep_loop(feed))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="BraidsNow Booking API",
    description="Appointment lifecycle, availability and live appointment views for stylists and clients",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Webhook-Secret"],
)

app.include_router(appointments.router, prefix="/api/v1")
app.include_router(availability.router, prefix="/api/v1")
app.include_router(schedules.router, prefix="/api/v1")
app.include_router(services.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Webhook-Secret",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(AppointmentError)
async def appointment_error_handler(request: Request, exc: AppointmentError) -> JSONResponse:
    """Typed engine failures: 400/403/404/409/503 with the detail (and conflict reasons)."""
    content: dict = {"detail": exc.detail, "error": type(exc).__name__}
    if isinstance(exc, ConflictError):
        content["reasons"] = exc.reasons
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    detail = f"{type(exc).__name__}: {str(exc)}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
