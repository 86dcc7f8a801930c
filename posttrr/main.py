"""
POSTTRR API - Real-estate marketplace back office.

FastAPI application serving admin broadcast notifications, the member
inbox, listing moderation and image watermarking.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from posttrr.config import settings, validate_security_settings
from posttrr.database import AsyncSessionLocal, init_db
from posttrr.logging_config import setup_logging
from posttrr.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from posttrr.routers.auth import router as auth_router
from posttrr.routers.inbox import router as inbox_router
from posttrr.routers.notifications import router as notifications_router
from posttrr.routers.properties import admin_router as properties_admin_router
from posttrr.routers.properties import router as properties_router
from posttrr.routers.watermark import router as watermark_router
from posttrr.services.scheduler import ScheduledDispatchWorker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    setup_logging()
    validate_security_settings()
    await init_db()

    worker = None
    if settings.scheduler_enabled:
        worker = ScheduledDispatchWorker(AsyncSessionLocal, settings.scheduler_poll_seconds)
        worker.start()
    app.state.scheduler = worker
    logger.info("POSTTRR API started (%s)", settings.environment)

    yield

    if worker is not None:
        await worker.stop()


app = FastAPI(
    title="POSTTRR API",
    description="Notifications, moderation and watermarking for the POSTTRR property marketplace",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(inbox_router)
app.include_router(properties_router)
app.include_router(properties_admin_router)
app.include_router(notifications_router)
app.include_router(watermark_router)

# Uploaded watermark logos are served from here
Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


# --- Middleware ---


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add a unique request ID to each request."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception Handlers ---


def _error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "code": code,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Flatten ``{"error": {"code", "message"}}`` details into the envelope."""
    detail = exc.detail
    if isinstance(detail, dict) and isinstance(detail.get("error"), dict):
        code = detail["error"].get("code", "ERROR")
        message = detail["error"].get("message", "Request failed")
    else:
        code = "NOT_FOUND" if exc.status_code == status.HTTP_404_NOT_FOUND else "ERROR"
        message = str(detail)
    return _error_response(request, exc.status_code, code, message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first field error as a 400."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = [str(part) for part in first_error.get("loc", []) if part != "body"]
        field = ".".join(loc)
        msg = first_error.get("msg", "Validation error")
        message = f"{field}: {msg}" if field else msg
    else:
        message = "Validation error"

    return _error_response(request, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log uncaught exceptions; the client only sees a generic message."""
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


# --- Health Check ---


@app.get("/api/v1/health", tags=["System"])
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns 200 OK if the API is running.
    """
    return {"status": "healthy"}
