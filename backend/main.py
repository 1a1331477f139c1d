"""
Storefront API — FastAPI Application

Catalog, cart, checkout and order fulfilment for a single online store,
with admin back office, support inbox, scheduled notifications and
real-time order chat over WebSockets.
"""
import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from database import async_session, init_db
from middleware.rate_limit import RateLimiter, api_rate_limit_middleware
from routes import (
    auth, cart, categories, chat, contact, coupons, dashboard, health, notifications,
    orders, products, realtime, reviews, search, settings as settings_routes, upload, users,
)
from services.async_executor import shutdown_executor
from services.cache_service import CacheService
from services.realtime import RealtimeHub
from services.scheduler import NotificationScheduler

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create DB tables, start the scheduler. Shutdown: stop it."""
    # Ensure data/ directory exists for SQLite
    os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        await app.state.scheduler.start()

    yield  # app runs here

    await app.state.scheduler.stop()
    shutdown_executor()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    description="E-commerce storefront backend: catalog, checkout, orders, admin and real-time chat",
    version="1.0.0",
    lifespan=lifespan,
)

# Per-app singletons, reached through deps.get_* / websocket.app.state
app.state.session_factory = async_session
app.state.cache = CacheService(
    default_ttl=settings.cache_default_ttl_seconds,
    maxsize=settings.cache_max_entries,
)
app.state.realtime = RealtimeHub()
app.state.scheduler = NotificationScheduler(
    async_session, app.state.realtime, interval_seconds=settings.scheduler_interval_seconds
)
app.state.rate_limiter = RateLimiter()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(api_rate_limit_middleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
    return response


# ── Routes ──────────────────────────────────────────────────────────

for module in (
    health, auth, users, products, categories, cart, orders, reviews, coupons,
    contact, settings_routes, dashboard, upload, search, chat, notifications,
):
    app.include_router(module.router)
app.include_router(realtime.router)

# ── Static Files (uploads) ─────────────────────────────────────────

os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


# ── Exception Handlers ─────────────────────────────────────────────

def _error(status_code: int, message: str, code: str, details=None) -> JSONResponse:
    content = {"success": False, "message": message, "code": code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _error_code(exc: Exception) -> str:
    """NotFoundError -> not_found"""
    name = exc.__class__.__name__.removesuffix("Error")
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    # DomainError carries a message and structured details
    if hasattr(exc, "message") and hasattr(exc, "details"):
        return _error(exc.status_code, exc.message, _error_code(exc), exc.details)

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return _error(exc.status_code, message, "http_error", detail if not isinstance(detail, str) else None)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _error(400, "Validation failed", "validation", {"errors": errors})


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        match = re.search(r"(?:unique constraint failed: \w+\.|key \()(\w+)", text)
        field = match.group(1) if match else "value"
        return _error(400, f"A record with this {field} already exists.", "duplicate")
    if "foreign key" in text:
        return _error(400, "Invalid reference. Related record not found.", "invalid_reference")
    logger.error(f"Integrity error on {request.url.path}: {exc}")
    return _error(400, "Database constraint violated.", "integrity")


@app.exception_handler(NoResultFound)
async def no_result_exception_handler(request: Request, exc: NoResultFound):
    return _error(404, "Record not found.", "not_found")


@app.exception_handler(StaleDataError)
async def stale_data_exception_handler(request: Request, exc: StaleDataError):
    return _error(409, "The record was modified concurrently. Please retry.", "conflict")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all for unhandled exceptions.

    Raw exception details reach the client only in development; the full
    traceback is always logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    details = {"error": str(exc)} if settings.is_development else None
    return _error(500, "Internal server error", "internal_server_error", details)


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
