"""Main FastAPI application"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from datetime import datetime, timezone
from pathlib import Path
import logging
import traceback
import time
import uuid

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

from keepintouch.config import settings
from keepintouch.core.database import init_db, SessionLocal
from keepintouch.core.exceptions import BaseAPIException, ErrorKind
from keepintouch.schemas.response import ErrorResponse
from keepintouch.api.v1 import auth, users, admin
from keepintouch.services.password_reset_service import password_reset_service
from keepintouch.services.refresh_token_service import refresh_token_service
from keepintouch.services.token_cleanup_worker import token_cleanup_worker

# Configure logging - ensure log directory exists
_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "keepintouch_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "keepintouch_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
ACTIVE_REFRESH_TOKENS = Gauge("keepintouch_active_refresh_tokens", "Non-revoked, unexpired refresh tokens")
ACTIVE_RESET_TOKENS = Gauge("keepintouch_active_password_reset_tokens", "Unused, unexpired password reset tokens")
CLEANUP_WORKER_UP = Gauge("keepintouch_token_cleanup_worker_up", "Cleanup worker liveness (1 running, 0 stopped)")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip compression for large responses
app.add_middleware(GZipMiddleware, minimum_size=500)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _route_label(request: Request) -> str:
    # Templated path keeps metric cardinality bounded (/sessions/{token_id})
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


# Security headers + request timing middleware
@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Add security headers and log slow requests"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Request-ID"] = request_id

    path = _route_label(request)
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(duration)

    if duration > 1.0:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method,
            request.url.path,
            duration,
            request_id,
        )

    return response


def _error_body(request: Request, status_code: int, kind: ErrorKind, message: str, details=None) -> dict:
    return ErrorResponse(
        status=status_code,
        error=kind.value,
        message=message,
        details=details or None,
        path=request.url.path,
    ).model_dump(exclude_none=True)


# Exception handlers
_LOG_LEVEL_BY_KIND = {
    ErrorKind.VALIDATION: logging.WARNING,
    ErrorKind.CONFLICT: logging.WARNING,
    ErrorKind.NOT_FOUND: logging.WARNING,
    ErrorKind.AUTHENTICATION: logging.INFO,
    ErrorKind.AUTHORIZATION: logging.INFO,
    ErrorKind.INTERNAL: logging.ERROR,
}


def _internal_error_response(request: Request, exc: Exception, message: str) -> JSONResponse:
    body = _error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.INTERNAL, message)
    if settings.ENVIRONMENT == "development":
        body["stack"] = traceback.format_exception(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Render typed API errors by their kind"""
    logger.log(
        _LOG_LEVEL_BY_KIND[exc.kind],
        "API Exception: %s (%s %s %s)",
        exc.message,
        exc.status_code,
        request.method,
        request.url.path,
    )

    if exc.kind is ErrorKind.INTERNAL:
        if settings.is_production:
            return _internal_error_response(request, exc, "An unexpected error occurred. Please try again later.")
        return _internal_error_response(request, exc, exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.kind, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            request,
            status.HTTP_400_BAD_REQUEST,
            ErrorKind.VALIDATION,
            "Validation failed",
            {"errors": errors},
        ),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors"""
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _internal_error_response(request, exc, "A database error occurred. Please try again later.")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.critical("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _internal_error_response(request, exc, "Something went wrong!")


def _ensure_admin_user() -> None:
    from keepintouch.schemas.user import UserCreate, UserRole
    from keepintouch.services.user_service import user_service

    db = SessionLocal()
    try:
        admin_user = user_service.get_user_by_username(db, settings.ADMIN_USERNAME)
        if not admin_user:
            user_service.create_user(
                db,
                UserCreate(
                    username=settings.ADMIN_USERNAME,
                    name="Administrator",
                    email=settings.ADMIN_EMAIL,
                    password=settings.ADMIN_PASSWORD,
                    role=UserRole.ADMIN
                )
            )
            logger.info("Created admin user: %s", settings.ADMIN_USERNAME)
    finally:
        db.close()


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    settings.validate_security_settings()
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    logger.info("Environment: %s", settings.ENVIRONMENT)

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        raise

    # Create admin user if doesn't exist
    try:
        _ensure_admin_user()
    except Exception as e:
        logger.error("Failed to create admin user: %s", e)

    if settings.RUN_TOKEN_CLEANUP:
        token_cleanup_worker.start()
        CLEANUP_WORKER_UP.set(1)


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    if token_cleanup_worker.is_running():
        token_cleanup_worker.stop()
    CLEANUP_WORKER_UP.set(0)
    logger.info("Shutting down %s", settings.APP_NAME)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    db_ok = True
    db_error = None
    refresh_stats = {}
    reset_stats = {}
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        refresh_stats = refresh_token_service.get_token_stats(db)
        reset_stats = password_reset_service.get_token_stats(db)
    except Exception as exc:
        db_ok = False
        db_error = str(exc)
    finally:
        db.close()

    ACTIVE_REFRESH_TOKENS.set(refresh_stats.get("active", 0))
    ACTIVE_RESET_TOKENS.set(reset_stats.get("active", 0))
    worker_status = token_cleanup_worker.status()
    CLEANUP_WORKER_UP.set(1 if worker_status["running"] else 0)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": _timestamp(),
        "readiness": {
            "database": {"ok": db_ok, "error": db_error},
            "token_cleanup": worker_status,
        },
        "tokens": {
            "refresh_tokens": refresh_stats,
            "password_reset_tokens": reset_stats,
        },
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


# Include routers
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "keepintouch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
