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
from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

from voice_control.config import settings
from voice_control.core.database import init_db, SessionLocal
from voice_control.core.exceptions import BaseAPIException
from voice_control.core.security import decode_token
from voice_control.api.v1 import auth, users
from voice_control.services.rate_limiter import InMemoryRateLimiter, client_ip
from voice_control.services.token_registry import RefreshTokenRegistry
from voice_control.services.token_service import TokenService
from voice_control.services.user_service import user_service

# Configure logging - ensure log directory exists
_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "voiceagent_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "voiceagent_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
REFRESH_TOKENS_GAUGE = Gauge("voiceagent_refresh_tokens_registered", "Refresh tokens currently honoured")
SWEEPER_UP_GAUGE = Gauge("voiceagent_token_sweeper_up", "Refresh token sweeper liveness (1 running, 0 stopped)")


def _error_body(message: str, code: Optional[str] = None) -> dict:
    body = {"error": message}
    if code:
        body["code"] = code
    return body


def _route_label(request: Request) -> str:
    # Templated path keeps usernames out of metric labels.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def register_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_headers_and_timing(request: Request, call_next):
        """Per-IP rate limit, security headers, request id and timing"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        limiter: InMemoryRateLimiter = request.app.state.rate_limiter
        ip_key = f"global:{client_ip(request)}"
        start = time.time()
        if limiter.allow(ip_key, settings.RATE_LIMIT_PER_WINDOW, settings.RATE_LIMIT_WINDOW_SECONDS):
            response = await call_next(request)
        else:
            logger.warning("Rate limit exceeded for %s request_id=%s", client_ip(request), request_id)
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many requests",
                    "message": "Rate limit exceeded. Please try again later.",
                    "retryAfter": limiter.retry_after(ip_key, settings.RATE_LIMIT_WINDOW_SECONDS),
                },
            )
        duration = time.time() - start

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
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

    # Added last so they wrap the middleware above: rate-limited responses
    # still carry CORS headers.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Map API exceptions onto the {error, code?} envelope"""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"API Exception: {exc.message}",
            extra={
                "status_code": exc.status_code,
                "code": exc.code,
                "path": request.url.path,
                "method": request.method
            }
        )

        body = _error_body(exc.message, exc.code)
        body.update(exc.details)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report the first failing field, as {error, message, field}"""
        errors = exc.errors()
        first = errors[0] if errors else {"loc": (), "msg": "Invalid request"}
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "path", "query")]
        in_path = bool(first.get("loc")) and first["loc"][0] == "path"

        logger.warning(
            f"Validation error: {errors}",
            extra={"path": request.url.path, "method": request.method}
        )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid parameter" if in_path else "Validation error",
                "message": first.get("msg", "Invalid request"),
                "field": ".".join(loc),
            }
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle database errors"""
        logger.error(
            f"Database error: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("A database error occurred. Please try again later.")
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions"""
        logger.critical(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("An unexpected error occurred.")
        )


def register_lifecycle(app: FastAPI) -> None:
    @app.on_event("startup")
    async def startup_event():
        """Initialize application on startup"""
        settings.validate_security_settings()
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        # Without a database there is nothing to serve: let startup fail.
        try:
            init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        # Create admin user if doesn't exist
        db = SessionLocal()
        try:
            admin = user_service.ensure_admin(
                db, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD, settings.ADMIN_EMAIL
            )
            if admin:
                logger.info(f"Created admin user: {settings.ADMIN_USERNAME}")
        except Exception as e:
            logger.error(f"Failed to create admin user: {e}")
        finally:
            db.close()

        if settings.RUN_TOKEN_SWEEPER:
            app.state.token_registry.start()
            SWEEPER_UP_GAUGE.set(1)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        registry = app.state.token_registry
        if registry.is_running():
            registry.stop()
        SWEEPER_UP_GAUGE.set(0)
        logger.info(f"Shutting down {settings.APP_NAME}")


def register_system_routes(app: FastAPI) -> None:
    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        db_ok = True
        db_error = None
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        except Exception as exc:
            db_ok = False
            db_error = str(exc)
        finally:
            db.close()

        registry_status = request.app.state.token_registry.status()
        REFRESH_TOKENS_GAUGE.set(registry_status["registered"])

        return {
            "status": "OK" if db_ok else "degraded",
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "readiness": {
                "database": {"ok": db_ok, "error": db_error},
                "tokenRegistry": registry_status,
                "rateLimiter": {"trackedKeys": len(request.app.state.rate_limiter)},
            },
        }

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        REFRESH_TOKENS_GAUGE.set(len(request.app.state.token_registry))
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/api/docs" if settings.DEBUG else "disabled"
        }


def create_app() -> FastAPI:
    """
    Build the application with its own token registry, token service and
    rate limiter. These live for the life of the process and are reached
    by request dependencies through app.state.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None
    )

    registry = RefreshTokenRegistry(
        verify=decode_token,
        sweep_interval_seconds=settings.TOKEN_SWEEP_INTERVAL_SECONDS,
    )
    app.state.token_registry = registry
    app.state.token_service = TokenService(registry)
    app.state.rate_limiter = InMemoryRateLimiter()

    register_middleware(app)
    register_exception_handlers(app)
    register_lifecycle(app)
    register_system_routes(app)

    # Include routers
    app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "voice_control.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        # One process: the refresh token registry is in-memory.
        workers=1
    )
