"""
Pastebin - Main FastAPI application.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pastebin.config import settings
from pastebin.database import PasteDatabase
from pastebin.errors import (
    APIError,
    InternalError,
    NotFound,
    PayloadTooLarge,
    ValidationFailed,
)
from pastebin.middleware import BodySizeLimitMiddleware
from pastebin.ratelimit import global_limiter
from pastebin.routes import cleanup, health, pastes

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report every failing field, not just the first."""
    details = []
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        # Drop the "body"/"path"/"query" prefix FastAPI puts on each location
        if len(loc) > 1 and loc[0] in ("body", "path", "query", "header"):
            loc = loc[1:]
        details.append({
            "field": ".".join(str(part) for part in loc),
            "message": error.get("msg", "Invalid value"),
        })
    logger.warning(f"Validation error on {request.method} {request.url.path}: {details}")
    error = ValidationFailed("Invalid request data", details=details)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        error: APIError = NotFound(f"Route {request.method} {request.url.path} not found")
    elif exc.status_code == 413:
        error = PayloadTooLarge(str(exc.detail))
    elif exc.status_code < 500:
        error = ValidationFailed(str(exc.detail))
    else:
        error = InternalError(str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=error.to_dict(),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    error = InternalError("Internal server error" if settings.is_production else str(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(database: Optional[PasteDatabase] = None) -> FastAPI:
    """
    Build the application around a paste store.

    Args:
        database: Store handle to serve from; a Redis-backed one is created
            from settings when omitted. It is opened on startup and closed
            on shutdown.
    """
    db = database or PasteDatabase(settings.REDIS_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Pastebin application starting...")
        db.open()
        # Log database status
        if db.using_fallback:
            logger.warning("⚠️  DATABASE: Using IN-MEMORY storage (Redis not available)")
            logger.warning("   Data will NOT persist across server restarts!")
        else:
            logger.info("✅ DATABASE: Connected to Redis")
        yield
        logger.info("Pastebin application shutting down...")
        db.close()

    app = FastAPI(
        title="Pastebin",
        description="Share text snippets that expire by time or by view count",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.db = db

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_BYTES)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    if not settings.is_production:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            logger.info(f"{request.method} {request.url.path}")
            return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGIN.split(",")],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Health checks are exempt from the global limit
    app.include_router(health.router)
    app.include_router(pastes.router, dependencies=[Depends(global_limiter)])
    app.include_router(cleanup.router, dependencies=[Depends(global_limiter)])

    @app.get("/", dependencies=[Depends(global_limiter)])
    async def root():
        """API index."""
        return {
            "name": "Pastebin API",
            "version": API_VERSION,
            "description": "Fast, secure paste sharing with expiration options",
            "endpoints": {
                "health": "GET /health",
                "healthDb": "GET /health/db",
                "createPaste": "POST /api/pastes",
                "getPaste": "GET /api/pastes/:id",
                "getRawPaste": "GET /api/pastes/:id/raw",
                "cleanup": "GET /api/cleanup",
                "purge": "POST /api/cleanup/purge",
                "stats": "GET /api/cleanup/stats",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pastebin.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
