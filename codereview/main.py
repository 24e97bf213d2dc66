"""
main.py — CodeReview FastAPI application entry point.

Start with: uvicorn codereview.main:app --reload --port 8000
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mistralai import Mistral
from starlette.exceptions import HTTPException as StarletteHTTPException

from codereview.cache import create_store
from codereview.config import settings
from codereview.errors import CodeReviewError, StoreUnavailable
from codereview.review.llm_service import MistralGateway
from codereview.review.review_cache import ReviewCache
from codereview.review.routes import router as code_review_router
from codereview.review.service import ReviewService
from codereview.review.session import ContextSession

# ---------------------------------------------------------------------------
# Logging — configured before anything else
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan — startup & shutdown hooks
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      1. Cache store (REST or socket) — unreachable store is logged, not fatal
      2. Mistral client — singleton for HTTP connection pool reuse
      3. Analysis semaphore — MUST be created inside async context (not module level)
      4. ReviewService wired from the above
    Shutdown:
      1. Close the store client
    """
    # --- 1. Cache store ---
    app.state.store = await create_store(settings)

    # --- 2. Mistral client ---
    app.state.mistral = Mistral(api_key=settings.mistral_api_key)
    logger.info("Mistral client initialized model=%s", settings.mistral_model)

    # --- 3. Semaphore ---
    semaphore = asyncio.Semaphore(settings.analysis_concurrency)
    logger.info("Analysis semaphore initialized (concurrency=%d)", settings.analysis_concurrency)

    # --- 4. Services ---
    app.state.review_service = ReviewService(
        sessions=ContextSession(app.state.store),
        cache=ReviewCache(app.state.store),
        gateway=MistralGateway(app.state.mistral, semaphore, settings.mistral_model),
        default_timeout=settings.analysis_timeout_seconds,
    )

    logger.info("CodeReview v%s starting up", settings.app_version)
    yield

    # --- Shutdown ---
    await app.state.store.aclose()
    logger.info("Cache store connection closed")
    logger.info("CodeReview shutting down")


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="CodeReview API",
    version=settings.app_version,
    description=(
        "AI code review assistant. Upload a codebase once, then submit changes "
        "and receive a structured review grounded in the whole project."
    ),
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ---------------------------------------------------------------------------
# CORS middleware — restricted to frontend origins from settings
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------
def _make_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build a standard {error: {code, message, details}} response."""
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details or [],
        }
    }
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Global exception handlers — registered BEFORE routers
# ---------------------------------------------------------------------------
@app.exception_handler(CodeReviewError)
async def code_review_error_handler(
    request: Request, exc: CodeReviewError
) -> JSONResponse:
    """
    Maps the typed error taxonomy (errors.py) to the standard envelope.
    Server-side failures are logged; client errors (4xx) are not.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message
        )
    return _make_error_response(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Converts Pydantic / FastAPI 422 validation errors to standard format.
    Returns ALL field violations in one response.
    """
    details = []
    for error in exc.errors():
        # Build dot-notation field path, excluding the top-level 'body' loc
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        details.append({"field": field or None, "issue": error["msg"]})
    return _make_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=details,
        status_code=422,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """
    Converts FastAPI HTTPException to standard error format with semantic code.
    """
    code_map = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        413: "FILE_TOO_LARGE",
        422: "VALIDATION_ERROR",
    }
    code = code_map.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _make_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all for unexpected errors.
    DEBUG=true  → includes exception type & message in details (dev only).
    DEBUG=false → generic message; full traceback logged server-side only.
    """
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=True,
    )
    if settings.debug:
        details = [{"issue": f"{type(exc).__name__}: {exc}"}]
        message = "An unexpected error occurred (debug details included)"
    else:
        details = []
        message = "An unexpected error occurred"
    return _make_error_response(
        code="INTERNAL_ERROR",
        message=message,
        details=details,
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Health endpoint (no auth required)
# ---------------------------------------------------------------------------
@app.get("/api/health", tags=["System"])
async def health_check(request: Request) -> dict:
    """
    Returns service health status. The cache store being down degrades
    the service (no sessions, uncached reviews) but does not fail the check.
    """
    store_status = "unconfigured"
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            await store.ping()
            store_status = "ok"
        except StoreUnavailable:
            store_status = "unavailable"
    return {
        "status": "ok",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": store_status,
    }


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(code_review_router)
