"""ServSwap — FastAPI application entry point."""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.auth import router as auth_router
from app.api.v1.billing import router as billing_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.services import router as services_router
from app.api.v1.swaps import router as swaps_router
from app.api.v1.webhooks import router as webhooks_router
from app.config import settings

# Configure root logger so all app.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting %s (%s)", settings.app_name, settings.environment)
    yield
    # Shutdown — dispose engine connections
    from app.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Service bartering marketplace: listings, two-party swaps, and Stripe subscriptions.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures server-side and return a generic 500."""
    error_id = uuid.uuid4().hex[:8]
    logger.error(
        "[ERROR_ID: %s] Unhandled exception on %s %s",
        error_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    content = {"detail": "Internal server error", "error_id": error_id}
    if settings.debug:
        content["type"] = type(exc).__name__
    return JSONResponse(status_code=500, content=content)


# Routers
app.include_router(auth_router)
app.include_router(services_router)
app.include_router(swaps_router)
app.include_router(notifications_router)
app.include_router(billing_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
