"""ASGI application. Serve with ``uvicorn gourmoire.app:app``."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gourmoire.api.error_handling import register_exception_handlers
from gourmoire.api.routes import API_VERSION, router
from gourmoire.config import get_settings
from gourmoire.logging import get_logger, set_correlation_id
from gourmoire.service.runtime import get_runtime

logger = get_logger(__name__)

__version__ = API_VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime once before serving; close the revocation store on exit."""
    runtime = get_runtime()
    logger.info("startup_complete", revocation_store=runtime.revocation.backend)

    yield

    try:
        await get_runtime().close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Gourmoire API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag logs for this request with ``X-Request-ID`` (generated when absent)."""
    correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.get("/", tags=["utility"])
async def root():
    return {
        "message": "Gourmoire API Server",
        "version": __version__,
        "authentication": "JWT-based",
        "endpoints": "/api",
    }


app.include_router(router)
register_exception_handlers(app)
