"""
Site Audit Service - HTTP entry point.

The API only records jobs and reads them back; crawling and analysis run
in Celery workers (site_audit.workers).
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from site_audit.api.v1.routes import audits, health
from site_audit.core.config import get_settings
from site_audit.core.exceptions import DuplicateJobError, JobStoreError, NotFoundError
from site_audit.core.logging import configure_logging
from site_audit.core.redis import close_redis, get_redis_client
from site_audit.jobs.store import JobStore

logger = structlog.get_logger(__name__)
settings = get_settings()

# Job store errors that reach the app boundary, mapped to HTTP status
STORE_ERROR_STATUS: dict[type[JobStoreError], int] = {
    NotFoundError: 404,
    DuplicateJobError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    configure_logging()
    logger.info("Site audit API starting", version=settings.APP_VERSION, env=settings.ENV)

    store = JobStore(await get_redis_client())
    if not await store.ping():
        raise RuntimeError(f"Job store unreachable at {settings.REDIS_DSN}")
    logger.info("Job store reachable", queue=await store.queue_stats())

    yield

    await close_redis()
    logger.info("Site audit API stopped")


def create_application() -> FastAPI:
    is_production = settings.ENV == "production"
    app = FastAPI(
        title="Site Audit API",
        description="Submit page and site audits, poll their status and fetch the scored report.",
        version=settings.APP_VERSION,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(audits.router, prefix="/api/v1/audits", tags=["Audits"])

    @app.exception_handler(JobStoreError)
    async def job_store_error_handler(request: Request, exc: JobStoreError) -> JSONResponse:
        status_code = STORE_ERROR_STATUS.get(type(exc), 503)
        if status_code >= 500:
            logger.error("Job store error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get("x-request-id")},
        )

    return app


app = create_application()
