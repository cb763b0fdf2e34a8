"""
Alumni API application.

Wires the alumni routers under /api/v1, brings up Redis, the database and
the notification retry scheduler in the lifespan, and reshapes request
validation failures into the ``{"error", "message", "fields"}`` envelope
every endpoint uses.
"""

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alumni_api.api import api_router
from alumni_api.core.config import settings
from alumni_api.core.database import close_db, init_db
from alumni_api.core.redis import close_redis, init_redis
from alumni_api.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from alumni_api.modules.alumni import register_alumni_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


async def _start_scheduler_with_jobs() -> None:
    register_alumni_jobs()
    await start_scheduler()


async def _bring_up(label: str, starter: Callable[[], Awaitable[object]]) -> None:
    """Run one startup step. Only production refuses to boot when it fails."""
    try:
        await starter()
    except Exception as e:
        print(f"[FAIL] {label}: {e}")
        if settings.is_production:
            raise
    else:
        print(f"[OK] {label}")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    print(f"Alumni API starting ({settings.python_env})")

    await _bring_up("Redis", init_redis)
    await _bring_up("Database", init_db)
    await _bring_up("Notification retry scheduler", _start_scheduler_with_jobs)

    yield

    await stop_scheduler()
    await close_redis()
    await close_db()
    print("Alumni API stopped")


app = FastAPI(
    title="Alumni API",
    description="Alumni registration, moderation and directory API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields: dict[str, str] = {}
    for error in exc.errors():
        # ("body", "email") -> "email"
        location = [str(part) for part in error["loc"][1:]] or [str(error["loc"][0])]
        fields[".".join(location)] = error["msg"]

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "One or more fields are invalid.",
            "fields": fields,
        },
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    return {"service": "alumni-api", "status": "running"}


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness check."""
    return {"status": "healthy", "environment": settings.python_env}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


if settings.is_development:

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """Run a job now, e.g. ``alumni_retry_notifications``."""
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
