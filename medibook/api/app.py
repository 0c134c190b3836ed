"""FastAPI application for MediBook."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medibook import __version__
from medibook.api.middleware import RequestLoggingMiddleware
from medibook.api.routes import (
    appointments,
    availability,
    departments,
    doctors,
    health,
    identity,
    me,
    streaming,
)
from medibook.config import get_settings
from medibook.core.database import init_db
from medibook.core.errors import SchedulingError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting MediBook API")
    await init_db()
    logger.info("MediBook API started successfully")

    yield

    logger.info("Shutting down MediBook API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MediBook API",
        description="Clinic appointment scheduling with role-based access control",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(appointments.router, prefix="/api/v1", tags=["appointments"])
    app.include_router(doctors.router, prefix="/api/v1", tags=["doctors"])
    app.include_router(departments.router, prefix="/api/v1", tags=["departments"])
    app.include_router(availability.router, prefix="/api/v1", tags=["availability"])
    app.include_router(me.router, prefix="/api/v1", tags=["me"])
    app.include_router(identity.router, prefix="/api/v1", tags=["identity"])
    app.include_router(streaming.router, prefix="/api/v1", tags=["streaming"])

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app
