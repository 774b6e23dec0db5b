"""ASGI entry point for the shuttle booking API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import admin, booking, health, metrics, seats, trip

setup_structured_logging()

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Wire observability and the schema on startup, release the pool on shutdown.

    Cleanup and reschedule sweeps are run by an external scheduler through
    the ``shuttle-sweep`` command or the admin endpoints.
    """
    logger.info("Starting shuttle booking API", extra={"environment": settings.environment})

    try:
        setup_tracing(SERVICE_NAME)
        setup_metrics(SERVICE_NAME)
        instrument_sqlalchemy(engine)
        await init_db()
    except Exception as e:
        logger.exception("Startup failed: %s", e)
        raise

    logger.info("Application startup complete")

    yield

    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error while closing database connections: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the app; tests call this and override the collaborator dependencies."""
    app = FastAPI(
        title="Shuttle Booking API",
        description="RPC-over-HTTP API for shared-shuttle seat booking with time-bound seat holds, "
                    "trip confirmation and next-day rescheduling",
        version=health.API_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )
    setup_middleware(app)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    for module in (health, booking, seats, trip, admin, metrics):
        app.include_router(module.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shuttle.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
