"""Liveness, readiness and service information probes."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ..core.config import settings
from ..core.database import TransactionRunner
from ..core.dependencies import RUNNER_DEPENDENCY
from ..core.observability import SERVICE_NAME
from ..schemas.health import LivenessResponse, ProbeStatus, ReadinessResponse, ServiceInfo

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=LivenessResponse, summary="Liveness probe")
async def health_check() -> LivenessResponse:
    return LivenessResponse(
        service=SERVICE_NAME,
        version=API_VERSION,
        environment=settings.environment,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    responses={503: {"model": ReadinessResponse, "description": "The database did not answer"}},
)
async def readiness_check(runner: TransactionRunner = RUNNER_DEPENDENCY) -> JSONResponse:
    """
    Readiness probe backed by a database round trip.

    The query goes through the transaction runner so it exercises the
    same session factory the seat engine uses.
    """
    checks = {"database": "ok"}
    try:
        await runner.run(lambda session: session.execute(text("SELECT 1")), description="readiness check")
    except Exception as e:
        logger.warning("Readiness check failed", extra={"error": str(e)})
        checks["database"] = "unavailable"

    ready = all(outcome == "ok" for outcome in checks.values())
    response = ReadinessResponse(
        status=ProbeStatus.READY if ready else ProbeStatus.NOT_READY,
        service=SERVICE_NAME,
        checks=checks,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get("/info", response_model=ServiceInfo, tags=["Info"], summary="Service information")
async def service_info() -> ServiceInfo:
    return ServiceInfo(
        service=SERVICE_NAME,
        version=API_VERSION,
        description="Seat assignment and trip lifecycle engine for shared shuttles",
        environment=settings.environment,
        features={
            "payments": settings.payment_enabled,
            "hold_duration_minutes": settings.hold_duration_minutes,
            "service_timezone": settings.service_timezone,
            "tracing": bool(settings.otlp_endpoint),
        },
        endpoints={
            "health": "/health",
            "readiness": "/ready",
            "metrics": "/metrics",
            "docs": "/docs" if settings.debug else None,
        },
    )
