"""Probe response schemas."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ProbeStatus(str, Enum):
    HEALTHY = "healthy"
    READY = "ready"
    NOT_READY = "not_ready"


class LivenessResponse(BaseModel):
    """The process is up and serving requests."""

    status: ProbeStatus = Field(ProbeStatus.HEALTHY, description="Liveness status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="API version")
    environment: str = Field(..., description="Deployment environment")


class ReadinessResponse(BaseModel):
    """Whether the service's dependencies answer."""

    status: ProbeStatus = Field(..., description="Readiness status")
    service: str = Field(..., description="Service name")
    checks: Dict[str, str] = Field(default_factory=dict, description="Outcome per dependency")


class ServiceInfo(BaseModel):
    service: str
    version: str
    description: str
    environment: str
    features: Dict[str, Any] = Field(default_factory=dict, description="Runtime switches")
    endpoints: Dict[str, Optional[str]] = Field(default_factory=dict, description="Operational endpoints")
