"""
Health reporting types.

Components that depend on an external service expose their state through
HealthReporter so that service health endpoints can aggregate them.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class LivenessStatus(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"


class ReadinessStatus(str, Enum):
    READY = "ready"
    UNREADY = "unready"


class HealthStatus(BaseModel):
    """Combined health report of a single component."""

    id: str
    alive: LivenessStatus
    ready: ReadinessStatus
    tags: Dict[str, str] = Field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.alive == LivenessStatus.ALIVE and self.ready == ReadinessStatus.READY


class HealthReporter(ABC):
    """A component which can report its own liveness and readiness."""

    @abstractmethod
    def health_identifier(self) -> str:
        """Stable identifier of the component in health reports."""

    @abstractmethod
    async def liveness_status(self) -> LivenessStatus:
        """Return whether the component is alive."""

    @abstractmethod
    async def readiness_status(self) -> ReadinessStatus:
        """Return whether the component can serve requests."""

    async def health_status(self) -> HealthStatus:
        return HealthStatus(
            id=self.health_identifier(),
            alive=await self.liveness_status(),
            ready=await self.readiness_status(),
        )
