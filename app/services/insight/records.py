"""Deployment record representation consumed by insight collection."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class DeploymentStatus(str, enum.Enum):
    """Deployment lifecycle status values stored in `deployments.status`."""

    PENDING = "DEPLOYMENT_PENDING"
    PLANNED = "DEPLOYMENT_PLANNED"
    RUNNING = "DEPLOYMENT_RUNNING"
    ROLLING_BACK = "DEPLOYMENT_ROLLING_BACK"
    SUCCESS = "DEPLOYMENT_SUCCESS"
    FAILURE = "DEPLOYMENT_FAILURE"
    CANCELLED = "DEPLOYMENT_CANCELLED"


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    """Immutable snapshot of one deployment row."""

    id: str
    application_id: str
    project_id: str
    created_at: int
    completed_at: int = 0
    status: str = DeploymentStatus.PENDING.value

    @property
    def succeeded(self) -> bool:
        return self.status == DeploymentStatus.SUCCESS.value

    @property
    def failed(self) -> bool:
        return self.status == DeploymentStatus.FAILURE.value
