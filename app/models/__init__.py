"""Database models"""

from app.models.deployment import Deployment, DeploymentStatus
from app.models.insight import InsightChunk, InsightMilestone

__all__ = [
    "Deployment",
    "DeploymentStatus",
    "InsightChunk",
    "InsightMilestone",
]
