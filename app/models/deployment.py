"""Deployment record model (read-only for insight collection)."""

from sqlalchemy import BigInteger, Column, Index, String

from app.config.database import Base
from app.services.insight.records import DeploymentStatus


class Deployment(Base):
    """Deployment entity mapped to `deployments` table."""

    __tablename__ = "deployments"

    id = Column(String(64), primary_key=True)
    application_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(64), nullable=False, index=True)
    status = Column(String(40), nullable=False, default=DeploymentStatus.PENDING.value)

    # Unix seconds; completed_at stays 0 until the deployment is terminal.
    created_at = Column(BigInteger, nullable=False)
    completed_at = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("idx_deployments_created_at_id", "created_at", "id"),
        Index("idx_deployments_completed_at_id", "completed_at", "id"),
    )

    def __repr__(self):
        return f"<Deployment {self.id} ({self.status})>"
