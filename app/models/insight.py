"""Insight milestone and chunk persistence models."""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from app.config.database import Base


class InsightMilestone(Base):
    """Singleton row holding the processed watermarks."""

    __tablename__ = "insight_milestones"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True)
    deployment_created_at_milestone = Column(BigInteger, nullable=False, default=0)
    deployment_completed_at_milestone = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return (
            f"<InsightMilestone created={self.deployment_created_at_milestone} "
            f"completed={self.deployment_completed_at_milestone}>"
        )


class InsightChunk(Base):
    """Granularity-scoped data point container mapped to `insight_chunks` table."""

    __tablename__ = "insight_chunks"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    project_id = Column(String(64), nullable=False)
    # Empty string for project-level chunks.
    application_id = Column(String(64), nullable=False, default="")
    metric_kind = Column(String(40), nullable=False)
    granularity = Column(String(10), nullable=False)
    period_start = Column(BigInteger, nullable=False)
    accumulated_to = Column(BigInteger, nullable=False, default=0)
    data_points = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "application_id",
            "metric_kind",
            "granularity",
            "period_start",
            name="uq_insight_chunks_key",
        ),
        Index("idx_insight_chunks_lookup", "project_id", "application_id", "metric_kind", "granularity", "period_start"),
    )

    def __repr__(self):
        scope = f"{self.project_id}/{self.application_id or '*'}"
        return f"<InsightChunk {scope} {self.metric_kind}:{self.granularity}@{self.period_start}>"
