"""SQLAlchemy-backed record store and chunk/milestone store."""

from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from app.collectors.insight.contracts import (
    NOT_FOUND,
    DeploymentRecord,
    FilterOperator,
    Found,
    ListOptions,
    LoadResult,
    SortDirection,
    TransientStoreError,
)
from app.config.database import SessionLocal
from app.models.deployment import Deployment
from app.models.insight import InsightChunk, InsightMilestone
from app.services.insight.chunk import Chunk, ChunkScope, Milestone
from app.services.insight.datapoints import Granularity, MetricKind

logger = logging.getLogger(__name__)

_DEPLOYMENT_COLUMNS = {
    "id": Deployment.id,
    "application_id": Deployment.application_id,
    "project_id": Deployment.project_id,
    "created_at": Deployment.created_at,
    "completed_at": Deployment.completed_at,
}


class SQLAlchemyDeploymentStore:
    """Read-only page access to the `deployments` table."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal) -> None:
        self._session_factory = session_factory

    async def list_deployments(self, options: ListOptions) -> list[DeploymentRecord]:
        try:
            with self._session_factory() as db:
                query = db.query(Deployment)
                for item in options.filters:
                    column = self._column(item.field)
                    if item.operator == FilterOperator.GTE:
                        query = query.filter(column >= item.value)
                    else:
                        query = query.filter(column < item.value)
                for order in options.orders:
                    column = self._column(order.field)
                    query = query.order_by(column.desc() if order.direction == SortDirection.DESC else column.asc())
                rows = query.limit(options.page_size).all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Deployment page query failed: {exc}") from exc

    @staticmethod
    def _column(field: str) -> Any:
        column = _DEPLOYMENT_COLUMNS.get(field)
        if column is None:
            raise ValueError(f"Unsupported deployment field: {field}")
        return column

    @staticmethod
    def _to_record(row: Deployment) -> DeploymentRecord:
        return DeploymentRecord(
            id=str(row.id),
            application_id=str(row.application_id),
            project_id=str(row.project_id),
            created_at=int(row.created_at),
            completed_at=int(row.completed_at or 0),
            status=str(row.status),
        )


class SQLAlchemyInsightStore:
    """Milestone singleton and chunk persistence in `insight_milestones` / `insight_chunks`."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal) -> None:
        self._session_factory = session_factory

    async def load_milestone(self) -> LoadResult[Milestone]:
        try:
            with self._session_factory() as db:
                row = db.query(InsightMilestone).filter_by(id=InsightMilestone.SINGLETON_ID).first()
                if row is None:
                    return NOT_FOUND
                return Found(
                    Milestone(
                        deployment_created_at_milestone=int(row.deployment_created_at_milestone or 0),
                        deployment_completed_at_milestone=int(row.deployment_completed_at_milestone or 0),
                    )
                )
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Milestone load failed: {exc}") from exc

    async def store_milestone(self, milestone: Milestone) -> None:
        try:
            with self._session_factory() as db:
                row = db.query(InsightMilestone).filter_by(id=InsightMilestone.SINGLETON_ID).first()
                if row is None:
                    row = InsightMilestone(id=InsightMilestone.SINGLETON_ID)
                    db.add(row)
                row.deployment_created_at_milestone = milestone.deployment_created_at_milestone
                row.deployment_completed_at_milestone = milestone.deployment_completed_at_milestone
                db.commit()
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Milestone store failed: {exc}") from exc

    async def load_chunks(
        self,
        scope: ChunkScope,
        metric_kind: MetricKind,
        granularity: Granularity,
        anchor: int,
        limit: int = 1,
    ) -> LoadResult[list[Chunk]]:
        """Most recent chunks whose period starts at or before `anchor`, newest first."""
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(InsightChunk)
                    .filter(
                        InsightChunk.project_id == scope.project_id,
                        InsightChunk.application_id == scope.application_id,
                        InsightChunk.metric_kind == metric_kind.value,
                        InsightChunk.granularity == granularity.value,
                        InsightChunk.period_start <= anchor,
                    )
                    .order_by(InsightChunk.period_start.desc())
                    .limit(max(1, limit))
                    .all()
                )
                if not rows:
                    return NOT_FOUND
                return Found([self._to_chunk(row, scope, metric_kind, granularity) for row in rows])
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Chunk load failed for {scope} {metric_kind.value}/{granularity.value}: {exc}") from exc

    async def store_chunk(self, chunk: Chunk) -> None:
        try:
            with self._session_factory() as db:
                row = (
                    db.query(InsightChunk)
                    .filter_by(
                        project_id=chunk.scope.project_id,
                        application_id=chunk.scope.application_id,
                        metric_kind=chunk.metric_kind.value,
                        granularity=chunk.granularity.value,
                        period_start=chunk.period_start,
                    )
                    .first()
                )
                if row is None:
                    row = InsightChunk(
                        project_id=chunk.scope.project_id,
                        application_id=chunk.scope.application_id,
                        metric_kind=chunk.metric_kind.value,
                        granularity=chunk.granularity.value,
                        period_start=chunk.period_start,
                    )
                    db.add(row)
                row.accumulated_to = max(int(row.accumulated_to or 0), chunk.accumulated_to)
                row.data_points = chunk.data_points_payload()
                db.commit()
        except SQLAlchemyError as exc:
            raise TransientStoreError(f"Chunk store failed for {chunk.key}: {exc}") from exc

    @staticmethod
    def _to_chunk(row: InsightChunk, scope: ChunkScope, metric_kind: MetricKind, granularity: Granularity) -> Chunk:
        return Chunk.from_payload(
            scope=scope,
            metric_kind=metric_kind,
            granularity=granularity,
            period_start=int(row.period_start),
            accumulated_to=int(row.accumulated_to or 0),
            data_points=list(row.data_points or []),
        )
