"""Chunk, scope and milestone value types for insight storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.services.insight.datapoints import (
    DataPoint,
    Granularity,
    MetricKind,
    data_point_from_dict,
    period_anchor,
    period_end,
)


@dataclass(frozen=True, slots=True)
class ChunkScope:
    """Owner of a chunk: a project, or one application inside it."""

    project_id: str
    application_id: str = ""

    @property
    def is_project_level(self) -> bool:
        return not self.application_id

    def __str__(self) -> str:
        return f"{self.project_id}/{self.application_id or '*'}"


@dataclass(frozen=True, slots=True)
class ChunkKey:
    """Storage identity of one chunk."""

    scope: ChunkScope
    metric_kind: MetricKind
    granularity: Granularity
    period_start: int


@dataclass(slots=True)
class Chunk:
    """Data points of one granularity for one period, plus the completeness watermark."""

    scope: ChunkScope
    metric_kind: MetricKind
    granularity: Granularity
    period_start: int
    accumulated_to: int = 0
    data_points: list[DataPoint] = field(default_factory=list)

    @property
    def key(self) -> ChunkKey:
        return ChunkKey(self.scope, self.metric_kind, self.granularity, self.period_start)

    def covers(self, timestamp: int) -> bool:
        end = period_end(self.period_start, self.granularity)
        return self.period_start <= timestamp and (end is None or timestamp < end)

    def advance_accumulated_to(self, timestamp: int) -> None:
        self.accumulated_to = max(self.accumulated_to, timestamp)

    def data_points_payload(self) -> list[dict[str, Any]]:
        return [point.to_dict() for point in self.data_points]

    @classmethod
    def from_payload(
        cls,
        *,
        scope: ChunkScope,
        metric_kind: MetricKind,
        granularity: Granularity,
        period_start: int,
        accumulated_to: int,
        data_points: list[dict[str, Any]] | None,
    ) -> "Chunk":
        points = [data_point_from_dict(metric_kind, item) for item in data_points or []]
        return cls(
            scope=scope,
            metric_kind=metric_kind,
            granularity=granularity,
            period_start=period_start,
            accumulated_to=accumulated_to,
            data_points=sorted(points, key=lambda point: point.timestamp),
        )


def new_chunk(scope: ChunkScope, metric_kind: MetricKind, granularity: Granularity, timestamp: int) -> Chunk:
    """Empty chunk anchored at the period boundary containing `timestamp`."""
    return Chunk(
        scope=scope,
        metric_kind=metric_kind,
        granularity=granularity,
        period_start=period_anchor(timestamp, granularity),
    )


@dataclass(slots=True)
class Milestone:
    """Processed watermarks for both source timestamp fields."""

    deployment_created_at_milestone: int = 0
    deployment_completed_at_milestone: int = 0
