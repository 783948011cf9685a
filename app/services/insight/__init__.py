"""Insight domain helpers: data points, chunks, extractors and grouping."""

from app.services.insight.chunk import Chunk, ChunkKey, ChunkScope, Milestone, new_chunk
from app.services.insight.datapoints import (
    ChangeFailureRate,
    DataPoint,
    DeployFrequency,
    Granularity,
    MetricKind,
    merge_data_point,
    normalize_time,
    period_anchor,
)
from app.services.insight.extractors import (
    extract_change_failure_rate,
    extract_daily_data_points,
    extract_deploy_frequency,
)
from app.services.insight.grouping import group_deployments
from app.services.insight.records import DeploymentRecord, DeploymentStatus

__all__ = [
    "Chunk",
    "ChunkKey",
    "ChunkScope",
    "Milestone",
    "new_chunk",
    "ChangeFailureRate",
    "DataPoint",
    "DeployFrequency",
    "Granularity",
    "MetricKind",
    "merge_data_point",
    "normalize_time",
    "period_anchor",
    "extract_change_failure_rate",
    "extract_daily_data_points",
    "extract_deploy_frequency",
    "group_deployments",
    "DeploymentRecord",
    "DeploymentStatus",
]
