"""Explicit runtime configuration for the insight collector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from app.config.settings import settings
from app.services.insight.datapoints import Granularity, MetricKind, parse_granularity, parse_metric_kind

DEFAULT_PAGE_SIZE = 50
DEFAULT_CREATED_AT_METRICS = (MetricKind.DEPLOYMENT_FREQUENCY.value,)
DEFAULT_COMPLETED_AT_METRICS = (MetricKind.CHANGE_FAILURE_RATE.value,)
DEFAULT_ROLLUP_GRANULARITIES = (Granularity.MONTHLY.value, Granularity.YEARLY.value)


@dataclass(slots=True)
class InsightCollectorConfig:
    """Page size, metric families and rollup scope used for one collector instance."""

    page_size: int = field(default_factory=lambda: getattr(settings, "INSIGHT_PAGE_SIZE", DEFAULT_PAGE_SIZE))
    created_at_metrics: Sequence[MetricKind | str] = field(
        default_factory=lambda: getattr(settings, "INSIGHT_CREATED_AT_METRICS", DEFAULT_CREATED_AT_METRICS)
    )
    completed_at_metrics: Sequence[MetricKind | str] = field(
        default_factory=lambda: getattr(settings, "INSIGHT_COMPLETED_AT_METRICS", DEFAULT_COMPLETED_AT_METRICS)
    )
    rollup_granularities: Sequence[Granularity | str] = field(
        default_factory=lambda: getattr(settings, "INSIGHT_ROLLUP_GRANULARITIES", DEFAULT_ROLLUP_GRANULARITIES)
    )
    entity_concurrency: int = field(default_factory=lambda: getattr(settings, "INSIGHT_ENTITY_CONCURRENCY", 1))
    fetch_max_attempts: int = field(default_factory=lambda: getattr(settings, "INSIGHT_FETCH_MAX_ATTEMPTS", 3))
    fetch_backoff_base_seconds: float = field(
        default_factory=lambda: getattr(settings, "INSIGHT_FETCH_BACKOFF_BASE_SECONDS", 0.5)
    )
    fetch_backoff_max_seconds: float = field(
        default_factory=lambda: getattr(settings, "INSIGHT_FETCH_BACKOFF_MAX_SECONDS", 8.0)
    )

    def __post_init__(self) -> None:
        if int(self.page_size) < 1:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        self.page_size = int(self.page_size)
        self.created_at_metrics = tuple(parse_metric_kind(kind) for kind in self.created_at_metrics)
        self.completed_at_metrics = tuple(parse_metric_kind(kind) for kind in self.completed_at_metrics)
        self.rollup_granularities = tuple(
            dict.fromkeys(parse_granularity(granularity) for granularity in self.rollup_granularities)
        )
        self.entity_concurrency = max(1, int(self.entity_concurrency))
        self.fetch_max_attempts = max(1, int(self.fetch_max_attempts))
