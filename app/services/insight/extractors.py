"""Daily metric extraction from deployment records."""

from __future__ import annotations

from typing import Callable, Sequence

from app.services.insight.datapoints import (
    SECONDS_PER_DAY,
    ChangeFailureRate,
    DataPoint,
    DeployFrequency,
    Granularity,
    MetricKind,
    normalize_time,
    parse_metric_kind,
)
from app.services.insight.errors import MetricKindValidationError
from app.services.insight.records import DeploymentRecord

# Deployment attribute each metric family is windowed on.
SOURCE_FIELDS: dict[MetricKind, str] = {
    MetricKind.DEPLOYMENT_FREQUENCY: "created_at",
    MetricKind.CHANGE_FAILURE_RATE: "completed_at",
}


def _partition(
    deployments: Sequence[DeploymentRecord],
    field_name: str,
    range_from: int,
    range_to: int,
) -> tuple[list[DeploymentRecord], list[DeploymentRecord]]:
    matched: list[DeploymentRecord] = []
    rest: list[DeploymentRecord] = []
    for deployment in deployments:
        value = getattr(deployment, field_name)
        if range_from <= value < range_to:
            matched.append(deployment)
        else:
            rest.append(deployment)
    return matched, rest


def extract_deploy_frequency(
    deployments: Sequence[DeploymentRecord],
    range_from: int,
    range_to: int,
    bucket_timestamp: int,
) -> tuple[DeployFrequency, list[DeploymentRecord]]:
    """Count deployments created in `[range_from, range_to)`; return the rest for the next window."""
    matched, rest = _partition(deployments, "created_at", range_from, range_to)
    return DeployFrequency(timestamp=bucket_timestamp, count=len(matched)), rest


def extract_change_failure_rate(
    deployments: Sequence[DeploymentRecord],
    range_from: int,
    range_to: int,
    bucket_timestamp: int,
) -> tuple[ChangeFailureRate, list[DeploymentRecord]]:
    """Failure rate of deployments completed in `[range_from, range_to)`.

    Only terminal success and failure statuses count; anything else in the
    window is consumed without affecting either count.
    """
    matched, rest = _partition(deployments, "completed_at", range_from, range_to)
    success_count = sum(1 for deployment in matched if deployment.succeeded)
    failure_count = sum(1 for deployment in matched if deployment.failed)
    return ChangeFailureRate.from_counts(bucket_timestamp, success_count, failure_count), rest


Extractor = Callable[[Sequence[DeploymentRecord], int, int, int], tuple[DataPoint, list[DeploymentRecord]]]

EXTRACTORS: dict[MetricKind, Extractor] = {
    MetricKind.DEPLOYMENT_FREQUENCY: extract_deploy_frequency,
    MetricKind.CHANGE_FAILURE_RATE: extract_change_failure_rate,
}


def resolve_extractor(kind: MetricKind | str) -> Extractor:
    extractor = EXTRACTORS.get(parse_metric_kind(kind))
    if extractor is None:
        raise MetricKindValidationError(f"No extractor registered for metric kind: {kind!r}")
    return extractor


def extract_daily_data_points(
    deployments: Sequence[DeploymentRecord],
    kind: MetricKind | str,
    range_from: int,
    range_to: int,
) -> list[DataPoint]:
    """One point per UTC day from the day containing `range_from` while the day ends by `range_to`."""
    extractor = resolve_extractor(kind)
    remaining = list(deployments)
    points: list[DataPoint] = []

    day_start = normalize_time(range_from, Granularity.DAILY)
    while day_start + SECONDS_PER_DAY <= range_to:
        day_end = day_start + SECONDS_PER_DAY
        point, remaining = extractor(remaining, day_start, day_end, day_start)
        points.append(point)
        day_start = day_end

    return points


def earliest_source_timestamp(deployments: Sequence[DeploymentRecord], kind: MetricKind | str) -> int | None:
    # Zero means "not reached yet" (e.g. completed_at of a running deployment).
    field_name = SOURCE_FIELDS[parse_metric_kind(kind)]
    values = [getattr(deployment, field_name) for deployment in deployments if getattr(deployment, field_name) > 0]
    return min(values) if values else None
