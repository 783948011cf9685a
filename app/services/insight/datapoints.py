"""Insight data point types, period normalization and the bucket merge primitive."""

from __future__ import annotations

import enum
from bisect import bisect_left
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ClassVar, Sequence, Union

from dateutil.relativedelta import relativedelta

from app.services.insight.errors import MetricKindValidationError

SECONDS_PER_DAY = 86400


class MetricKind(str, enum.Enum):
    """DORA metric families collected from deployments."""

    DEPLOYMENT_FREQUENCY = "DEPLOYMENT_FREQUENCY"
    CHANGE_FAILURE_RATE = "CHANGE_FAILURE_RATE"


class Granularity(str, enum.Enum):
    """Bucket width of the data points a chunk holds."""

    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


def parse_metric_kind(value: Any) -> MetricKind:
    if isinstance(value, MetricKind):
        return value
    try:
        return MetricKind(str(value).strip().upper())
    except ValueError as exc:
        raise MetricKindValidationError(f"Unknown metric kind: {value!r}") from exc


def parse_granularity(value: Any) -> Granularity:
    if isinstance(value, Granularity):
        return value
    try:
        return Granularity(str(value).strip().upper())
    except ValueError as exc:
        raise MetricKindValidationError(f"Unknown granularity: {value!r}") from exc


def compute_failure_rate(success_count: int, failure_count: int) -> float:
    """Failure share of terminal deployments, 0 when there are none."""
    total = success_count + failure_count
    if total == 0:
        return 0.0
    return failure_count / total


@dataclass(frozen=True, slots=True)
class DeployFrequency:
    """Number of deployments created in one bucket."""

    kind: ClassVar[MetricKind] = MetricKind.DEPLOYMENT_FREQUENCY

    timestamp: int
    count: int = 0

    def combine(self, other: "DeployFrequency") -> "DeployFrequency":
        return DeployFrequency(timestamp=self.timestamp, count=self.count + other.count)

    def with_timestamp(self, timestamp: int) -> "DeployFrequency":
        return DeployFrequency(timestamp=timestamp, count=self.count)

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "count": self.count}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "DeployFrequency":
        return cls(timestamp=int(payload["timestamp"]), count=int(payload.get("count", 0)))


@dataclass(frozen=True, slots=True)
class ChangeFailureRate:
    """Failed share of deployments completed in one bucket."""

    kind: ClassVar[MetricKind] = MetricKind.CHANGE_FAILURE_RATE

    timestamp: int
    rate: float = 0.0
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def from_counts(cls, timestamp: int, success_count: int, failure_count: int) -> "ChangeFailureRate":
        return cls(
            timestamp=timestamp,
            rate=compute_failure_rate(success_count, failure_count),
            success_count=success_count,
            failure_count=failure_count,
        )

    def combine(self, other: "ChangeFailureRate") -> "ChangeFailureRate":
        return ChangeFailureRate.from_counts(
            self.timestamp,
            self.success_count + other.success_count,
            self.failure_count + other.failure_count,
        )

    def with_timestamp(self, timestamp: int) -> "ChangeFailureRate":
        return ChangeFailureRate.from_counts(timestamp, self.success_count, self.failure_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "rate": self.rate,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChangeFailureRate":
        return cls.from_counts(
            int(payload["timestamp"]),
            int(payload.get("success_count", 0)),
            int(payload.get("failure_count", 0)),
        )


DataPoint = Union[DeployFrequency, ChangeFailureRate]

DATA_POINT_TYPES: dict[MetricKind, type] = {
    MetricKind.DEPLOYMENT_FREQUENCY: DeployFrequency,
    MetricKind.CHANGE_FAILURE_RATE: ChangeFailureRate,
}


def data_point_from_dict(kind: MetricKind, payload: dict[str, Any]) -> DataPoint:
    point_type = DATA_POINT_TYPES.get(parse_metric_kind(kind))
    if point_type is None:
        raise MetricKindValidationError(f"No data point type for metric kind: {kind!r}")
    return point_type.from_dict(payload)


def to_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)


def normalize_time(timestamp: int, granularity: Granularity) -> int:
    """Return the start of the `granularity` bucket containing `timestamp`."""
    moment = to_datetime(timestamp)
    if granularity == Granularity.DAILY:
        start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    elif granularity == Granularity.MONTHLY:
        start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    elif granularity == Granularity.YEARLY:
        start = moment.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        raise MetricKindValidationError(f"Unknown granularity: {granularity!r}")
    return int(start.timestamp())


def period_anchor(timestamp: int, granularity: Granularity) -> int:
    """Return the start of the chunk period holding `granularity` points for `timestamp`.

    Daily points are chunked per month, monthly points per year and yearly
    points in a single chunk anchored at the epoch.
    """
    if granularity == Granularity.DAILY:
        return normalize_time(timestamp, Granularity.MONTHLY)
    if granularity == Granularity.MONTHLY:
        return normalize_time(timestamp, Granularity.YEARLY)
    if granularity == Granularity.YEARLY:
        return 0
    raise MetricKindValidationError(f"Unknown granularity: {granularity!r}")


def period_end(anchor: int, granularity: Granularity) -> int | None:
    """Exclusive end of the chunk period starting at `anchor`; None when unbounded."""
    if granularity == Granularity.DAILY:
        return int((to_datetime(anchor) + relativedelta(months=1)).timestamp())
    if granularity == Granularity.MONTHLY:
        return int((to_datetime(anchor) + relativedelta(years=1)).timestamp())
    if granularity == Granularity.YEARLY:
        return None
    raise MetricKindValidationError(f"Unknown granularity: {granularity!r}")


def merge_data_point(points: Sequence[DataPoint], new_point: DataPoint, bucket_key: int) -> list[DataPoint]:
    """Upsert `new_point` under `bucket_key` keeping the collection sorted and unique by timestamp."""
    merged = list(points)
    keys = [point.timestamp for point in merged]
    index = bisect_left(keys, bucket_key)

    if index < len(merged) and merged[index].timestamp == bucket_key:
        existing = merged[index]
        if existing.kind != new_point.kind:
            raise MetricKindValidationError(
                f"Cannot merge {new_point.kind.value} into {existing.kind.value} bucket {bucket_key}"
            )
        merged[index] = existing.combine(new_point)
        return merged

    merged.insert(index, new_point.with_timestamp(bucket_key))
    return merged
