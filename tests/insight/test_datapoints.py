from __future__ import annotations

import pytest

from app.services.insight.chunk import ChunkScope, new_chunk
from app.services.insight.datapoints import (
    ChangeFailureRate,
    DeployFrequency,
    Granularity,
    MetricKind,
    compute_failure_rate,
    data_point_from_dict,
    merge_data_point,
    normalize_time,
    parse_metric_kind,
    period_anchor,
    period_end,
)
from app.services.insight.errors import MetricKindValidationError
from insight_fakes import ts


def test_normalize_time_truncates_to_bucket_start() -> None:
    moment = ts(2024, 5, 17, 13)

    assert normalize_time(moment, Granularity.DAILY) == ts(2024, 5, 17)
    assert normalize_time(moment, Granularity.MONTHLY) == ts(2024, 5, 1)
    assert normalize_time(moment, Granularity.YEARLY) == ts(2024, 1, 1)


def test_period_anchor_and_end_per_granularity() -> None:
    moment = ts(2024, 12, 31, 23)

    assert period_anchor(moment, Granularity.DAILY) == ts(2024, 12, 1)
    assert period_end(ts(2024, 12, 1), Granularity.DAILY) == ts(2025, 1, 1)
    assert period_anchor(moment, Granularity.MONTHLY) == ts(2024, 1, 1)
    assert period_end(ts(2024, 1, 1), Granularity.MONTHLY) == ts(2025, 1, 1)
    assert period_anchor(moment, Granularity.YEARLY) == 0
    assert period_end(0, Granularity.YEARLY) is None


def test_new_chunk_is_anchored_and_empty() -> None:
    chunk = new_chunk(ChunkScope("proj-1", "app-1"), MetricKind.DEPLOYMENT_FREQUENCY, Granularity.MONTHLY, ts(2024, 7, 9))

    assert chunk.period_start == ts(2024, 1, 1)
    assert chunk.accumulated_to == 0
    assert chunk.data_points == []
    assert chunk.covers(ts(2024, 12, 31)) is True
    assert chunk.covers(ts(2025, 1, 1)) is False


def test_merge_sums_deploy_frequency_for_existing_bucket() -> None:
    bucket = ts(2024, 3, 1)
    points = [DeployFrequency(timestamp=bucket, count=4)]

    merged = merge_data_point(points, DeployFrequency(timestamp=ts(2024, 3, 12), count=3), bucket)

    assert merged == [DeployFrequency(timestamp=bucket, count=7)]
    assert points == [DeployFrequency(timestamp=bucket, count=4)]


def test_merge_recomputes_change_failure_rate_from_counts() -> None:
    bucket = ts(2024, 1, 1)
    points = [ChangeFailureRate.from_counts(bucket, success_count=3, failure_count=1)]

    merged = merge_data_point(points, ChangeFailureRate.from_counts(ts(2024, 6, 2), 4, 2), bucket)

    assert len(merged) == 1
    assert merged[0].success_count == 7
    assert merged[0].failure_count == 3
    assert merged[0].rate == pytest.approx(0.3)


def test_merge_inserts_new_buckets_in_timestamp_order_without_duplicates() -> None:
    points = []
    for day in (5, 1, 3, 1, 5):
        point = DeployFrequency(timestamp=ts(2024, 2, day, 10), count=1)
        points = merge_data_point(points, point, normalize_time(point.timestamp, Granularity.DAILY))

    assert [point.timestamp for point in points] == [ts(2024, 2, 1), ts(2024, 2, 3), ts(2024, 2, 5)]
    assert [point.count for point in points] == [2, 1, 2]


def test_merge_rejects_mismatched_metric_kinds() -> None:
    bucket = ts(2024, 2, 1)

    with pytest.raises(MetricKindValidationError):
        merge_data_point([DeployFrequency(timestamp=bucket, count=1)], ChangeFailureRate.from_counts(bucket, 1, 0), bucket)


def test_failure_rate_stays_within_bounds() -> None:
    assert compute_failure_rate(0, 0) == 0.0
    assert compute_failure_rate(5, 0) == 0.0
    assert compute_failure_rate(0, 5) == 1.0
    for success, failure in ((1, 2), (10, 3), (7, 7)):
        assert 0.0 <= compute_failure_rate(success, failure) <= 1.0


def test_data_point_payload_restores_kind_specific_type() -> None:
    restored = data_point_from_dict(
        MetricKind.CHANGE_FAILURE_RATE,
        {"timestamp": 100, "rate": 0.99, "success_count": 1, "failure_count": 1},
    )

    assert restored == ChangeFailureRate(timestamp=100, rate=0.5, success_count=1, failure_count=1)


def test_unknown_metric_kind_is_rejected() -> None:
    assert parse_metric_kind("deployment_frequency") is MetricKind.DEPLOYMENT_FREQUENCY
    with pytest.raises(MetricKindValidationError):
        parse_metric_kind("LEAD_TIME")
