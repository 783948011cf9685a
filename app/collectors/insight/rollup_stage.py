"""Rollup of daily deployment metrics into watermarked multi-granularity chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from app.collectors.insight.chunk_store import ChunkStoreAdapter
from app.services.insight.chunk import Chunk, ChunkScope
from app.services.insight.datapoints import (
    SECONDS_PER_DAY,
    Granularity,
    MetricKind,
    merge_data_point,
    normalize_time,
    parse_granularity,
    parse_metric_kind,
    period_anchor,
)
from app.services.insight.extractors import (
    earliest_source_timestamp,
    extract_daily_data_points,
    resolve_extractor,
)
from app.services.insight.records import DeploymentRecord
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GranularityRollup:
    """Outcome of one granularity rollup."""

    granularity: Granularity
    skipped: bool = False
    chunks_written: int = 0
    points_merged: int = 0


@dataclass(slots=True)
class RollupResult:
    """Outcome of updating every configured granularity for one scope and metric kind."""

    scope: ChunkScope
    metric_kind: MetricKind
    granularities: list[GranularityRollup] = field(default_factory=list)

    @property
    def chunks_written(self) -> int:
        return sum(item.chunks_written for item in self.granularities)

    @property
    def points_merged(self) -> int:
        return sum(item.points_merged for item in self.granularities)


class RollupEngine:
    """Folds daily data points into each granularity's chunks independently.

    Every granularity owns its chunks and their `accumulated_to` watermark:
    one granularity never starts from, or writes over, another's state.
    """

    def __init__(
        self,
        chunk_store: ChunkStoreAdapter,
        *,
        granularities: Sequence[Granularity | str] = (Granularity.MONTHLY, Granularity.YEARLY),
    ) -> None:
        self._chunk_store = chunk_store
        self._granularities = tuple(dict.fromkeys(parse_granularity(item) for item in granularities))

    async def update_chunks(
        self,
        scope: ChunkScope,
        metric_kind: MetricKind | str,
        deployments: Sequence[DeploymentRecord],
        *,
        target_date: int,
        window_from: int = 0,
    ) -> RollupResult:
        kind = parse_metric_kind(metric_kind)
        resolve_extractor(kind)

        result = RollupResult(scope=scope, metric_kind=kind)
        for granularity in self._granularities:
            async with self._chunk_store.lock_for(scope, kind, granularity):
                outcome = await self._rollup(scope, kind, granularity, deployments, target_date, window_from)
            result.granularities.append(outcome)
        return result

    async def _rollup(
        self,
        scope: ChunkScope,
        kind: MetricKind,
        granularity: Granularity,
        deployments: Sequence[DeploymentRecord],
        target_date: int,
        window_from: int,
    ) -> GranularityRollup:
        outcome = GranularityRollup(granularity=granularity)
        last_day = target_date - SECONDS_PER_DAY
        latest = await self._chunk_store.load_or_create(scope, kind, granularity, last_day)
        if latest.accumulated_to >= target_date:
            outcome.skipped = True
            return outcome

        chunks: dict[int, Chunk] = {latest.period_start: latest}
        touched: dict[int, Chunk] = {latest.period_start: latest}

        watermark = latest.accumulated_to
        if watermark == 0:
            watermark = await self._chunk_store.latest_watermark(scope, kind, granularity, last_day)
        series_from = self._series_start(kind, deployments, window_from, watermark, target_date)
        for point in extract_daily_data_points(deployments, kind, series_from, target_date):
            anchor = period_anchor(point.timestamp, granularity)
            chunk = chunks.get(anchor)
            if chunk is None:
                chunk = await self._chunk_store.load_or_create(scope, kind, granularity, point.timestamp)
                chunks[anchor] = chunk

            # Day already folded into this chunk by an earlier run.
            if point.timestamp + SECONDS_PER_DAY <= chunk.accumulated_to:
                continue

            bucket_key = normalize_time(point.timestamp, granularity)
            chunk.data_points = merge_data_point(chunk.data_points, point, bucket_key)
            touched[anchor] = chunk
            outcome.points_merged += 1

        # Oldest first so the chunk gating the next run's no-op check lands last.
        for anchor in sorted(touched):
            chunk = touched[anchor]
            chunk.advance_accumulated_to(target_date)
            await self._chunk_store.put(chunk)
            outcome.chunks_written += 1

        logger.debug(
            "Rolled up chunk set",
            extra=sanitize_log_extra(
                scope=str(scope),
                metric_kind=kind.value,
                granularity=granularity.value,
                chunks_written=outcome.chunks_written,
                points_merged=outcome.points_merged,
            ),
        )
        return outcome

    @staticmethod
    def _series_start(
        kind: MetricKind,
        deployments: Sequence[DeploymentRecord],
        window_from: int,
        watermark: int,
        target_date: int,
    ) -> int:
        # Every day after the stored watermark is emitted, including days without deployments.
        if watermark > 0:
            return min(watermark, window_from) if window_from > 0 else watermark
        if window_from > 0:
            return window_from
        earliest = earliest_source_timestamp(deployments, kind)
        if earliest is None:
            return target_date
        return min(earliest, target_date)
