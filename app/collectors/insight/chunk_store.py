"""Load-or-create and persist insight chunks, with per-key write serialization."""

from __future__ import annotations

import asyncio
from typing import Any

from app.collectors.insight.contracts import Found
from app.services.insight.chunk import Chunk, ChunkScope, new_chunk
from app.services.insight.datapoints import Granularity, MetricKind, period_anchor


class ChunkStoreAdapter:
    """Chunk access for the rollup engine on top of the chunk/milestone store."""

    def __init__(self, insight_store: Any, *, load_limit: int = 1) -> None:
        self._insight_store = insight_store
        self._load_limit = max(1, load_limit)
        self._locks: dict[tuple[ChunkScope, MetricKind, Granularity], asyncio.Lock] = {}

    async def load_or_create(
        self,
        scope: ChunkScope,
        metric_kind: MetricKind,
        granularity: Granularity,
        timestamp: int,
    ) -> Chunk:
        """Chunk whose period contains `timestamp`; a fresh empty one when none is stored."""
        anchor = period_anchor(timestamp, granularity)
        result = await self._insight_store.load_chunks(scope, metric_kind, granularity, anchor, self._load_limit)
        if isinstance(result, Found):
            for chunk in result.value:
                if chunk.covers(timestamp):
                    return chunk
        return new_chunk(scope, metric_kind, granularity, timestamp)

    async def latest_watermark(
        self,
        scope: ChunkScope,
        metric_kind: MetricKind,
        granularity: Granularity,
        timestamp: int,
    ) -> int:
        """`accumulated_to` of the newest stored chunk at or before the period of `timestamp`; 0 when none."""
        anchor = period_anchor(timestamp, granularity)
        result = await self._insight_store.load_chunks(scope, metric_kind, granularity, anchor, self._load_limit)
        if isinstance(result, Found) and result.value:
            return max(chunk.accumulated_to for chunk in result.value)
        return 0

    async def put(self, chunk: Chunk) -> None:
        await self._insight_store.store_chunk(chunk)

    def lock_for(self, scope: ChunkScope, metric_kind: MetricKind, granularity: Granularity) -> asyncio.Lock:
        """Lock serializing every chunk write under `(scope, metric_kind, granularity)`."""
        key = (scope, metric_kind, granularity)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
