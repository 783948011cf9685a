"""Process-wide watermarks gating which deployments are newly seen."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.services.insight.chunk import Milestone
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

CREATED_AT_MILESTONE = "deployment_created_at_milestone"
COMPLETED_AT_MILESTONE = "deployment_completed_at_milestone"
MILESTONE_FIELDS = (CREATED_AT_MILESTONE, COMPLETED_AT_MILESTONE)


class MilestoneTracker:
    """Loads and stores the milestone singleton."""

    def __init__(self, insight_store: Any) -> None:
        self._insight_store = insight_store
        self._lock = asyncio.Lock()

    async def load(self) -> Milestone:
        """Stored milestone, or a zero-valued one on the first run."""
        result = await self._insight_store.load_milestone()
        return result.or_else(Milestone)

    async def store(self, milestone: Milestone) -> None:
        await self._insight_store.store_milestone(milestone)

    async def advance(self, field: str, target: int) -> Milestone:
        """Move one watermark forward to `target`, leaving the other untouched.

        The read-modify-write runs under a lock so the created-at and
        completed-at operations can advance their own fields concurrently.
        """
        if field not in MILESTONE_FIELDS:
            raise ValueError(f"Unknown milestone field: {field}")

        async with self._lock:
            milestone = await self.load()
            current = getattr(milestone, field)
            if target <= current:
                return milestone
            setattr(milestone, field, target)
            await self.store(milestone)

        logger.info(
            "Milestone advanced",
            extra=sanitize_log_extra(milestone_field=field, previous=current, current=target),
        )
        return milestone
