"""Boundary-safe paginated retrieval of deployments in a timestamp range."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.collectors.insight.contracts import (
    DeploymentFetchError,
    DeploymentRecord,
    FilterOperator,
    ListFilter,
    ListOptions,
    Order,
    SortDirection,
    TransientStoreError,
)
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

TIEBREAK_FIELD = "id"


class DeploymentRangeFetcher:
    """Fetches every deployment whose `field` lies in `[from, to)` under a page size cap.

    Pages are walked newest first by `(field, id)`. When a full page ends on
    timestamp `b`, the rest of the `b` group is drained by descending id
    before the upper bound moves below `b`, so siblings sharing the boundary
    timestamp are never dropped.
    """

    def __init__(
        self,
        record_store: Any,
        *,
        page_size: int = 50,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 8.0,
    ) -> None:
        self._record_store = record_store
        self._page_size = max(1, page_size)
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_seconds = backoff_base_seconds
        self._backoff_max_seconds = backoff_max_seconds

    async def fetch(self, field: str, range_from: int, range_to: int) -> list[DeploymentRecord]:
        deployments: list[DeploymentRecord] = []
        seen_ids: set[str] = set()
        upper_bound = range_to
        pages = 0

        while True:
            page = await self._list_page(
                ListOptions(
                    filters=(
                        ListFilter(field, FilterOperator.GTE, range_from),
                        ListFilter(field, FilterOperator.LT, upper_bound),
                    ),
                    orders=(Order(field, SortDirection.DESC), Order(TIEBREAK_FIELD, SortDirection.DESC)),
                    page_size=self._page_size,
                )
            )
            pages += 1
            if not page:
                break

            self._collect(page, deployments, seen_ids)
            boundary = min(getattr(record, field) for record in page)
            if len(page) >= self._page_size:
                pages += await self._drain_boundary(field, boundary, page, deployments, seen_ids)
            upper_bound = boundary

            # Cancellation checkpoint between page requests.
            await asyncio.sleep(0)

        logger.info(
            "Fetched deployments in range",
            extra=sanitize_log_extra(field=field, range_from=range_from, range_to=range_to, pages=pages, count=len(deployments)),
        )
        return deployments

    async def _drain_boundary(
        self,
        field: str,
        boundary: int,
        page: list[DeploymentRecord],
        deployments: list[DeploymentRecord],
        seen_ids: set[str],
    ) -> int:
        cursor = min(record.id for record in page if getattr(record, field) == boundary)
        pages = 0
        while True:
            await asyncio.sleep(0)
            group_page = await self._list_page(
                ListOptions(
                    filters=(
                        ListFilter(field, FilterOperator.GTE, boundary),
                        ListFilter(field, FilterOperator.LT, boundary + 1),
                        ListFilter(TIEBREAK_FIELD, FilterOperator.LT, cursor),
                    ),
                    orders=(Order(TIEBREAK_FIELD, SortDirection.DESC),),
                    page_size=self._page_size,
                )
            )
            pages += 1
            if not group_page:
                return pages
            self._collect(group_page, deployments, seen_ids)
            cursor = min(record.id for record in group_page)

    @staticmethod
    def _collect(page: list[DeploymentRecord], deployments: list[DeploymentRecord], seen_ids: set[str]) -> None:
        for record in page:
            if record.id in seen_ids:
                continue
            seen_ids.add(record.id)
            deployments.append(record)

    async def _list_page(self, options: ListOptions) -> list[DeploymentRecord]:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(TransientStoreError),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    return list(await self._record_store.list_deployments(options))
        except TransientStoreError as exc:
            raise DeploymentFetchError(
                f"Deployment page request failed after {self._max_attempts} attempts: {exc}"
            ) from exc

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "Retrying deployment page request",
            extra=sanitize_log_extra(
                attempt=retry_state.attempt_number,
                error=outcome.exception() if outcome is not None else None,
            ),
        )
