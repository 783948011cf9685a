"""Insight collector orchestrator: watermarked, entity-isolated metric rollups."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Sequence

from app.collectors.insight.chunk_store import ChunkStoreAdapter
from app.collectors.insight.collector_config import InsightCollectorConfig
from app.collectors.insight.contracts import DeploymentFetchError, DeploymentRecord, TransientStoreError
from app.collectors.insight.deployment_fetcher import DeploymentRangeFetcher
from app.collectors.insight.milestone import COMPLETED_AT_MILESTONE, CREATED_AT_MILESTONE, MilestoneTracker
from app.collectors.insight.rollup_stage import RollupEngine
from app.collectors.insight.stores import SQLAlchemyDeploymentStore, SQLAlchemyInsightStore
from app.config.database import SessionLocal
from app.services.insight.chunk import ChunkScope
from app.services.insight.datapoints import Granularity, MetricKind, normalize_time
from app.services.insight.grouping import group_deployments
from app.utils.log_sanitizer import sanitize_for_log, sanitize_log_extra

logger = logging.getLogger(__name__)

OPERATION_CREATED = "created"
OPERATION_COMPLETED = "completed"

ALL_OPERATIONS = (OPERATION_CREATED, OPERATION_COMPLETED)

_OPERATION_SOURCES = {
    OPERATION_CREATED: ("created_at", CREATED_AT_MILESTONE),
    OPERATION_COMPLETED: ("completed_at", COMPLETED_AT_MILESTONE),
}


class InsightCollectorOrchestrator:
    """Runs the newly-created and newly-completed deployment rollups."""

    def __init__(
        self,
        *,
        config: InsightCollectorConfig | None = None,
        session_factory: Callable[[], Any] = SessionLocal,
        record_store: Any | None = None,
        insight_store: Any | None = None,
        fetcher: Any | None = None,
        rollup_engine: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or InsightCollectorConfig()
        record_store = record_store or SQLAlchemyDeploymentStore(session_factory)
        insight_store = insight_store or SQLAlchemyInsightStore(session_factory)

        self._milestones = MilestoneTracker(insight_store)
        self._chunk_store = ChunkStoreAdapter(insight_store)
        self._fetcher = fetcher or DeploymentRangeFetcher(
            record_store,
            page_size=self._config.page_size,
            max_attempts=self._config.fetch_max_attempts,
            backoff_base_seconds=self._config.fetch_backoff_base_seconds,
            backoff_max_seconds=self._config.fetch_backoff_max_seconds,
        )
        self._rollup_engine = rollup_engine or RollupEngine(
            self._chunk_store,
            granularities=self._config.rollup_granularities,
        )
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(
        self,
        *,
        operations: Sequence[str] | None = None,
        target_date: int | None = None,
    ) -> dict[str, Any]:
        """Run the selected operations concurrently; they share no chunk keys or milestone fields."""
        selected = tuple(operations or ALL_OPERATIONS)
        started_at = datetime.now(UTC).isoformat()
        target = self._resolve_target_date(target_date)

        runners = {
            OPERATION_CREATED: self.process_newly_created_deployments,
            OPERATION_COMPLETED: self.process_newly_completed_deployments,
        }
        run_stats: dict[str, Any] = {
            "started_at": started_at,
            "target_date": target,
            "operations_requested": list(selected),
            "operations": {},
            "errors": [],
        }

        unknown = [name for name in selected if name not in runners]
        for name in unknown:
            run_stats["operations"][name] = {"success": False, "error": f"Unknown operation: {name}", "stats": {}}
            run_stats["errors"].append(f"{name}: unknown operation")
            logger.warning("Insight collector received unknown operation", extra=sanitize_log_extra(operation=name))

        known = [name for name in selected if name in runners]
        results = await asyncio.gather(*(runners[name](target_date=target) for name in known))
        for name, result in zip(known, results):
            run_stats["operations"][name] = result
            run_stats["errors"].extend(f"{name}: {error}" for error in result.get("errors", []))

        run_stats["completed_at"] = datetime.now(UTC).isoformat()
        run_stats["success"] = all(item.get("success", False) for item in run_stats["operations"].values())
        return run_stats

    async def process_newly_created_deployments(self, *, target_date: int | None = None) -> dict[str, Any]:
        return await self._process(
            OPERATION_CREATED,
            metric_kinds=self._config.created_at_metrics,
            target_date=target_date,
        )

    async def process_newly_completed_deployments(self, *, target_date: int | None = None) -> dict[str, Any]:
        return await self._process(
            OPERATION_COMPLETED,
            metric_kinds=self._config.completed_at_metrics,
            target_date=target_date,
        )

    async def _process(
        self,
        operation: str,
        *,
        metric_kinds: Sequence[MetricKind],
        target_date: int | None,
    ) -> dict[str, Any]:
        source_field, milestone_field = _OPERATION_SOURCES[operation]
        target = self._resolve_target_date(target_date)
        stats: dict[str, Any] = {
            "deployments": 0,
            "applications": 0,
            "projects": 0,
            "failed_entities": 0,
            "skipped_deployments": 0,
            "chunks_written": 0,
            "points_merged": 0,
            "failure_reasons": [],
        }
        result: dict[str, Any] = {
            "operation": operation,
            "success": False,
            "target_date": target,
            "window": {},
            "milestone_advanced": False,
            "stats": stats,
            "errors": [],
            "error": None,
        }

        try:
            milestone = await self._milestones.load()
        except TransientStoreError as exc:
            return self._fail(result, f"milestone load failed: {exc}")

        window_from = getattr(milestone, milestone_field)
        result["window"] = {"field": source_field, "from": window_from, "to": target}
        logger.info(
            "Insight collection started",
            extra=sanitize_log_extra(operation=operation, window=result["window"], metric_kinds=[kind.value for kind in metric_kinds]),
        )

        if window_from >= target:
            result["success"] = True
            result["skipped"] = True
            stats["reason"] = "Milestone already at or beyond target date"
            return result

        try:
            deployments = await self._fetcher.fetch(source_field, window_from, target)
        except DeploymentFetchError as exc:
            logger.exception(
                "Deployment range fetch aborted",
                extra=sanitize_log_extra(operation=operation, error=str(exc)),
            )
            return self._fail(result, str(exc))

        stats["deployments"] = len(deployments)
        by_application, by_project = group_deployments(deployments)
        stats["applications"] = sum(1 for application_id in by_application if application_id)
        stats["projects"] = len(by_project)

        entities: list[tuple[ChunkScope, list[DeploymentRecord]]] = []
        for application_id, items in by_application.items():
            scope = ChunkScope(project_id=items[0].project_id, application_id=application_id)
            # An empty application id would alias the project-level chunk key.
            if scope.is_project_level:
                stats["skipped_deployments"] += len(items)
                logger.warning(
                    "Skipping deployments without application id",
                    extra=sanitize_log_extra(operation=operation, project_id=scope.project_id, count=len(items)),
                )
                continue
            entities.append((scope, items))
        entities.extend(
            (ChunkScope(project_id=project_id), items) for project_id, items in by_project.items()
        )

        semaphore = asyncio.Semaphore(self._config.entity_concurrency)

        async def _run_entity(scope: ChunkScope, items: list[DeploymentRecord]) -> None:
            async with semaphore:
                for kind in metric_kinds:
                    try:
                        rollup = await self._rollup_engine.update_chunks(
                            scope,
                            kind,
                            items,
                            target_date=target,
                            window_from=window_from,
                        )
                        stats["chunks_written"] += rollup.chunks_written
                        stats["points_merged"] += rollup.points_merged
                    except Exception as exc:
                        error = sanitize_for_log(str(exc), key="error")
                        stats["failed_entities"] += 1
                        stats["failure_reasons"].append({"scope": str(scope), "metric_kind": kind.value, "reason": error})
                        result["errors"].append(f"{scope}: {error}")
                        result["error"] = error
                        logger.warning(
                            "Insight rollup failed for entity",
                            extra=sanitize_log_extra(operation=operation, scope=str(scope), metric_kind=kind.value, error=error),
                        )
                        return

        await asyncio.gather(*(_run_entity(scope, items) for scope, items in entities))

        if stats["failed_entities"]:
            logger.warning(
                "Milestone withheld after entity failures",
                extra=sanitize_log_extra(operation=operation, failed_entities=stats["failed_entities"], milestone_field=milestone_field),
            )
        else:
            try:
                await self._milestones.advance(milestone_field, target)
                result["milestone_advanced"] = True
                result["success"] = True
            except TransientStoreError as exc:
                return self._fail(result, f"milestone store failed: {exc}")

        logger.info(
            "Insight collection completed",
            extra=sanitize_log_extra(
                operation=operation,
                success=result["success"],
                deployments=stats["deployments"],
                failed_entities=stats["failed_entities"],
                chunks_written=stats["chunks_written"],
            ),
        )
        return result

    def _resolve_target_date(self, target_date: int | None) -> int:
        if target_date is not None:
            return normalize_time(int(target_date), Granularity.DAILY)
        return normalize_time(int(self._clock().timestamp()), Granularity.DAILY)

    @staticmethod
    def _fail(result: dict[str, Any], error: str) -> dict[str, Any]:
        sanitized = sanitize_for_log(error, key="error")
        result["success"] = False
        result["error"] = sanitized
        result["errors"].append(sanitized)
        return result
