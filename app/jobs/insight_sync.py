"""Scheduler-facing insight collection entrypoints."""

from __future__ import annotations

from typing import Any, Sequence

from app.orchestrator_insight import ALL_OPERATIONS, InsightCollectorOrchestrator


def normalize_operation_selector(
    operations: str | Sequence[str] | None,
    *,
    default: Sequence[str] = ALL_OPERATIONS,
) -> list[str]:
    """Normalize operation selector input into deterministic operation order."""
    if operations is None:
        return list(default)

    if isinstance(operations, str):
        requested = [part.strip().lower() for part in operations.split(",") if part.strip()]
    else:
        requested = [str(part).strip().lower() for part in operations if str(part).strip()]

    if not requested or "all" in requested:
        return list(default)

    allowed = set(ALL_OPERATIONS)
    deduped: list[str] = []
    seen: set[str] = set()
    for operation in requested:
        if operation not in allowed or operation in seen:
            continue
        seen.add(operation)
        deduped.append(operation)
    return deduped or list(default)


async def run_insight_collection(
    *,
    orchestrator: InsightCollectorOrchestrator | None = None,
    operations: str | Sequence[str] | None = None,
    target_date: int | None = None,
) -> dict[str, Any]:
    """Process newly created and/or newly completed deployments up to today (UTC)."""
    job_orchestrator = orchestrator or InsightCollectorOrchestrator()
    selected = normalize_operation_selector(operations)
    return await job_orchestrator.run(operations=selected, target_date=target_date)


def parse_target_date(raw: Any) -> int | None:
    """Parse an optional unix-seconds target date from event payloads."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None
