from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.collectors.insight.contracts import (
    NOT_FOUND,
    FilterOperator,
    Found,
    ListFilter,
    ListOptions,
    Order,
    SortDirection,
)
from app.collectors.insight.deployment_fetcher import DeploymentRangeFetcher
from app.collectors.insight.stores import SQLAlchemyDeploymentStore, SQLAlchemyInsightStore
from app.config.database import Base
from app.models import Deployment
from app.services.insight.chunk import Chunk, ChunkScope, Milestone
from app.services.insight.datapoints import ChangeFailureRate, Granularity, MetricKind
from insight_fakes import DAY, ts


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


def _seed(session_factory, rows) -> None:
    with session_factory() as db:
        db.add_all(rows)
        db.commit()


@pytest.mark.asyncio
async def test_deployment_store_applies_filters_orders_and_limit(session_factory) -> None:
    day = ts(2024, 6, 1)
    _seed(
        session_factory,
        [
            Deployment(id=f"d{index}", application_id="app-1", project_id="proj-1", status="DEPLOYMENT_SUCCESS", created_at=day + index)
            for index in range(5)
        ],
    )
    store = SQLAlchemyDeploymentStore(session_factory)

    records = await store.list_deployments(
        ListOptions(
            filters=(ListFilter("created_at", FilterOperator.GTE, day + 1), ListFilter("created_at", FilterOperator.LT, day + 4)),
            orders=(Order("created_at", SortDirection.DESC), Order("id", SortDirection.DESC)),
            page_size=2,
        )
    )

    assert [record.id for record in records] == ["d3", "d2"]
    assert records[0].completed_at == 0
    assert records[0].succeeded is True


@pytest.mark.asyncio
async def test_fetcher_over_sqlalchemy_store_drains_shared_timestamps(session_factory) -> None:
    day = ts(2024, 6, 1)
    _seed(
        session_factory,
        [
            Deployment(id=f"d{index:03d}", application_id="app-1", project_id="proj-1", status="DEPLOYMENT_SUCCESS", created_at=day + 3600)
            for index in range(12)
        ]
        + [Deployment(id="early", application_id="app-1", project_id="proj-1", status="DEPLOYMENT_SUCCESS", created_at=day)],
    )
    fetcher = DeploymentRangeFetcher(SQLAlchemyDeploymentStore(session_factory), page_size=5, backoff_base_seconds=0)

    records = await fetcher.fetch("created_at", day, day + DAY)

    assert len({record.id for record in records}) == 13


@pytest.mark.asyncio
async def test_milestone_round_trip(session_factory) -> None:
    store = SQLAlchemyInsightStore(session_factory)

    assert await store.load_milestone() is NOT_FOUND

    await store.store_milestone(Milestone(deployment_created_at_milestone=100, deployment_completed_at_milestone=50))
    await store.store_milestone(Milestone(deployment_created_at_milestone=200, deployment_completed_at_milestone=50))

    assert await store.load_milestone() == Found(Milestone(200, 50))


@pytest.mark.asyncio
async def test_chunk_upsert_keeps_highest_watermark_and_latest_points(session_factory) -> None:
    store = SQLAlchemyInsightStore(session_factory)
    scope = ChunkScope("proj-1")
    kind = MetricKind.CHANGE_FAILURE_RATE
    chunk = Chunk(
        scope=scope,
        metric_kind=kind,
        granularity=Granularity.MONTHLY,
        period_start=ts(2024, 1, 1),
        accumulated_to=ts(2024, 3, 1),
        data_points=[ChangeFailureRate.from_counts(ts(2024, 2, 1), 3, 1)],
    )
    await store.store_chunk(chunk)

    chunk.accumulated_to = ts(2024, 2, 1)
    chunk.data_points = [ChangeFailureRate.from_counts(ts(2024, 2, 1), 4, 1)]
    await store.store_chunk(chunk)

    result = await store.load_chunks(scope, kind, Granularity.MONTHLY, ts(2024, 1, 1))
    assert isinstance(result, Found)
    (loaded,) = result.value
    assert loaded.accumulated_to == ts(2024, 3, 1)
    assert loaded.data_points == [ChangeFailureRate.from_counts(ts(2024, 2, 1), 4, 1)]


@pytest.mark.asyncio
async def test_load_chunks_returns_latest_period_at_or_before_anchor(session_factory) -> None:
    store = SQLAlchemyInsightStore(session_factory)
    scope = ChunkScope("proj-1", "app-1")
    kind = MetricKind.DEPLOYMENT_FREQUENCY
    for year in (2022, 2023):
        await store.store_chunk(
            Chunk(scope=scope, metric_kind=kind, granularity=Granularity.MONTHLY, period_start=ts(year, 1, 1), accumulated_to=ts(year + 1, 1, 1))
        )

    latest = await store.load_chunks(scope, kind, Granularity.MONTHLY, ts(2024, 1, 1))
    missing = await store.load_chunks(ChunkScope("proj-1"), kind, Granularity.MONTHLY, ts(2024, 1, 1))

    assert [chunk.period_start for chunk in latest.value] == [ts(2023, 1, 1)]
    assert missing is NOT_FOUND
