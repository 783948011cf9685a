from __future__ import annotations

import pytest

from insight_fakes import FakeInsightStore


@pytest.fixture
def insight_store() -> FakeInsightStore:
    return FakeInsightStore()
