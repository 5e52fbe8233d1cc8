from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from leadscout.main import app
from leadscout.models.profile import TargetProfile
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.repositories import InMemoryJobStore
from tests.helpers.metrics_stub import StubMetrics

RUN_AT = datetime(2024, 11, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def profile() -> TargetProfile:
    return TargetProfile(
        industries=["SaaS"],
        size_band={"min_employees": 50, "max_employees": 500},
        target_titles=["VP Sales"],
    )


@pytest.fixture
def job_manager() -> JobManager:
    return JobManager(InMemoryJobStore())


@pytest.fixture
def stub_metrics(monkeypatch) -> StubMetrics:
    """Route every pipeline metric into one recorder."""
    from leadscout.services.leadgen import discovery, jobs, orchestrator, repositories

    recorder = StubMetrics()
    for module in (discovery, jobs, orchestrator, repositories):
        monkeypatch.setattr(module, "metrics", recorder)
    return recorder
