from __future__ import annotations

from leadscout.main import app
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.repositories import InMemoryJobStore
from leadscout.services.leadgen.runner import get_job_manager


class UnreachableStore(InMemoryJobStore):
    def ping(self) -> bool:
        return False


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_job_store(client):
    app.dependency_overrides[get_job_manager] = lambda: JobManager(InMemoryJobStore())

    response = client.get("/health/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert isinstance(body["search_providers"], list)


def test_readiness_fails_when_store_is_down(client):
    app.dependency_overrides[get_job_manager] = lambda: JobManager(UnreachableStore())

    response = client.get("/health/ready")

    assert response.status_code == 503


def test_root_endpoint(client):
    assert client.get("/").json()["version"]
