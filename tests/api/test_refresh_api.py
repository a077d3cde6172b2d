from fastapi.testclient import TestClient

from tests.api.conftest import CRON_SECRET


def test_refresh_status_when_fresh(client: TestClient):
    response = client.get("/api/bookmarks/refresh")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["needsRefresh"] is False
    assert data["bookmarksCount"] == 30
    assert data["isRefreshing"] is False


def test_anonymous_refresh_skipped_while_fresh(client: TestClient):
    response = client.post("/api/bookmarks/refresh")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "fresh"


def test_anonymous_refresh_rate_limited(client: TestClient):
    for _ in range(2):
        assert client.post("/api/bookmarks/refresh").status_code == 200

    response = client.post("/api/bookmarks/refresh")

    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) >= 1
    error = response.json()["error"]
    assert error["code"] == "RATE_LIMIT_EXCEEDED"
    assert error["retryable"] is True
    assert error["retry_after"] == int(response.headers["Retry-After"])


def test_stale_data_starts_background_refresh(make_client):
    client = make_client(seed=False)

    response = client.post("/api/bookmarks/refresh")

    assert response.status_code == 202
    assert response.json()["data"]["status"] in {"started", "in_progress"}


def test_cron_secret_forces_refresh(client: TestClient):
    headers = {"Authorization": f"Bearer {CRON_SECRET}"}
    container = client.app.state.container

    response = client.post("/api/bookmarks/refresh", headers=headers)

    assert response.status_code == 202
    assert response.json()["data"] == {"status": "started", "forced": True}

    client.portal.call(container.background.drain, 5)
    last_run = client.portal.call(container.service.repository.read_last_run)
    assert last_run.trigger == "cron"
    assert last_run.count == 5


def test_cron_secret_bypasses_rate_limit(client: TestClient):
    headers = {"Authorization": f"Bearer {CRON_SECRET}"}
    for _ in range(2):
        client.post("/api/bookmarks/refresh")

    response = client.post("/api/bookmarks/refresh", headers=headers)

    assert response.status_code == 202
