from fastapi.testclient import TestClient

from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import BookmarkSourceError
from bookmarks_sync.infrastructure.lock import LockEntry


def test_cache_status_requires_token(client: TestClient):
    response = client.get("/api/cache/bookmarks")

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "UNAUTHORIZED"
    assert error["errorType"] == "authentication"
    assert error["retryable"] is False


def test_cache_status_rejects_wrong_token(client: TestClient):
    response = client.get("/api/cache/bookmarks", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_admin_key_not_configured(make_client):
    client = make_client(admin_api_key="")

    response = client.get("/api/cache/bookmarks", headers={"Authorization": "Bearer anything"})

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "CONFIGURATION_ERROR"
    assert error["details"] == {"config_key": "ADMIN_API_KEY"}


def test_cache_status(client: TestClient, admin_headers):
    client.get("/api/bookmarks")

    response = client.get("/api/cache/bookmarks", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["cache"]["bookmarks"] == 30
    assert data["status"]["lock"] is None
    assert data["status"]["needsRefresh"] is False


def test_forced_refresh(client: TestClient, admin_headers):
    response = client.post("/api/cache/bookmarks", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "refreshed"
    assert data["count"] == 5
    assert data["changed"] is True

    listing = client.get("/api/bookmarks").json()
    assert listing["meta"]["pagination"]["total"] == 5


def test_forced_refresh_conflicts_with_foreign_lock(client: TestClient, admin_headers):
    container = client.app.state.container
    entry = LockEntry(instance_id="other-instance", acquired_at=now_ms(), ttl_ms=300_000)
    client.portal.call(container.store.write_json, container.paths.lock, entry.to_wire())

    response = client.post("/api/cache/bookmarks", headers=admin_headers)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "CONFLICT"
    assert error["retryable"] is True


def test_clear_cache_variants(client: TestClient, admin_headers):
    client.get("/api/bookmarks/tags/python")

    by_tag = client.delete("/api/cache/bookmarks", params={"tag": "Python"}, headers=admin_headers)
    assert by_tag.json()["data"]["removed"] == 1

    by_id = client.delete(
        "/api/cache/bookmarks", params={"bookmark_id": "bm-1"}, headers=admin_headers
    )
    assert by_id.status_code == 200

    everything = client.delete("/api/cache/bookmarks", headers=admin_headers)
    assert everything.json()["data"]["message"].startswith("Bookmarks cache metadata cleared")


def test_system_status(client: TestClient, admin_headers):
    response = client.get("/api/system/status", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["scheduler"] == {"running": False, "nextRefresh": None}
    assert data["backgroundTasks"] == 0


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["components"]["store"]["status"] == "healthy"


class _FailingSource:
    async def fetch_all(self):
        msg = "Bookmarks API returned 500"
        raise BookmarkSourceError(msg, details={"status_code": 500})


def test_forced_refresh_source_failure_is_bad_gateway(client: TestClient, admin_headers):
    client.app.state.container.service.set_refresh_source(_FailingSource())

    response = client.post("/api/cache/bookmarks", headers=admin_headers)

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["code"] == "EXTERNAL_API_ERROR"
    assert error["errorType"] == "external_service"
    assert error["retryable"] is True
    assert error["details"] == {"service": "Bookmarks source"}
    assert "500" in error["message"]
