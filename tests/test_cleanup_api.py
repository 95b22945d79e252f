import pytest
from fastapi.testclient import TestClient

from conftest import DAY_MS, MINUTE_MS, at
from pastebin.config import Settings
from pastebin.database import PasteDatabase

SECRET = "s3cret-token"


@pytest.fixture()
def with_secret(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(test_settings, "CRON_SECRET", SECRET)
    return SECRET


def _auth(offset_ms: int = 0) -> dict:
    return {**at(offset_ms), "Authorization": f"Bearer {SECRET}"}


def test_cleanup_open_in_development_without_secret(client: TestClient) -> None:
    response = client.get("/api/cleanup", headers=at())
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_cleanup_requires_bearer_token(client: TestClient, with_secret: str) -> None:
    missing = client.get("/api/cleanup")
    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "UNAUTHORIZED"

    wrong = client.get("/api/cleanup", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401

    assert client.get("/api/cleanup", headers=_auth()).status_code == 200


def test_stats_and_purge_require_bearer_token(client: TestClient, with_secret: str) -> None:
    assert client.get("/api/cleanup/stats").status_code == 401
    assert client.post("/api/cleanup/purge").status_code == 401


def test_missing_secret_in_production_is_misconfiguration(
    client: TestClient, test_settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(test_settings, "APP_ENV", "production")

    response = client.get("/api/cleanup")

    assert response.status_code == 500
    assert response.json()["error"] == {"code": "INTERNAL_ERROR", "message": "Server misconfiguration"}


def test_cleanup_sweeps_expired_pastes(
    client: TestClient, create_paste, db: PasteDatabase, with_secret: str
) -> None:
    expiring = create_paste(expiresIn=1)["id"]
    create_paste(content="forever")

    response = client.get("/api/cleanup", headers=_auth(2 * MINUTE_MS))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["cleaned"] == {"timeExpired": 1, "viewExpired": 0, "total": 1}
    assert data["statistics"]["totalExpired"] == 1
    assert data["statistics"]["totalActive"] == 1
    assert data["statistics"]["oldestActiveDate"] is not None
    assert data["duration"].endswith("ms")
    assert db.get_paste(expiring).is_expired is True

    again = client.get("/api/cleanup", headers=_auth(2 * MINUTE_MS))
    assert again.json()["data"]["cleaned"]["total"] == 0


def test_purge_deletes_old_expired_pastes(
    client: TestClient, create_paste, db: PasteDatabase, with_secret: str
) -> None:
    expiring = create_paste(expiresIn=1)["id"]
    active = create_paste(content="keep me")["id"]
    client.get("/api/cleanup", headers=_auth(2 * MINUTE_MS))

    response = client.post("/api/cleanup/purge?retentionDays=7", headers=_auth(8 * DAY_MS))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["purged"] == 1
    assert data["retentionDays"] == 7
    assert db.get_paste(expiring) is None
    assert db.get_paste(active) is not None

    assert client.get(f"/api/pastes/{expiring}", headers=at(8 * DAY_MS)).status_code == 404


def test_purge_defaults_to_seven_days(
    client: TestClient, create_paste, db: PasteDatabase, with_secret: str
) -> None:
    expiring = create_paste(expiresIn=1)["id"]
    client.get("/api/cleanup", headers=_auth(2 * MINUTE_MS))

    early = client.post("/api/cleanup/purge", headers=_auth(6 * DAY_MS))
    assert early.json()["data"]["retentionDays"] == 7
    assert early.json()["data"]["purged"] == 0
    assert db.get_paste(expiring) is not None


def test_purge_rejects_negative_retention(client: TestClient, with_secret: str) -> None:
    response = client.post("/api/cleanup/purge?retentionDays=-1", headers=_auth())
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_stats_report(client: TestClient, create_paste, with_secret: str) -> None:
    create_paste(language="python")
    create_paste(language="python", maxViews=1)
    create_paste(expiresIn=10)
    paste_id = create_paste(language="go")["id"]
    client.get(f"/api/pastes/{paste_id}", headers=at())

    response = client.get("/api/cleanup/stats", headers=_auth())

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totals"] == {"pastes": 4, "active": 4, "expired": 0, "totalViews": 1}
    assert data["expirationTypes"] == {"withTimeExpiry": 1, "withViewLimit": 1, "noExpiry": 2}
    assert data["topLanguages"][0] == {"language": "python", "count": 2}
    assert {"language": "plain text", "count": 1} in data["topLanguages"]


def test_cleanup_is_rate_limited(client: TestClient, with_secret: str) -> None:
    for _ in range(10):
        assert client.get("/api/cleanup", headers=_auth()).status_code == 200

    response = client.get("/api/cleanup", headers=_auth())
    assert response.status_code == 429
    assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
