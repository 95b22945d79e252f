from datetime import datetime, timezone
from typing import Dict, Iterator

import fakeredis
import pytest
from fastapi.testclient import TestClient

from pastebin.config import settings
from pastebin.database import InMemoryStore, PasteDatabase
from pastebin.main import create_app

# 2026-01-01T00:00:00Z
BASE_TIME_MS = 1767225600000
MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


def at(offset_ms: int = 0) -> Dict[str, str]:
    """Request headers pinning the server clock to BASE_TIME_MS + offset."""
    return {"x-test-now-ms": str(BASE_TIME_MS + offset_ms)}


def base_time() -> datetime:
    return datetime.fromtimestamp(BASE_TIME_MS / 1000, tz=timezone.utc)


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "TEST_MODE", True)
    monkeypatch.setattr(settings, "APP_ENV", "development")
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "APP_DOMAIN", "http://testserver")
    return settings


@pytest.fixture(params=["memory", "redis"])
def db(request: pytest.FixtureRequest) -> PasteDatabase:
    """A store on the in-memory backend and on a Redis server (fakeredis, with Lua)."""
    if request.param == "memory":
        return PasteDatabase(client=InMemoryStore())
    return PasteDatabase(client=fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))


@pytest.fixture()
def client(db: PasteDatabase) -> Iterator[TestClient]:
    app = create_app(db)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def create_paste(client: TestClient):
    def _create(offset_ms: int = 0, **payload) -> dict:
        payload.setdefault("content", "hello")
        response = client.post("/api/pastes", json=payload, headers=at(offset_ms))
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
