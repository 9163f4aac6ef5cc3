from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import error_boundary.main
from error_boundary.core.settings import get_settings


def test_healthz(client: TestClient) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers.get("X-Trace-Id")


def test_readyz_ready_by_default(client: TestClient) -> None:
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json() == {"status": "ready"}


def test_readyz_not_ready_without_webhook_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(error_boundary.main, "configure_logging", lambda level: None)
    monkeypatch.setenv("ERROR_BOUNDARY_NOTIFIER", "webhook")
    monkeypatch.delenv("ERROR_BOUNDARY_NOTIFY_WEBHOOK_URL", raising=False)
    get_settings.cache_clear()

    client = TestClient(error_boundary.main.create_app())
    r = client.get("/readyz")
    assert r.status_code == 503
    assert r.json() == {"status": "not_ready"}
