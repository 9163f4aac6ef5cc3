from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import sys
from typing import Any

import jwt
import pytest
from fastapi import Body, FastAPI, Request
from fastapi.testclient import TestClient


# Ensure `import error_boundary.*` works when pytest chooses an import mode
# that doesn't automatically add the project root to sys.path.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Import once at collection time: create_app() reconfigures root logging and
# would otherwise drop caplog's handler mid-test.
import error_boundary.main  # noqa: E402

from error_boundary.core.errors import AppError  # noqa: E402
from error_boundary.core.settings import get_settings  # noqa: E402


class RecordingNotifier:
    def __init__(self) -> None:
        self.reports: list[dict[str, str]] = []

    def notify(self, report: dict[str, str]) -> None:
        self.reports.append(report)


class FailingNotifier:
    def notify(self, report: dict[str, str]) -> None:
        raise RuntimeError("notifier down")


def _add_failing_routes(app: FastAPI) -> None:
    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("db password is hunter2")

    @app.get("/items/{item_id}")
    async def get_item(item_id: str) -> None:
        raise AppError(code="ITEM_NOT_FOUND", message="Item not found", status_code=404)

    @app.post("/login")
    async def login(payload: dict[str, Any] = Body(...)) -> None:
        raise AppError(
            code="BAD_CREDENTIALS",
            message="Wrong email or password",
            status_code=401,
        )

    @app.post("/raw-login")
    async def raw_login(request: Request) -> None:
        await request.body()
        raise AppError(
            code="BAD_CREDENTIALS",
            message="Wrong email or password",
            status_code=401,
        )

    @app.get("/expired")
    async def expired() -> None:
        raise jwt.ExpiredSignatureError("Signature has expired")

    @app.get("/limited")
    async def limited() -> None:
        raise AppError(code="RATE_LIMITED", message="Slow down", status_code=429)

    @app.get("/forbidden")
    async def forbidden() -> None:
        raise AppError(code="FORBIDDEN", message="Not allowed", status_code=403)


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Any:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_client(
    monkeypatch: pytest.MonkeyPatch, notifier: RecordingNotifier
) -> Callable[..., TestClient]:
    monkeypatch.setattr(error_boundary.main, "configure_logging", lambda level: None)

    def _make(environment: str = "production", sink: Any = None) -> TestClient:
        monkeypatch.setenv("ERROR_BOUNDARY_ENVIRONMENT", environment)
        monkeypatch.setenv("ERROR_BOUNDARY_NOTIFIER", "none")
        get_settings.cache_clear()

        app = error_boundary.main.create_app(notifier=sink or notifier)
        _add_failing_routes(app)
        return TestClient(app)

    return _make


@pytest.fixture()
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client("production")
