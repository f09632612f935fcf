from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeNegotiator:
    def __init__(self, *, secret: str = "ek_test_secret", error: Exception | None = None) -> None:
        self.secret = secret
        self.error = error
        self.calls = 0

    async def negotiate(self):
        from realtime.sessions import NegotiatedSession

        self.calls += 1
        if self.error is not None:
            raise self.error
        return NegotiatedSession(
            client_secret=self.secret,
            expires_at=1_900_000_000,
            model="gpt-4o-realtime-preview",
            voice="alloy",
            audio_format="g711_ulaw",
        )


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    db_path = tmp_dir / "relay_test.db"

    # Must be set before importing modules that create the SQLAlchemy engine.
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    os.environ["DATA_DIR"] = str(tmp_dir)
    os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
    os.environ["PUBLIC_BASE_URL"] = "https://relay.example.com"
    os.environ["BOOTSTRAP_TIMEOUT_SECONDS"] = "5"

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "db.base",
        "db.models",
        "db.repository",
        "integrations.twilio_client",
        "api.dependencies",
        "api.twilio_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def negotiator() -> FakeNegotiator:
    return FakeNegotiator()


@pytest.fixture()
def client(app, negotiator):
    # Never reach OpenAI from tests.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_session_negotiator] = lambda: negotiator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
