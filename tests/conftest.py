"""Shared test fixtures.

  make_settings — Settings built from explicit values only (no .env, no env vars).
  make_client   — FastAPI TestClient around create_app(make_settings(**overrides)).
  client        — TestClient with API_KEY="secret_value".
"""
import pytest

from speedup.config import Settings

_CONFIG_ENV_VARS = (
    "API_KEY", "JWT_SECRET", "AUTH_REQUIRED", "MAX_FILE_BYTES",
    "MAX_LOG_BYTES", "HOST", "PORT", "LOG_LEVEL",
)

API_KEY = "secret_value"
JWT_SECRET = "test-signing-secret-0123456789abcdef"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep the developer's shell config out of Settings()."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make


@pytest.fixture
def make_client(make_settings):
    from fastapi.testclient import TestClient
    from speedup.api.app import create_app

    opened = []

    def _make(**overrides) -> TestClient:
        c = TestClient(create_app(make_settings(**overrides)))
        c.__enter__()
        opened.append(c)
        return c

    yield _make

    for c in opened:
        c.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client(API_KEY=API_KEY)
