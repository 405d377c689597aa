import fakeredis
import httpx
import pytest

from tunnelrelay.server import app as server_app
from tunnelrelay.server.config import Config

AUTH_TOKEN = "test-registration-secret"
VERIFY_TOKEN = "test-verify-token"
WEBHOOK_PATH = "/api/social/webhook"


@pytest.fixture(autouse=True)
def proxy_config(monkeypatch):
    """Pin the secrets so tests don't depend on the environment."""
    monkeypatch.setattr(Config, "PROXY_AUTH_TOKEN", AUTH_TOKEN)
    monkeypatch.setattr(Config, "WEBHOOK_VERIFY_TOKEN", VERIFY_TOKEN)
    monkeypatch.setattr(Config, "WEBHOOK_PATH", WEBHOOK_PATH)


@pytest.fixture
def auth_token():
    return AUTH_TOKEN


@pytest.fixture
def verify_token():
    return VERIFY_TOKEN


@pytest.fixture
def webhook_path():
    return WEBHOOK_PATH


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def broken_redis():
    """A Redis client whose server refuses every command."""
    server = fakeredis.FakeServer()
    server.connected = False
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest.fixture
def make_proxy():
    """
    Build a test client for the proxy app.

    Pass a Redis client and, optionally, a handler standing in for the backend tunnel.
    """
    def _make(redis, backend_handler=None):
        transport = httpx.MockTransport(backend_handler) if backend_handler else None
        server_app.configure(redis, transport=transport)
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=server_app.app), base_url="http://proxy.test")
    return _make
