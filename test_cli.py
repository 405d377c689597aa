#!/usr/bin/env python3
"""Tests for the registration client and CLI."""

import httpx
import pytest
from click.testing import CliRunner

from tunnelrelay import cli as cli_module
from tunnelrelay.client.register import RegistrationError, register_tunnel
from tunnelrelay.server import app as server_app
from tunnelrelay.server.store import RegistrationStore


@pytest.mark.asyncio
async def test_register_tunnel_against_proxy(redis, auth_token):
    server_app.configure(redis)
    transport = httpx.ASGITransport(app=server_app.app)

    result = await register_tunnel("http://proxy.test/", "https://abc.tunnel.example", auth_token,
                                   transport=transport)

    assert result["registeredUrl"] == "https://abc.tunnel.example"
    assert await RegistrationStore(redis).get_backend() == "https://abc.tunnel.example"


@pytest.mark.asyncio
async def test_register_tunnel_surfaces_rejection(redis, auth_token):
    server_app.configure(redis)
    transport = httpx.ASGITransport(app=server_app.app)

    with pytest.raises(RegistrationError) as exc_info:
        await register_tunnel("http://proxy.test", "http://localhost:8000", auth_token, transport=transport)

    assert exc_info.value.status_code == 400
    assert "localhost" in exc_info.value.help


@pytest.mark.asyncio
async def test_register_tunnel_unreachable_proxy(auth_token):
    def refused(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(RegistrationError) as exc_info:
        await register_tunnel("http://proxy.test", "https://abc.tunnel.example", auth_token,
                              transport=httpx.MockTransport(refused))

    assert exc_info.value.status_code == 0
    assert "Could not reach proxy" in str(exc_info.value)


def test_register_command(monkeypatch):
    calls = []

    async def fake_register(proxy_url, tunnel_url, token):
        calls.append((proxy_url, tunnel_url, token))
        return {"status": "success", "registeredUrl": tunnel_url, "timestamp": "2024-01-01T00:00:00+00:00"}

    monkeypatch.setattr(cli_module, "register_tunnel", fake_register)

    result = CliRunner().invoke(cli_module.cli, [
        "register", "--proxy-url", "https://proxy.example", "--url", "https://abc.tunnel.example",
        "--token", "secret",
    ])

    assert result.exit_code == 0, result.output
    assert calls == [("https://proxy.example", "https://abc.tunnel.example", "secret")]
    assert "Registered https://abc.tunnel.example" in result.output


def test_register_command_failure(monkeypatch):
    async def fake_register(proxy_url, tunnel_url, token):
        raise RegistrationError("Unauthorized registration", status_code=401)

    monkeypatch.setattr(cli_module, "register_tunnel", fake_register)

    result = CliRunner().invoke(cli_module.cli, [
        "register", "--proxy-url", "https://proxy.example", "--url", "https://abc.tunnel.example",
    ])

    assert result.exit_code == 1
    assert "Registration failed (401): Unauthorized registration" in result.output


def test_serve_command_passes_options(monkeypatch):
    calls = []
    monkeypatch.setattr(cli_module, "run_server", lambda **kwargs: calls.append(kwargs))

    result = CliRunner().invoke(cli_module.cli, [
        "--log-level", "DEBUG", "serve", "--port", "4000", "--redis-url", "redis://cache:6379/1",
    ])

    assert result.exit_code == 0, result.output
    assert calls == [{"host": "0.0.0.0", "port": 4000, "redis_url": "redis://cache:6379/1", "log_level": "DEBUG"}]
