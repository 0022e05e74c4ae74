"""Tests for the host runner.

Covers:
- Bind failures are fatal before serving (StartupError, exit code 1)
- Invalid settings and configuration errors exit with code 1
- A live listener serves requests and shuts down gracefully, letting
  in-flight requests finish
"""

import asyncio
import socket
from collections.abc import Generator

import httpx
import pytest
from fastapi import APIRouter

from fintrack import server
from fintrack.app import create_app
from fintrack.errors import ConfigurationError, StartupError
from fintrack.server import HostRunner, bind_socket
from tests.helpers import health_router, make_settings


@pytest.fixture
def occupied_port() -> Generator[int, None, None]:
    """A port that already has a listener on it."""
    sock = socket.create_server(("127.0.0.1", 0))
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


@pytest.fixture
def free_port() -> int:
    """A port that was free a moment ago."""
    with socket.create_server(("127.0.0.1", 0)) as sock:
        return sock.getsockname()[1]


def slow_router() -> APIRouter:
    router = APIRouter()

    @router.get("/slow")
    async def slow() -> dict:
        await asyncio.sleep(0.5)
        return {"done": True}

    return router


class TestBind:
    """Tests for listener binding."""

    def test_bind_socket_ephemeral_port(self):
        sock = bind_socket("127.0.0.1", 0)
        try:
            assert sock.getsockname()[1] > 0
        finally:
            sock.close()

    def test_bind_socket_in_use_raises_startup_error(self, occupied_port: int):
        with pytest.raises(StartupError, match=f"127.0.0.1:{occupied_port}"):
            bind_socket("127.0.0.1", occupied_port)

    def test_runner_binds_plain_listener(self):
        settings = make_settings(HTTP_PORT=0)
        runner = HostRunner(settings, create_app(settings))
        try:
            listeners = runner.bind()

            assert [item.name for item in listeners] == ["http"]
            assert listeners[0].secure is False
            assert len(runner.servers) == 1
        finally:
            runner.close()

    def test_tls_listener_failure_closes_plain_listener(self, occupied_port: int):
        settings = make_settings(
            HTTP_PORT=0,
            HTTPS_PORT=occupied_port,
            SSL_CERTFILE="cert.pem",
            SSL_KEYFILE="key.pem",
        )
        runner = HostRunner(settings, create_app(settings))

        with pytest.raises(StartupError):
            runner.bind()

        assert len(runner.listeners) == 1
        assert runner.listeners[0].sock.fileno() == -1
        assert runner.servers == []

    def test_missing_certificate_fails_at_bind(self, tmp_path, free_port: int):
        """TLS files are loaded before serving, not inside the accept loop."""
        settings = make_settings(
            HTTP_PORT=0,
            HTTPS_PORT=free_port,
            SSL_CERTFILE=str(tmp_path / "missing-cert.pem"),
            SSL_KEYFILE=str(tmp_path / "missing-key.pem"),
        )
        runner = HostRunner(settings, create_app(settings))

        with pytest.raises(StartupError, match="https listener"):
            runner.bind()

        assert [item.name for item in runner.listeners] == ["http", "https"]
        assert all(item.sock.fileno() == -1 for item in runner.listeners)
        assert runner.servers == []

    def test_serve_before_bind_rejected(self):
        settings = make_settings(HTTP_PORT=0)
        runner = HostRunner(settings, create_app(settings))

        with pytest.raises(StartupError, match="before bind"):
            asyncio.run(runner.serve())

    def test_shutdown_flags_every_server(self):
        settings = make_settings(HTTP_PORT=0)
        runner = HostRunner(settings, create_app(settings))
        try:
            runner.bind()
            runner.shutdown()

            assert all(s.should_exit for s in runner.servers)
        finally:
            runner.close()


class TestMainExitCodes:
    """main() returns non-zero when startup fails."""

    def test_bind_failure_exits_1(self, monkeypatch, occupied_port: int):
        monkeypatch.setenv("HTTP_PORT", str(occupied_port))
        monkeypatch.delenv("HTTPS_PORT", raising=False)
        monkeypatch.delenv("SSL_CERTFILE", raising=False)
        monkeypatch.delenv("SSL_KEYFILE", raising=False)

        assert server.main() == 1

    def test_missing_certificate_exits_1(self, monkeypatch, tmp_path, free_port: int):
        monkeypatch.setenv("HTTP_PORT", "0")
        monkeypatch.setenv("HTTPS_PORT", str(free_port))
        monkeypatch.setenv("SSL_CERTFILE", str(tmp_path / "missing-cert.pem"))
        monkeypatch.setenv("SSL_KEYFILE", str(tmp_path / "missing-key.pem"))

        assert server.main() == 1

    def test_invalid_settings_exit_1(self, monkeypatch):
        monkeypatch.setenv("HTTPS_REDIRECT_STATUS", "200")

        assert server.main() == 1

    def test_configuration_error_exits_1(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "0")

        def broken_app(settings):
            raise ConfigurationError("Capability 'docs_ui' requires 'api_description'")

        monkeypatch.setattr(server, "create_app", broken_app)

        assert server.main() == 1


class TestServeLifecycle:
    """A real listener serves and shuts down gracefully."""

    @staticmethod
    async def _wait_started(runner: HostRunner) -> None:
        for _ in range(200):
            if runner.started:
                return
            await asyncio.sleep(0.025)
        raise AssertionError("server did not start")

    def test_serves_then_shuts_down(self):
        settings = make_settings(FINTRACK_ENV="production", HTTP_PORT=0)
        runner = HostRunner(settings, create_app(settings, controllers=[health_router()]))
        port = runner.bind()[0].port

        async def scenario() -> httpx.Response:
            serving = asyncio.create_task(runner.serve())
            await self._wait_started(runner)
            async with httpx.AsyncClient() as client:
                response = await client.get(f"http://127.0.0.1:{port}/health")
            runner.shutdown()
            await asyncio.wait_for(serving, timeout=10)
            return response

        response = asyncio.run(scenario())

        assert response.status_code == 200
        assert response.text == "ok"
        assert runner.started
        assert runner.listeners[0].sock.fileno() == -1

    def test_in_flight_request_completes_after_shutdown(self):
        settings = make_settings(FINTRACK_ENV="production", HTTP_PORT=0)
        runner = HostRunner(settings, create_app(settings, controllers=[slow_router()]))
        port = runner.bind()[0].port

        async def scenario() -> httpx.Response:
            serving = asyncio.create_task(runner.serve())
            await self._wait_started(runner)
            async with httpx.AsyncClient(timeout=10) as client:
                in_flight = asyncio.create_task(client.get(f"http://127.0.0.1:{port}/slow"))
                await asyncio.sleep(0.2)
                runner.shutdown()
                response = await in_flight
            await asyncio.wait_for(serving, timeout=10)
            return response

        response = asyncio.run(scenario())

        assert response.status_code == 200
        assert response.json() == {"done": True}
