"""Process entry point and host lifecycle.

Startup order:
1. Read settings (environment flag included)
2. Configure logging
3. Build the service registry and request pipeline (create_app)
4. Bind listening sockets: plain HTTP, plus TLS when SSL_CERTFILE is set
5. Serve every listener with its own uvicorn server on one event loop
6. On SIGINT/SIGTERM stop accepting connections, let in-flight requests
   finish, then exit

Any failure in steps 1-4, TLS certificate loading included, exits with status 1
before a connection is accepted.
A graceful shutdown exits with status 0.

Run with: fintrack-api  (or: python -m fintrack)
"""

import asyncio
import contextlib
import signal
import socket
import sys
from collections.abc import Iterator
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError

from fintrack.app import add_request_id_middleware, create_app
from fintrack.config import Settings, get_settings
from fintrack.errors import ConfigurationError, StartupError
from fintrack.logging import configure_logging, get_logger

logger = get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(frozen=True)
class Listener:
    """A bound listening socket."""

    name: str
    sock: socket.socket
    secure: bool

    @property
    def port(self) -> int:
        return self.sock.getsockname()[1]


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a TCP listening socket.

    Raises:
        StartupError: If the address cannot be bound.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family)
    except OSError as exc:
        raise StartupError(f"Could not bind {host}:{port}: {exc.strerror or exc}") from exc


class ManagedServer(uvicorn.Server):
    """uvicorn server whose shutdown is driven by HostRunner.

    uvicorn normally installs its own signal handlers per server; with more
    than one server on a loop only one of them would see the signal.
    """

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class HostRunner:
    """Owns the listeners and servers for one process."""

    def __init__(self, settings: Settings, app: FastAPI):
        self.settings = settings
        self.app = app
        self.listeners: list[Listener] = []
        self.servers: list[ManagedServer] = []

    def bind(self) -> list[Listener]:
        """Bind every configured listener.

        Each server's config is loaded here, so TLS certificates are read
        before anything is served. Sockets bound before a failure are closed
        again.

        Raises:
            StartupError: If any listener cannot be bound or its config loaded.
        """
        settings = self.settings
        wanted = [("http", settings.http_port, False)]
        if settings.serves_tls:
            wanted.append(("https", settings.https_port, True))

        try:
            for name, port, secure in wanted:
                sock = bind_socket(settings.http_host, port)
                listener = Listener(name=name, sock=sock, secure=secure)
                self.listeners.append(listener)
                logger.info(
                    "listener_bound", listener=name, host=settings.http_host, port=listener.port
                )
            self.servers = [
                self._make_server(listener, primary=(index == 0))
                for index, listener in enumerate(self.listeners)
            ]
        except StartupError:
            self.close()
            raise

        return self.listeners

    def _make_server(self, listener: Listener, primary: bool) -> ManagedServer:
        settings = self.settings
        config = uvicorn.Config(
            self.app,
            # The app's lifespan runs once, on the primary server.
            lifespan="on" if primary else "off",
            log_config=None,
            access_log=False,
            proxy_headers=True,
            forwarded_allow_ips=settings.forwarded_allow_ips,
            ssl_certfile=settings.ssl_certfile if listener.secure else None,
            ssl_keyfile=settings.ssl_keyfile if listener.secure else None,
        )
        try:
            config.load()
        except OSError as exc:
            # ssl.SSLError is an OSError too
            raise StartupError(f"Could not configure {listener.name} listener: {exc}") from exc
        return ManagedServer(config)

    async def serve(self) -> None:
        """Serve all listeners until shutdown() is called or a signal arrives."""
        if not self.servers:
            raise StartupError("HostRunner.serve() called before bind()")

        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.shutdown, sig)

        logger.info(
            "host_started",
            env=self.settings.fintrack_env.value,
            listeners=[f"{item.name}:{item.port}" for item in self.listeners],
        )
        try:
            await asyncio.gather(
                *(
                    server.serve(sockets=[listener.sock])
                    for server, listener in zip(self.servers, self.listeners)
                )
            )
        finally:
            for sig in SHUTDOWN_SIGNALS:
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)
            self.close()

        logger.info("host_stopped")

    def shutdown(self, sig: signal.Signals | None = None) -> None:
        """Stop accepting connections; in-flight requests run to completion."""
        logger.info("host_shutdown_requested", signal=sig.name if sig else None)
        for server in self.servers:
            server.should_exit = True

    def close(self) -> None:
        for listener in self.listeners:
            listener.sock.close()

    @property
    def started(self) -> bool:
        return bool(self.servers) and all(server.started for server in self.servers)


def main() -> int:
    """Run the host. Returns the process exit code."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging()
        logger.error("startup_failed", reason="invalid_settings", error=str(exc))
        return 1

    configure_logging(json_format=settings.log_json)

    try:
        app = create_app(settings)
    except ConfigurationError as exc:
        logger.error("startup_failed", reason="configuration", error=str(exc))
        return 1
    add_request_id_middleware(app)

    runner = HostRunner(settings, app)
    try:
        runner.bind()
    except StartupError as exc:
        logger.error("startup_failed", reason="bind", error=str(exc))
        return 1

    asyncio.run(runner.serve())
    # A server that never started failed during its own startup (e.g. lifespan)
    return 0 if runner.started else 1


if __name__ == "__main__":
    sys.exit(main())
