from __future__ import annotations

import asyncio
import contextlib
import socket
from collections.abc import Iterator

import uvicorn
from fastapi import FastAPI

from lemobar_scan.core.exceptions import ConfigError


class _EmbeddedServer(uvicorn.Server):
    # The scan owns SIGINT/SIGTERM; uvicorn must not replace those handlers.
    def install_signal_handlers(self) -> None:
        return None

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind ``host:port``, raising ``ConfigError`` when the address cannot be used."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise ConfigError(f"cannot serve metrics on {host}:{port}: {exc}") from exc
    sock.set_inheritable(True)
    return sock


class MonitoringServer:
    """Serves the monitoring app on the running event loop for the lifetime of a scan."""

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 8001) -> None:
        self._host = host
        self._port = port
        config = uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False)
        self._server = _EmbeddedServer(config)
        self._socket: socket.socket | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start serving; raises ``ConfigError`` when the port cannot be bound."""
        if self._task is not None:
            return
        self._socket = bind_socket(self._host, self._port)
        self._task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
