"""WebSocket transport for the backend push channel."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import aiohttp
import structlog

from gait.settings import settings

logger = structlog.get_logger(__name__)


class PushChannel(Protocol):
    def connect(self) -> AbstractAsyncContextManager[AsyncIterator[str]]: ...


def websocket_url(base_url: str, path: str) -> str:
    """Map an http(s) base URL to the ws(s) URL of ``path``."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/{path.lstrip('/')}"


class WebSocketChannel:
    """Opens the dashboard WebSocket and yields its text frames.

    Args:
        base_url: Backend base URL; defaults to GAIT_BASE_URL.
        path: WebSocket path; defaults to GAIT_WS_PATH.
        token: Bearer token; defaults to GAIT_TOKEN.
        heartbeat: Ping interval in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        token: str | None = None,
        *,
        heartbeat: float = 30.0,
    ) -> None:
        self.url = websocket_url(
            base_url if base_url is not None else settings.base_url(),
            path if path is not None else settings.ws_path(),
        )
        self._token = settings.token() if token is None else token
        self._heartbeat = heartbeat

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncIterator[str]]:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.ws_connect(self.url, heartbeat=self._heartbeat) as ws:
                logger.info("Push channel connected", url=self.url)
                yield self._frames(ws)

    @staticmethod
    async def _frames(ws: aiohttp.ClientWebSocketResponse) -> AsyncIterator[str]:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionError(f"WebSocket error: {ws.exception()}")
