from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

import httpx


logger = logging.getLogger(__name__)


class KeepAlive:
    """Pings the bot's own HTTP endpoint so the host does not idle the process."""

    def __init__(self, url: str, interval: float, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.interval = interval
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=30.0)
        self._task: Optional[asyncio.Task] = None

    async def ping(self) -> bool:
        try:
            resp = await self._http.get(self.url)
        except httpx.HTTPError as exc:
            logger.error("Keep-alive error: %s", exc)
            return False
        if resp.status_code == 200:
            logger.info("Keep-alive ping successful")
            return True
        logger.warning("Keep-alive ping failed with status %s", resp.status_code)
        return False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._owns_client:
            await self._http.aclose()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.ping()
