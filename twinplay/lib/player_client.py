# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
HTTP + WebSocket client for a player service.

A player service renders audio for one backend and speaks the usual
player API:

  POST /player/queue    {"items": [...], "position": "replace"|"afterCurrent"}
  POST /player/prepare  POST /player/resume  POST /player/pause
  POST /player/next     POST /player/prev    POST /player/jump {"id": ...}
  GET  /player/state    → {"state", "rate", "position", "current": {"kind", "id"}}
  GET  /ws              → pushes {"type": "media_update"|"state_update", ...}

Every pushed message is forwarded to the registered notify callback; the
message body is not trusted as state (the observer re-reads /player/state).
"""

import asyncio
import logging

import aiohttp

from .errors import CollaboratorUnavailable
from .records import ItemRef, Kind, RawSnapshot

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5
RECONNECT_DELAY = 2


class PlayerClient:
    """Talks to one player service on behalf of one backend."""

    def __init__(self, backend, base_url: str, session: aiohttp.ClientSession | None = None):
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._listen_task: asyncio.Task | None = None

    @property
    def ws_url(self) -> str:
        root = self.base_url[:-len("/player")] if self.base_url.endswith("/player") else self.base_url
        return f"{root}/ws"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def post(self, endpoint: str, json_data: dict | None = None) -> dict:
        """POST to the player service and return its JSON reply."""
        session = await self._ensure_session()
        try:
            async with session.post(
                f"{self.base_url}/{endpoint}",
                json=json_data or {},
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status >= 500:
                    raise CollaboratorUnavailable(self.backend, f"player {endpoint} HTTP {resp.status}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None
                if not isinstance(data, dict):
                    data = {"status": "ok" if resp.status == 200 else "error"}
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Player %s failed: %s", endpoint, e)
            raise CollaboratorUnavailable(self.backend, str(e)) from e

    async def command(self, endpoint: str, json_data: dict | None = None) -> bool:
        """POST a command; True when the player answered status=ok."""
        data = await self.post(endpoint, json_data)
        return data.get("status") == "ok"

    async def get(self, endpoint: str) -> dict:
        session = await self._ensure_session()
        try:
            async with session.get(
                f"{self.base_url}/{endpoint}",
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status != 200:
                    raise CollaboratorUnavailable(self.backend, f"player {endpoint} HTTP {resp.status}")
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.warning("Player %s failed: %s", endpoint, e)
            raise CollaboratorUnavailable(self.backend, str(e)) from e

    async def send(self, endpoint: str, json_data: dict | None = None) -> None:
        """POST a command the player must accept.  CollaboratorUnavailable if it refuses."""
        if not await self.command(endpoint, json_data):
            log.warning("Player rejected %s", endpoint)
            raise CollaboratorUnavailable(self.backend, f"player rejected {endpoint}")

    async def snapshot(self) -> RawSnapshot:
        data = await self.get("state")
        if not isinstance(data, dict):
            raise CollaboratorUnavailable(self.backend, "malformed state reply")
        ref = None
        current = data.get("current") or {}
        if not isinstance(current, dict):
            current = {}
        if current.get("id"):
            try:
                kind = Kind(current.get("kind", "song"))
            except ValueError:
                kind = Kind.SONG
            ref = ItemRef(kind, str(current["id"]))
        try:
            rate = float(data.get("rate") or 0.0)
            position = float(data.get("position") or 0.0)
        except (TypeError, ValueError):
            raise CollaboratorUnavailable(self.backend, "malformed state reply") from None
        return RawSnapshot(
            status=str(data.get("state", "unknown")),
            rate=rate,
            position=position,
            current_ref=ref,
        )

    # ── Push notifications ──

    def listen(self, notify) -> None:
        """Start forwarding player pushes to *notify* (no-op if already listening)."""
        if self._listen_task and not self._listen_task.done():
            return
        self._listen_task = asyncio.create_task(self._listen_loop(notify))

    async def _listen_loop(self, notify):
        session = await self._ensure_session()
        while True:
            try:
                async with session.ws_connect(self.ws_url, heartbeat=30) as ws:
                    log.info("Listening to %s player at %s", getattr(self.backend, "value", self.backend), self.ws_url)
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            notify()
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            break
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.debug("Player push channel %s unavailable: %s", self.ws_url, e)
            await asyncio.sleep(RECONNECT_DELAY)

    async def close(self):
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
