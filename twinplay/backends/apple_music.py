# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Apple Music catalog backend.

Catalog lookups go to the Apple Music REST API; playback goes to the catalog
player service (see twinplay.lib.player_client).  The API wants two tokens:
a developer JWT (Authorization: Bearer) and the user's Music-User-Token.

Rate limiting (HTTP 429) is honoured here with Retry-After.  Other
transport failures are retried a few times, then surface as
CollaboratorUnavailable.  A 401 marks the user token revoked.
"""

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import aiohttp

from ..lib.config import cfg
from ..lib.errors import CollaboratorUnavailable, PrepareFailed
from ..lib.player_client import PlayerClient
from ..lib.records import BackendId, Kind
from .base import CatalogBackend, REPLACE
from .tokens import resolve_credentials

log = logging.getLogger(__name__)

API_BASE = "https://api.music.apple.com/v1"
RATE_LIMIT_DELAY = 2  # seconds between retries (Apple enforces this)
REQUEST_TIMEOUT = 15
MAX_RETRY_AFTER = 60  # longer server-requested waits fail the request instead

# Catalog resource type for each kind a caller may ask for
RESOURCE_TYPES = {
    "song": "songs",
    "album": "albums",
    "artist": "artists",
    "playlist": "playlists",
    "station": "stations",
    "video": "music-videos",
    "genre": "genres",
}

# Path segment for music.apple.com share URLs
SHARE_TYPES = {
    "songs": "song",
    "albums": "album",
    "playlists": "playlist",
    "stations": "station",
    "music-videos": "music-video",
}


def _retry_after(value, default: float) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

class AppleMusicCatalog(CatalogBackend):
    """CatalogBackend over the Apple Music API and a player service."""

    def __init__(self, developer_token: str | None = None, user_token: str | None = None,
                 storefront: str | None = None, api_base: str | None = None,
                 player_url: str | None = None, session: aiohttp.ClientSession | None = None,
                 retries: int = 3, retry_delay: float = RATE_LIMIT_DELAY):
        super().__init__()
        env_dev, env_user, env_sf = resolve_credentials()
        self.developer_token = developer_token or env_dev
        self.user_token = user_token or env_user
        self.storefront = storefront or cfg("catalog", "storefront", default=None) or env_sf or "us"
        self.api_base = (api_base or cfg("catalog", "api_base", default=API_BASE)).rstrip("/")
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.revoked = False
        self._session = session
        self._owns_session = session is None
        self.player = PlayerClient(
            BackendId.CATALOG,
            player_url or cfg("catalog", "player_url", default="http://localhost:8766/player"),
            session=session,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.developer_token and self.user_token) and not self.revoked

    # ── HTTP plumbing ──

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.developer_token}",
            "Music-User-Token": self.user_token,
        }

    async def _api_request(self, path: str, params: dict | None = None) -> dict | None:
        """Authenticated GET.  None on 404; CollaboratorUnavailable on failure."""
        if self.revoked:
            raise CollaboratorUnavailable(self.id, "user token revoked")
        url = path if path.startswith("http") else f"{self.api_base}{path}"
        session = await self._ensure_session()
        last_error = ""
        for attempt in range(self.retries):
            try:
                async with session.get(
                    url, params=params, headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
                ) as resp:
                    if resp.status == 404:
                        return None
                    if resp.status == 429:
                        retry_after = _retry_after(resp.headers.get("Retry-After"), self.retry_delay * 2)
                        if retry_after > MAX_RETRY_AFTER:
                            log.warning("Rate limited for %.0fs — giving up on %s", retry_after, path)
                            raise CollaboratorUnavailable(self.id, f"rate limited for {retry_after:.0f}s")
                        log.info("Rate limited, waiting %.0fs...", retry_after)
                        last_error = "rate limited"
                        await asyncio.sleep(retry_after)
                        continue
                    if resp.status == 401:
                        log.error("Unauthorized (401) — user token may be expired")
                        self.revoked = True
                        raise CollaboratorUnavailable(self.id, "unauthorized")
                    if resp.status >= 400:
                        last_error = f"HTTP {resp.status}"
                        log.warning("Catalog request %s failed: HTTP %d", path, resp.status)
                    else:
                        return await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e) or e.__class__.__name__
                log.warning("Catalog request %s failed: %s", path, last_error)
            if attempt < self.retries - 1:
                await asyncio.sleep(self.retry_delay)
        raise CollaboratorUnavailable(self.id, last_error)

    async def _paged(self, path: str, params: dict | None = None) -> list[dict]:
        """Follow `next` links until exhausted."""
        items = []
        url, query = path, params
        while url:
            data = await self._api_request(url, query)
            if not data:
                break
            items.extend(data.get("data", []))
            url, query = data.get("next"), None
            if url and not url.startswith("http"):
                # next links are relative to the host and already carry /v1
                url = url[len("/v1"):] if url.startswith("/v1") else url
        return items

    # ── CatalogBackend ──

    async def search_catalog(self, term, kinds, limit=25, offset=0):
        types = [RESOURCE_TYPES[k] for k in kinds if k in ("song", "album")]
        if not term or not types:
            return {"songs": [], "albums": []}
        data = await self._api_request(
            f"/catalog/{self.storefront}/search",
            {"term": term, "types": ",".join(types), "limit": limit, "offset": offset},
        ) or {}
        results = data.get("results", {})
        return {
            "songs": (results.get("songs") or {}).get("data", []),
            "albums": (results.get("albums") or {}).get("data", []),
        }

    async def resolve_by_id(self, kind, item_id):
        kind = getattr(kind, "value", kind)
        resource = RESOURCE_TYPES.get(kind)
        if resource is None or not item_id:
            return None
        data = await self._api_request(f"/catalog/{self.storefront}/{resource}/{item_id}")
        records = (data or {}).get("data") or []
        return records[0] if records else None

    async def library_items(self, kind, limit, offset):
        if kind is Kind.GENRE:
            # The personal library has no genre listing; use the storefront's
            path, params = f"/catalog/{self.storefront}/genres", {"limit": limit, "offset": offset}
        else:
            path = f"/me/library/{RESOURCE_TYPES[kind.value]}"
            params = {"limit": limit, "offset": offset}
            if kind is Kind.ARTIST:
                params["include"] = "albums"
        data = await self._api_request(path, params)
        return (data or {}).get("data", [])

    async def playlist_tracks(self, playlist_id):
        return await self._paged(f"/me/library/playlists/{playlist_id}/tracks", {"limit": 100})

    async def library_song_catalog(self, library_id):
        data = await self._api_request(f"/me/library/songs/{library_id}/catalog")
        records = (data or {}).get("data") or []
        return records[0] if records else None

    async def recently_played(self):
        data = await self._api_request("/me/recent/played", {"limit": 10})
        return (data or {}).get("data", [])

    # ── Playback ──

    def share_url(self, record: dict) -> str:
        share_type = SHARE_TYPES.get(record.get("type", ""), "song")
        return f"https://music.apple.com/{self.storefront}/{share_type}/{record.get('id', '')}"

    async def install_queue(self, records, position=REPLACE):
        items = [{"id": r.get("id"), "type": r.get("type"), "url": self.share_url(r)}
                 for r in records]
        if not await self.player.command("queue", {"items": items, "position": position}):
            raise CollaboratorUnavailable(self.id, "player rejected queue")
        log.info("Catalog queue <- %d item(s) (%s)", len(items), position)

    async def prepare(self):
        reply = await self.player.post("prepare")
        if reply.get("status") != "ok":
            raise PrepareFailed(self.id, reply.get("message", ""))

    async def current_snapshot(self):
        return await self.player.snapshot()

    async def play(self):
        await self.player.send("resume")

    async def pause(self):
        await self.player.send("pause")

    async def skip_next(self):
        await self.player.send("next")

    async def skip_previous(self):
        await self.player.send("prev")

    async def start(self):
        if not self.is_configured:
            log.warning("Apple Music tokens missing — catalog requests will fail")
        self.player.listen(self.notify_change)

    async def stop(self):
        await self.player.close()
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
