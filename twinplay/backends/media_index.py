"""
Local library backend over a JSON media index.

The index is exported by the device's media scanner:

    {
      "songs": [{"persistentID": "...", "title": ..., "artist": ...,
                 "albumTitle": ..., "albumArtist": ..., "albumPersistentID": ...,
                 "artistPersistentID": ..., "albumArtistPersistentID": ...,
                 "playbackDuration": 201.4, "albumTrackCount": 11,
                 "url": "file:///media/..."}],
      "playlists": [{"persistentID": "...", "name": ..., "descriptionText": ...,
                     "dateCreated": "2024-03-01T...", "items": ["<song pid>", ...]}]
    }

Playback goes to the local player service (twinplay.lib.player_client).
"""

import json
import logging

import aiohttp

from ..lib.config import cfg
from ..lib.errors import CollaboratorUnavailable, PrepareFailed
from ..lib.player_client import PlayerClient
from ..lib.records import BackendId, Kind
from .base import LocalBackend, REPLACE

log = logging.getLogger(__name__)


def _album_pid(entry: dict) -> str:
    return str(entry.get("albumPersistentID") or "")


def _artist_pid(entry: dict) -> str:
    pid = entry.get("artistPersistentID")
    if not pid or str(pid) == "0":
        pid = entry.get("albumArtistPersistentID")
    return str(pid or "")


class MediaIndexLibrary(LocalBackend):
    """LocalBackend over an exported media index file and a player service."""

    def __init__(self, index_path: str | None = None, player_url: str | None = None,
                 session: aiohttp.ClientSession | None = None, index: dict | None = None):
        super().__init__()
        self.index_path = index_path or cfg("local", "index_path", default="media_index.json")
        self.songs: list[dict] = []
        self.playlists: list[dict] = []
        self._by_pid: dict[str, dict] = {}
        self._queue: list[dict] = []
        self._loaded = False
        self._load_error = ""
        self.player = PlayerClient(
            BackendId.LOCAL,
            player_url or cfg("local", "player_url", default="http://localhost:8777/player"),
            session=session,
        )
        if index is not None:
            self._apply(index)

    # ── Index loading ──

    def _apply(self, index: dict):
        self.songs = [s for s in index.get("songs", []) if isinstance(s, dict)]
        self.playlists = [p for p in index.get("playlists", []) if isinstance(p, dict)]
        self._by_pid = {str(s.get("persistentID")): s for s in self.songs if s.get("persistentID")}
        self._loaded = True
        self._load_error = ""

    def load(self) -> bool:
        """(Re)load the index file.  Returns True on success."""
        try:
            with open(self.index_path) as f:
                index = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Could not load media index %s: %s", self.index_path, e)
            self._load_error = str(e)
            return False
        self._apply(index)
        log.info("Loaded media index: %d songs, %d playlists",
                 len(self.songs), len(self.playlists))
        return True

    def _require_index(self):
        if not self._loaded and not self.load():
            raise CollaboratorUnavailable(self.id, self._load_error or "media index not loaded")

    # ── LocalBackend queries ──

    async def query_all(self, kind):
        self._require_index()
        if kind is Kind.SONG:
            return list(self.songs)
        if kind is Kind.PLAYLIST:
            return list(self.playlists)
        if kind is Kind.ALBUM:
            key = _album_pid
        elif kind is Kind.ARTIST:
            key = _artist_pid
        else:
            return []
        # One representative entry per album / artist, in index order
        seen = {}
        for song in self.songs:
            k = key(song)
            if k and k != "0":
                seen.setdefault(k, song)
        return list(seen.values())

    async def query_by_parent(self, kind, parent_id):
        self._require_index()
        parent_id = str(parent_id)
        if kind is Kind.ALBUM:
            tracks = [s for s in self.songs if str(s.get("albumPersistentID")) == parent_id]
            return tracks or None
        if kind is Kind.PLAYLIST:
            for playlist in self.playlists:
                if str(playlist.get("persistentID")) == parent_id:
                    return [self._by_pid[str(pid)] for pid in playlist.get("items", [])
                            if str(pid) in self._by_pid]
            return None
        return None

    async def query_item(self, persistent_id):
        self._require_index()
        return self._by_pid.get(str(persistent_id))

    # ── Playback ──

    async def install_queue(self, records):
        items = [{"id": str(r.get("persistentID")), "url": r.get("url", "")} for r in records]
        if not await self.player.command("queue", {"items": items, "position": REPLACE}):
            raise CollaboratorUnavailable(self.id, "player rejected queue")
        self._queue = list(records)
        log.info("Local queue <- %d track(s)", len(items))

    async def prepare(self):
        reply = await self.player.post("prepare")
        if reply.get("status") != "ok":
            raise PrepareFailed(self.id, reply.get("message", ""))

    async def jump_to(self, persistent_id):
        if not any(str(r.get("persistentID")) == str(persistent_id) for r in self._queue):
            return False
        return await self.player.command("jump", {"id": str(persistent_id)})

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
        if not self._loaded:
            self.load()
        self.player.listen(self.notify_change)

    async def stop(self):
        await self.player.close()
