"""Test configuration, fakes and fixtures"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from twinplay.backends.base import REPLACE, CatalogBackend, LocalBackend
from twinplay.engine import Engine
from twinplay.lib.errors import CollaboratorUnavailable, PrepareFailed
from twinplay.lib.records import RawSnapshot

FAST_DEBOUNCE = 0.005


# ── Record builders ──

def catalog_song(song_id, name, artist, album="", duration_ms=200000, type_="library-songs"):
    return {
        "id": song_id,
        "type": type_,
        "attributes": {
            "name": name,
            "artistName": artist,
            "albumName": album,
            "durationInMillis": duration_ms,
            "artwork": {"url": f"https://is1-ssl.mzstatic.com/image/{song_id}/{{w}}x{{h}}bb.jpg"},
            "playParams": {"id": song_id, "catalogId": f"c{song_id}"},
        },
    }


def catalog_album(album_id, name, artist, track_count=10, type_="library-albums"):
    return {
        "id": album_id,
        "type": type_,
        "attributes": {"name": name, "artistName": artist, "trackCount": track_count},
    }


def catalog_artist(artist_id, name, type_="library-artists"):
    return {"id": artist_id, "type": type_, "attributes": {"name": name}}


def catalog_playlist(playlist_id, name, type_="library-playlists"):
    return {
        "id": playlist_id,
        "type": type_,
        "attributes": {"name": name, "description": {"standard": "Mix"},
                       "dateAdded": "2024-05-01T10:00:00Z"},
    }


def local_song(pid, title, artist, album_pid="", album_title="", album_artist=None,
               artist_pid="", duration=180.0):
    return {
        "persistentID": pid,
        "title": title,
        "artist": artist,
        "albumTitle": album_title,
        "albumArtist": artist if album_artist is None else album_artist,
        "albumPersistentID": album_pid,
        "artistPersistentID": artist_pid,
        "albumArtistPersistentID": artist_pid,
        "playbackDuration": duration,
        "albumTrackCount": 3,
        "url": f"file:///media/{pid}.m4a",
    }


# ── Fake collaborators ──

class FakePlayback:
    """Shared player behaviour: snapshot, commands, prepare failures."""

    def _init_player(self):
        self.snapshot = RawSnapshot(status="stopped")
        self.commands = []
        self.prepare_error = None
        self.prepared = 0
        self.started = False

    async def current_snapshot(self):
        return self.snapshot

    async def prepare(self):
        if self.prepare_error:
            raise PrepareFailed(self.id, self.prepare_error)
        self.prepared += 1

    async def play(self):
        self.commands.append("play")

    async def pause(self):
        self.commands.append("pause")

    async def skip_next(self):
        self.commands.append("next")

    async def skip_previous(self):
        self.commands.append("prev")

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False


class FakeCatalog(FakePlayback, CatalogBackend):

    def __init__(self, records=None, library=None, playlists=None, recent=None,
                 search_results=None, library_catalog=None):
        super().__init__()
        self._init_player()
        self.records = dict(records or {})           # (kind, id) -> record
        self.library = dict(library or {})           # Kind -> [record]
        self.playlists = dict(playlists or {})       # playlist id -> [record]
        self.recent = list(recent or [])
        self.search_results = dict(search_results or {})
        self.library_catalog = dict(library_catalog or {})  # library id -> catalog record
        self.queue = []
        self.installs = []
        self.unavailable = False
        self.resolve_error = None
        self.library_calls = []

    def _check(self):
        if self.unavailable:
            raise CollaboratorUnavailable(self.id, "offline")

    async def search_catalog(self, term, kinds, limit=25, offset=0):
        self._check()
        return {k: v for k, v in self.search_results.items() if k.rstrip("s") in kinds}

    async def resolve_by_id(self, kind, item_id):
        self._check()
        if self.resolve_error:
            raise self.resolve_error
        return self.records.get((kind, item_id))

    async def library_items(self, kind, limit, offset):
        self._check()
        self.library_calls.append((kind, limit, offset))
        return self.library.get(kind, [])[offset:offset + limit]

    async def playlist_tracks(self, playlist_id):
        self._check()
        return self.playlists.get(playlist_id, [])

    async def library_song_catalog(self, library_id):
        self._check()
        return self.library_catalog.get(library_id)

    async def recently_played(self):
        self._check()
        return self.recent

    async def install_queue(self, records, position=REPLACE):
        self._check()
        self.installs.append(([r["id"] for r in records], position))
        if position == REPLACE:
            self.queue = [r["id"] for r in records]
        else:
            self.queue[1:1] = [r["id"] for r in records]


class FakeLocal(FakePlayback, LocalBackend):

    def __init__(self, songs=None, playlists=None):
        super().__init__()
        self._init_player()
        self.songs = list(songs or [])
        self.playlists = list(playlists or [])
        self.queue = []
        self.installs = 0
        self.unavailable = False
        self.jumped = []

    def _check(self):
        if self.unavailable:
            raise CollaboratorUnavailable(self.id, "index missing")

    async def query_all(self, kind):
        self._check()
        if kind.value == "song":
            return list(self.songs)
        if kind.value == "playlist":
            return list(self.playlists)
        field = {"album": "albumPersistentID", "artist": "artistPersistentID"}.get(kind.value)
        if field is None:
            return []
        seen = {}
        for song in self.songs:
            if song.get(field):
                seen.setdefault(song[field], song)
        return list(seen.values())

    async def query_by_parent(self, kind, parent_id):
        self._check()
        if kind.value == "album":
            return [s for s in self.songs if s["albumPersistentID"] == parent_id] or None
        for playlist in self.playlists:
            if playlist["persistentID"] == parent_id:
                return [s for s in self.songs if s["persistentID"] in playlist["items"]]
        return None

    async def query_item(self, persistent_id):
        self._check()
        return next((s for s in self.songs if s["persistentID"] == persistent_id), None)

    async def install_queue(self, records):
        self._check()
        self.installs += 1
        self.queue = [r["persistentID"] for r in records]

    async def jump_to(self, persistent_id):
        if persistent_id not in self.queue:
            return False
        self.jumped.append(persistent_id)
        return True


async def wait_idle(observer, timeout=1.0):
    """Wait until *observer* has no armed timer and no running evaluation."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    await asyncio.sleep(0)
    while observer.pending:
        if loop.time() > deadline:
            raise AssertionError("observer did not settle")
        await asyncio.sleep(observer.debounce)


# ── Fixtures ──

@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def local():
    return FakeLocal()


@pytest.fixture
def engine(catalog, local):
    return Engine(catalog, local, debounce=FAST_DEBOUNCE, page_limit=50, artwork_size=200)


class FakePlayerService:
    """In-process player service speaking the /player/* + /ws API."""

    def __init__(self):
        self.requests = []
        self.state = {"state": "stopped", "rate": 0.0, "position": 0.0}
        self.prepare_reply = {"status": "ok"}
        self.queue_status = 200
        self.reject = set()
        self.sockets = []

    def create_app(self):
        async def command(request):
            body = await request.json() if request.can_read_body else {}
            name = request.match_info["command"]
            self.requests.append((name, body))
            if name == "queue" and self.queue_status != 200:
                return web.json_response({"status": "error"}, status=self.queue_status)
            if name == "prepare":
                return web.json_response(self.prepare_reply)
            if name in self.reject:
                return web.json_response({"status": "error"})
            return web.json_response({"status": "ok"})

        async def state(request):
            return web.json_response(self.state)

        async def ws_handler(request):
            ws = web.WebSocketResponse()
            await ws.prepare(request)
            self.sockets.append(ws)
            async for _ in ws:
                pass
            return ws

        app = web.Application()
        app.router.add_get("/player/state", state)
        app.router.add_post("/player/{command}", command)
        app.router.add_get("/ws", ws_handler)
        return app

    async def push(self, message=None):
        for ws in self.sockets:
            await ws.send_json(message or {"type": "media_update"})

    def commands(self):
        return [name for name, _ in self.requests]


@pytest.fixture
async def player_service():
    service = FakePlayerService()
    server = TestServer(service.create_app())
    await server.start_server()
    service.url = str(server.make_url("/player"))
    yield service
    for ws in service.sockets:
        await ws.close()
    await server.close()
