"""Tests for the Apple Music catalog backend against an in-process fake API"""

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from conftest import catalog_album, catalog_song

from twinplay.backends.apple_music import AppleMusicCatalog
from twinplay.lib.errors import CollaboratorUnavailable, PrepareFailed
from twinplay.lib.records import ItemRef, Kind


class FakeAppleMusic:

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.status_queue = []
        self.retry_after = "0"

    def create_app(self):
        async def handle(request):
            self.requests.append((request.path, dict(request.query), dict(request.headers)))
            if self.status_queue:
                status = self.status_queue.pop(0)
                headers = {"Retry-After": self.retry_after} if status == 429 else None
                return web.json_response({"errors": []}, status=status, headers=headers)
            body = self.routes.get(request.path)
            if body is None:
                return web.json_response({"errors": [{"status": "404"}]}, status=404)
            if callable(body):
                body = body(request)
            return web.json_response(body)

        app = web.Application()
        app.router.add_get("/{tail:.*}", handle)
        return app

    def paths(self):
        return [path for path, _, _ in self.requests]


@pytest.fixture
async def api():
    fake = FakeAppleMusic()
    server = TestServer(fake.create_app())
    await server.start_server()
    fake.base = str(server.make_url("/v1"))
    yield fake
    await server.close()


@pytest.fixture
async def apple(api, player_service):
    catalog = AppleMusicCatalog(
        developer_token="dev-token", user_token="user-token", storefront="us",
        api_base=api.base, player_url=player_service.url, retries=2, retry_delay=0,
    )
    yield catalog
    await catalog.stop()


class TestLookups:

    async def test_resolve_by_id(self, apple, api):
        record = catalog_song("s.1", "Blue", "Artist A", type_="songs")
        api.routes["/v1/catalog/us/songs/s.1"] = {"data": [record]}
        assert await apple.resolve_by_id("song", "s.1") == record
        _, _, headers = api.requests[0]
        assert headers["Authorization"] == "Bearer dev-token"
        assert headers["Music-User-Token"] == "user-token"

    async def test_resolve_missing_is_none(self, apple, api):
        assert await apple.resolve_by_id("playlist", "missing") is None
        assert api.paths() == ["/v1/catalog/us/playlists/missing"]

    async def test_resolve_unknown_kind_skips_request(self, apple, api):
        assert await apple.resolve_by_id("podcast", "1") is None
        assert api.requests == []

    async def test_search(self, apple, api):
        api.routes["/v1/catalog/us/search"] = {"results": {
            "songs": {"data": [catalog_song("s.1", "Blue", "A", type_="songs")]},
        }}
        results = await apple.search_catalog("blue", ["song", "album", "artist"], limit=5)
        assert [r["id"] for r in results["songs"]] == ["s.1"]
        assert results["albums"] == []
        _, query, _ = api.requests[0]
        assert query == {"term": "blue", "types": "songs,albums", "limit": "5", "offset": "0"}

    async def test_search_without_supported_kinds(self, apple, api):
        assert await apple.search_catalog("blue", ["artist"]) == {"songs": [], "albums": []}
        assert api.requests == []

    async def test_library_pages(self, apple, api):
        api.routes["/v1/me/library/albums"] = {"data": [catalog_album("l.1", "Colours", "A")]}
        api.routes["/v1/me/library/artists"] = {"data": []}
        api.routes["/v1/catalog/us/genres"] = {"data": [{"id": "14", "type": "genres"}]}
        assert len(await apple.library_items(Kind.ALBUM, 20, 40)) == 1
        await apple.library_items(Kind.ARTIST, 20, 0)
        assert len(await apple.library_items(Kind.GENRE, 20, 0)) == 1
        queries = [q for _, q, _ in api.requests]
        assert queries[0] == {"limit": "20", "offset": "40"}
        assert queries[1]["include"] == "albums"

    async def test_playlist_tracks_follow_next(self, apple, api):
        def tracks(request):
            if request.query.get("offset") == "1":
                return {"data": [catalog_song("i.2", "Red", "B")]}
            return {"data": [catalog_song("i.1", "Blue", "A")],
                    "next": "/v1/me/library/playlists/p.1/tracks?offset=1"}

        api.routes["/v1/me/library/playlists/p.1/tracks"] = tracks
        records = await apple.playlist_tracks("p.1")
        assert [r["id"] for r in records] == ["i.1", "i.2"]
        assert len(api.requests) == 2

    async def test_library_song_catalog(self, apple, api):
        api.routes["/v1/me/library/songs/i.1/catalog"] = {
            "data": [catalog_song("s.1", "Blue", "A", type_="songs")]}
        assert (await apple.library_song_catalog("i.1"))["id"] == "s.1"
        assert await apple.library_song_catalog("i.2") is None

    async def test_recently_played(self, apple, api):
        api.routes["/v1/me/recent/played"] = {"data": [{"id": "pl.1", "type": "playlists"}]}
        assert [r["id"] for r in await apple.recently_played()] == ["pl.1"]


class TestFailures:

    async def test_unauthorized_revokes(self, apple, api):
        api.status_queue = [401]
        with pytest.raises(CollaboratorUnavailable):
            await apple.resolve_by_id("song", "s.1")
        assert apple.revoked
        assert not apple.is_configured
        with pytest.raises(CollaboratorUnavailable):
            await apple.resolve_by_id("song", "s.1")
        assert len(api.requests) == 1

    async def test_server_errors_exhaust_retries(self, apple, api):
        api.status_queue = [500, 502]
        with pytest.raises(CollaboratorUnavailable) as exc:
            await apple.recently_played()
        assert "HTTP 502" in str(exc.value)
        assert len(api.requests) == 2

    async def test_transient_error_then_success(self, apple, api):
        api.status_queue = [503]
        api.routes["/v1/me/recent/played"] = {"data": []}
        assert await apple.recently_played() == []

    async def test_rate_limit_honoured(self, apple, api):
        api.status_queue = [429]
        api.routes["/v1/me/recent/played"] = {"data": [{"id": "1", "type": "albums"}]}
        assert len(await apple.recently_played()) == 1

    async def test_rate_limit_past_date_retries(self, apple, api):
        api.status_queue = [429]
        api.retry_after = "Wed, 21 Oct 2015 07:28:00 GMT"
        api.routes["/v1/me/recent/played"] = {"data": [{"id": "1", "type": "albums"}]}
        assert len(await apple.recently_played()) == 1
        assert len(api.requests) == 2

    async def test_rate_limit_far_future_date_gives_up(self, apple, api):
        api.status_queue = [429]
        api.retry_after = format_datetime(datetime.now(timezone.utc) + timedelta(days=2), usegmt=True)
        with pytest.raises(CollaboratorUnavailable) as exc:
            await apple.recently_played()
        assert "rate limited" in str(exc.value)
        assert len(api.requests) == 1

    async def test_rate_limit_unparseable_header(self, apple, api):
        api.status_queue = [429]
        api.retry_after = "soon"
        api.routes["/v1/me/recent/played"] = {"data": []}
        assert await apple.recently_played() == []


class TestPlayback:

    async def test_install_queue(self, apple, player_service):
        record = {"id": "pl.1", "type": "playlists"}
        await apple.install_queue([record])
        name, body = player_service.requests[0]
        assert name == "queue"
        assert body == {
            "items": [{"id": "pl.1", "type": "playlists",
                       "url": "https://music.apple.com/us/playlist/pl.1"}],
            "position": "replace",
        }

    async def test_install_after_current(self, apple, player_service):
        await apple.install_queue([{"id": "s.1", "type": "songs"}], "afterCurrent")
        assert player_service.requests[0][1]["position"] == "afterCurrent"

    async def test_rejected_queue(self, apple, player_service):
        player_service.queue_status = 400
        with pytest.raises(CollaboratorUnavailable):
            await apple.install_queue([{"id": "s.1", "type": "songs"}])

    async def test_prepare(self, apple, player_service):
        await apple.prepare()
        player_service.prepare_reply = {"status": "error", "message": "device busy"}
        with pytest.raises(PrepareFailed) as exc:
            await apple.prepare()
        assert exc.value.reason == "device busy"

    async def test_transport(self, apple, player_service):
        await apple.play()
        await apple.pause()
        await apple.skip_next()
        await apple.skip_previous()
        assert player_service.commands() == ["resume", "pause", "next", "prev"]

    async def test_rejected_transport(self, apple, player_service):
        player_service.reject = {"pause"}
        with pytest.raises(CollaboratorUnavailable) as exc:
            await apple.pause()
        assert "pause" in str(exc.value)
        await apple.play()

    async def test_snapshot(self, apple, player_service):
        player_service.state = {"state": "playing", "rate": 1, "position": 3.5,
                                "current": {"kind": "song", "id": "s.1"}}
        snapshot = await apple.current_snapshot()
        assert snapshot.status == "playing"
        assert snapshot.position == 3.5
        assert snapshot.current_ref == ItemRef(Kind.SONG, "s.1")

    @pytest.mark.parametrize("state", [
        ["playing"],
        {"state": "playing", "rate": "fast"},
        {"state": "playing", "position": "x"},
        {"state": "playing", "position": [1]},
    ])
    async def test_malformed_snapshot(self, apple, player_service, state):
        player_service.state = state
        with pytest.raises(CollaboratorUnavailable) as exc:
            await apple.current_snapshot()
        assert "malformed state reply" in str(exc.value)

    async def test_snapshot_ignores_malformed_current(self, apple, player_service):
        player_service.state = {"state": "paused", "current": "s.1"}
        snapshot = await apple.current_snapshot()
        assert snapshot.status == "paused"
        assert snapshot.current_ref is None

    async def test_push_notifications(self, apple, player_service):
        changed = asyncio.Event()
        apple.on_change(changed.set)
        await apple.start()
        for _ in range(100):
            if player_service.sockets:
                break
            await asyncio.sleep(0.01)
        await player_service.push()
        await asyncio.wait_for(changed.wait(), timeout=2)


def test_share_url():
    catalog = AppleMusicCatalog(developer_token="d", user_token="u", storefront="gb",
                                api_base="http://api", player_url="http://player/player")
    assert catalog.share_url({"id": "7", "type": "stations"}) == "https://music.apple.com/gb/station/7"
    assert catalog.share_url({"id": "8", "type": "library-songs"}) == "https://music.apple.com/gb/song/8"
