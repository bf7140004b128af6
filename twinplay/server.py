# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
TwinPlay HTTP + WebSocket service.

Exposes the Engine over HTTP for the UI and other services:

  GET  /library/{kind}                 ?limit=&offset=
  GET  /library/playlists/{id}/songs
  GET  /search                         ?term=&types=song,album&limit=&offset=
  GET  /recent
  POST /queue                          {"refId", "kind", "backend"}
  POST /queue/next                     {"id"}
  GET  /snapshot/{backend}
  POST /player/{backend}/{action}      play|pause|toggle|next|prev|jump {"id"}
  GET  /status
  GET  /ws                             pushes playback_state / current_item

Engine errors map onto HTTP status codes in error_middleware; every
response carries CORS headers.
"""

import asyncio
import json
import logging
import signal

from aiohttp import web

from .engine import Engine
from .lib.config import cfg
from .lib.errors import CollaboratorUnavailable, NotFound, PrepareFailed, TwinPlayError
from .lib.observer import ITEM, STATE, PlaybackEvent
from .lib.records import BackendId, Kind, QueueRequest

log = logging.getLogger(__name__)

DEFAULT_PORT = 8780

ERROR_STATUS = {
    NotFound: 404,
    PrepareFailed: 409,
    CollaboratorUnavailable: 503,
}

# URL segment → library kind
LIBRARY_PATHS = {
    "songs": Kind.SONG,
    "albums": Kind.ALBUM,
    "artists": Kind.ARTIST,
    "playlists": Kind.PLAYLIST,
    "genres": Kind.GENRE,
    "videos": Kind.VIDEO,
}

WS_MESSAGE_TYPES = {
    STATE: "playback_state",
    ITEM: "current_item",
}


def _error_response(status: int, code: str, message: str) -> web.Response:
    return web.json_response(
        {"status": "error", "error": code, "message": message}, status=status)


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except TwinPlayError as e:
        status = next((s for cls, s in ERROR_STATUS.items() if isinstance(e, cls)), 500)
        if status >= 500:
            log.error("%s %s failed: %s", request.method, request.path, e)
        else:
            log.info("%s %s: %s", request.method, request.path, e)
        return _error_response(status, e.code, str(e))
    except ValueError as e:
        return _error_response(400, "bad_request", str(e))


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


def _int_param(request: web.Request, name: str, default: int | None) -> int | None:
    value = request.query.get(name)
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer") from None
    if number < 0:
        raise ValueError(f"{name} must not be negative")
    return number


async def _json_body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise ValueError("invalid json") from None
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


class TwinPlayService:
    """aiohttp front end for one Engine."""

    def __init__(self, engine: Engine, port: int | None = None):
        self.engine = engine
        self.port = port or cfg("server", "port", default=DEFAULT_PORT)
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._last_messages: dict[tuple[str, str], dict] = {}
        self._subscriptions = []
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware, error_middleware])
        app.router.add_get("/library/playlists/{playlist_id}/songs", self._handle_playlist_songs)
        app.router.add_get("/library/{kind}", self._handle_library)
        app.router.add_get("/search", self._handle_search)
        app.router.add_get("/recent", self._handle_recent)
        app.router.add_post("/queue", self._handle_queue)
        app.router.add_post("/queue/next", self._handle_queue_next)
        app.router.add_get("/snapshot/{backend}", self._handle_snapshot)
        app.router.add_post("/player/{backend}/{action}", self._handle_player)
        app.router.add_get("/status", self._handle_status)
        app.router.add_get("/ws", self._handle_ws)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    # ── Lifecycle ──

    async def _on_startup(self, app):
        for backend in BackendId:
            self._subscriptions.append(
                self.engine.subscribe(backend, self.broadcast_event, events=(STATE, ITEM)))
        await self.engine.start()

    async def _on_cleanup(self, app):
        for handle in self._subscriptions:
            self.engine.unsubscribe(handle)
        self._subscriptions.clear()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        await self.engine.stop()

    async def start(self):
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        log.info("TwinPlay: HTTP + WebSocket on port %d", self.port)

    async def shutdown(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    # ── WebSocket broadcasting ──

    async def broadcast_event(self, event: PlaybackEvent):
        message = {
            "type": WS_MESSAGE_TYPES[event.type],
            "backend": event.backend.value,
            "data": event.snapshot.to_dict(),
        }
        self._last_messages[(event.type, event.backend.value)] = message
        if not self._ws_clients:
            return

        text = json.dumps(message)
        disconnected = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send_str(text)
            except Exception:
                disconnected.add(ws)
        self._ws_clients -= disconnected
        log.debug("Broadcast %s (%s) to %d clients",
                  message["type"], message["backend"], len(self._ws_clients))

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))
        try:
            # New clients get the latest known state per backend
            for message in list(self._last_messages.values()):
                await ws.send_json(message)
            async for msg in ws:
                pass  # push-only
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))
        return ws

    # ── Browsing ──

    async def _handle_library(self, request):
        segment = request.match_info["kind"]
        kind = LIBRARY_PATHS.get(segment) or Kind(segment)
        items = await self.engine.get_library_view(
            kind,
            limit=_int_param(request, "limit", None),
            offset=_int_param(request, "offset", 0),
        )
        return web.json_response({"items": [i.to_dict() for i in items]})

    async def _handle_playlist_songs(self, request):
        items = await self.engine.get_playlist_songs(request.match_info["playlist_id"])
        return web.json_response({"items": [i.to_dict() for i in items]})

    async def _handle_search(self, request):
        term = request.query.get("term", "").strip()
        if not term:
            raise ValueError("term is required")
        types = request.query.get("types", "song,album")
        kinds = [t.strip().rstrip("s") for t in types.split(",") if t.strip()]
        results = await self.engine.search(
            term, kinds,
            limit=_int_param(request, "limit", 25),
            offset=_int_param(request, "offset", 0),
        )
        return web.json_response({
            group: [i.to_dict() for i in items] for group, items in results.items()
        })

    async def _handle_recent(self, request):
        items = await self.engine.recently_played()
        return web.json_response({"items": [i.to_dict() for i in items]})

    # ── Queue ──

    async def _handle_queue(self, request):
        queue_request = QueueRequest.from_dict(await _json_body(request))
        queued = await self.engine.resolve_queue(queue_request)
        return web.json_response({"status": "ok", "queued": queued})

    async def _handle_queue_next(self, request):
        data = await _json_body(request)
        song_id = str(data.get("id") or "")
        if not song_id:
            raise ValueError("id is required")
        catalog_id = await self.engine.play_song_next(song_id)
        return web.json_response({"status": "ok", "id": catalog_id})

    # ── Playback ──

    async def _handle_snapshot(self, request):
        snapshot = await self.engine.get_snapshot(BackendId(request.match_info["backend"]))
        return web.json_response(snapshot.to_dict())

    async def _handle_player(self, request):
        backend = BackendId(request.match_info["backend"])
        action = request.match_info["action"]
        if action == "play":
            await self.engine.play(backend)
        elif action == "pause":
            await self.engine.pause(backend)
        elif action == "toggle":
            action = await self.engine.toggle(backend)
        elif action == "next":
            await self.engine.skip_next(backend)
        elif action == "prev":
            await self.engine.skip_previous(backend)
        elif action == "jump":
            if backend is not BackendId.LOCAL:
                raise ValueError("jump is only supported on the local backend")
            data = await _json_body(request)
            item_id = str(data.get("id") or "")
            if not item_id:
                raise ValueError("id is required")
            await self.engine.play_local_item(item_id)
        else:
            raise ValueError(f"Unknown action: {action}")
        log.info("%s player: %s", backend.value, action)
        return web.json_response({"status": "ok", "action": action})

    async def _handle_status(self, request):
        status = {"service": "twinplay", "clients": len(self._ws_clients)}
        status.update(self.engine.status())
        return web.json_response(status)
