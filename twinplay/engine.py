# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Engine — the facade the rest of the application talks to.

Owns one catalog backend, one local backend and one playback observer per
backend.  Everything here is composition: conversion lives in lib.convert,
matching in lib.matcher, queue building in lib.queue and state tracking in
lib.observer.

    engine = Engine(AppleMusicCatalog(), MediaIndexLibrary())
    await engine.start()
    items = await engine.get_library_view("album", limit=50)
    await engine.resolve_queue(QueueRequest("1440857781", QueueKind.ALBUM, BackendId.CATALOG))
    handle = engine.subscribe("catalog", on_state)
"""

import logging
from dataclasses import dataclass

from .backends.base import CatalogBackend, LocalBackend
from .lib.config import cfg
from .lib.convert import ARTWORK_SIZE, convert_all, from_catalog, from_local, recent_from_catalog
from .lib.errors import CollaboratorUnavailable
from .lib.matcher import reconcile, unmatched
from .lib.observer import STATE, PlaybackObserver
from .lib.queue import QueueResolver
from .lib.records import (
    BackendId, CanonicalItem, ItemRef, Kind, MatchedItem, PlaybackSnapshot,
    PlaybackStatus, QueueRequest,
)

log = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 100
DEFAULT_DEBOUNCE_MS = 50

# Kinds whose library view is reconciled against the local index
MATCHED_KINDS = (Kind.SONG, Kind.ALBUM, Kind.ARTIST)
LIBRARY_KINDS = (Kind.SONG, Kind.ALBUM, Kind.ARTIST, Kind.PLAYLIST, Kind.GENRE, Kind.VIDEO)


@dataclass(frozen=True)
class SubscriptionHandle:
    backend: BackendId
    token: int


class Engine:

    def __init__(self, catalog: CatalogBackend, local: LocalBackend,
                 debounce: float | None = None, page_limit: int | None = None,
                 artwork_size: int | None = None):
        self.catalog = catalog
        self.local = local
        if debounce is None:
            debounce = cfg("engine", "debounce_ms", default=DEFAULT_DEBOUNCE_MS) / 1000
        self.page_limit = page_limit or cfg("engine", "page_limit", default=DEFAULT_PAGE_LIMIT)
        self.artwork_size = artwork_size or cfg("catalog", "artwork_size", default=ARTWORK_SIZE)
        self.queue = QueueResolver(catalog, local)
        self.observers = {
            BackendId.CATALOG: PlaybackObserver(
                BackendId.CATALOG, catalog.current_snapshot, self._resolve_catalog_item, debounce),
            BackendId.LOCAL: PlaybackObserver(
                BackendId.LOCAL, local.current_snapshot, self._resolve_local_item, debounce),
        }
        catalog.on_change(self.observers[BackendId.CATALOG].notify)
        local.on_change(self.observers[BackendId.LOCAL].notify)
        self.running = False

    # ── Lifecycle ──

    async def start(self):
        await self.catalog.start()
        await self.local.start()
        self.running = True
        log.info("Engine started (debounce %.0f ms)",
                 self.observers[BackendId.CATALOG].debounce * 1000)

    async def stop(self):
        self.running = False
        for observer in self.observers.values():
            await observer.close()
        await self.catalog.stop()
        await self.local.stop()

    def _backend(self, backend):
        backend = BackendId(backend)
        return self.catalog if backend is BackendId.CATALOG else self.local

    # ── Current item resolution (shared by observers and snapshots) ──

    async def _resolve_catalog_item(self, ref: ItemRef) -> CanonicalItem | None:
        record = await self.catalog.resolve_by_id(ref.kind.value, ref.id)
        if record is None:
            return None
        return from_catalog(record, ref.kind, self.artwork_size)

    async def _resolve_local_item(self, ref: ItemRef) -> CanonicalItem | None:
        entry = await self.local.query_item(ref.id)
        if entry is None:
            return None
        return from_local(entry, Kind.SONG)

    # ── Browsing ──

    async def _local_items(self, kind: Kind) -> list[CanonicalItem]:
        """Local counterparts for matching; [] when the local library is unreachable."""
        try:
            entries = await self.local.query_all(kind)
        except CollaboratorUnavailable as e:
            log.warning("Local library unavailable, returning catalog items unmatched: %s", e)
            return []
        return convert_all(entries, from_local, kind)

    async def get_library_view(self, kind, limit: int | None = None,
                               offset: int = 0) -> list[MatchedItem]:
        """One page of the catalog library for *kind*, annotated with local ids."""
        kind = Kind(kind)
        if kind not in LIBRARY_KINDS:
            raise ValueError(f"No library view for {kind.value}")
        records = await self.catalog.library_items(kind, limit or self.page_limit, offset)
        items = convert_all(records, from_catalog, kind, self.artwork_size)
        if kind not in MATCHED_KINDS:
            return unmatched(items)
        return reconcile(items, await self._local_items(kind))

    async def get_playlist_songs(self, playlist_id: str) -> list[MatchedItem]:
        records = await self.catalog.playlist_tracks(playlist_id)
        items = convert_all(records, from_catalog, None, self.artwork_size)
        return reconcile(items, await self._local_items(Kind.SONG))

    async def search(self, term: str, kinds=("song", "album"),
                     limit: int = 25, offset: int = 0) -> dict[str, list[CanonicalItem]]:
        results = await self.catalog.search_catalog(term, list(kinds), limit, offset)
        return {
            "songs": convert_all(results.get("songs"), from_catalog, Kind.SONG, self.artwork_size),
            "albums": convert_all(results.get("albums"), from_catalog, Kind.ALBUM, self.artwork_size),
        }

    async def recently_played(self) -> list[CanonicalItem]:
        records = await self.catalog.recently_played()
        return convert_all(records, recent_from_catalog, self.artwork_size)

    # ── Queue ──

    async def resolve_queue(self, request: QueueRequest) -> list[str]:
        return await self.queue.resolve(request)

    async def play_song_next(self, library_song_id: str) -> str:
        return await self.queue.play_next(library_song_id)

    async def play_local_item(self, persistent_id: str) -> None:
        await self.queue.jump_local(persistent_id)

    # ── Playback state ──

    async def get_snapshot(self, backend) -> PlaybackSnapshot:
        return await self.observers[BackendId(backend)].current()

    def subscribe(self, backend, listener, events=(STATE,)) -> SubscriptionHandle:
        backend = BackendId(backend)
        token = self.observers[backend].subscribe(listener, events)
        return SubscriptionHandle(backend, token)

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        return self.observers[handle.backend].unsubscribe(handle.token)

    # ── Transport ──

    async def play(self, backend):
        await self._backend(backend).play()

    async def pause(self, backend):
        await self._backend(backend).pause()

    async def toggle(self, backend) -> str:
        """Pause when playing, otherwise play.  Returns the command sent."""
        target = self._backend(backend)
        raw = await target.current_snapshot()
        if PlaybackStatus.from_backend(raw.status) is PlaybackStatus.PLAYING:
            await target.pause()
            return "pause"
        await target.play()
        return "play"

    async def skip_next(self, backend):
        await self._backend(backend).skip_next()

    async def skip_previous(self, backend):
        await self._backend(backend).skip_previous()

    def status(self) -> dict:
        return {
            "running": self.running,
            "backends": {
                backend.value: {
                    "lastReported": observer.last_reported_status.value,
                    "evaluations": observer.evaluations,
                }
                for backend, observer in self.observers.items()
            },
        }
