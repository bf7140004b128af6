# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Queue resolver — turn a QueueRequest into a prepared queue on one backend.

Catalog: one record is looked up by (kind, id) and installed as the whole
queue; albums, playlists and stations expand on the player's side.

Local: tracks under an album/playlist are installed sorted ascending by
persistent id.  This keeps the order identical across calls even when the
index carries no track numbers.  An empty song refId means "every local
song", in index order.

Failures leave the backend queue as it is at that point.  Nothing is rolled
back, so callers re-read state before resuming.
"""

import logging

from ..backends.base import AFTER_CURRENT, REPLACE
from .convert import persistent_id_key
from .errors import NotFound
from .records import BackendId, Kind, QueueKind, QueueRequest

log = logging.getLogger(__name__)


class QueueResolver:

    def __init__(self, catalog, local):
        self.catalog = catalog
        self.local = local

    async def resolve(self, request: QueueRequest) -> list[str]:
        """Install and prepare the queue for *request*.  Returns the queued ids in order."""
        if request.backend is BackendId.CATALOG:
            return await self._resolve_catalog(request)
        return await self._resolve_local(request)

    async def _resolve_catalog(self, request: QueueRequest) -> list[str]:
        record = await self.catalog.resolve_by_id(request.kind.value, request.ref_id)
        if record is None:
            log.info("Catalog %s %s not found", request.kind.value, request.ref_id)
            raise NotFound(request.kind, request.ref_id)
        await self.catalog.install_queue([record], REPLACE)
        await self.catalog.prepare()
        log.info("Catalog queue ready: %s %s", request.kind.value, request.ref_id)
        return [str(record.get("id", request.ref_id))]

    async def _resolve_local(self, request: QueueRequest) -> list[str]:
        if request.kind is QueueKind.SONG:
            if request.ref_id:
                entry = await self.local.query_item(request.ref_id)
                if entry is None:
                    raise NotFound(request.kind, request.ref_id)
                tracks = [entry]
            else:
                tracks = await self.local.query_all(Kind.SONG)
        else:
            tracks = await self.local.query_by_parent(Kind(request.kind.value), request.ref_id)
            if not tracks:
                log.info("Local %s %s not found or empty", request.kind.value, request.ref_id)
                raise NotFound(request.kind, request.ref_id)
            tracks = sorted(tracks, key=lambda t: persistent_id_key(t.get("persistentID")))

        await self.local.install_queue(tracks)
        await self.local.prepare()
        log.info("Local queue ready: %d track(s) for %s %s",
                 len(tracks), request.kind.value, request.ref_id or "<all>")
        return [str(t.get("persistentID")) for t in tracks]

    async def play_next(self, library_song_id: str) -> str:
        """Queue a library song's catalog version after the current entry and play."""
        record = await self.catalog.library_song_catalog(library_song_id)
        if record is None:
            raise NotFound(QueueKind.SONG, library_song_id)
        await self.catalog.install_queue([record], AFTER_CURRENT)
        await self.catalog.prepare()
        await self.catalog.play()
        log.info("Playing catalog song %s next", record.get("id"))
        return str(record.get("id", ""))

    async def jump_local(self, persistent_id: str) -> None:
        """Play an item already in the local queue."""
        if not await self.local.jump_to(persistent_id):
            raise NotFound(QueueKind.SONG, persistent_id)
