# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Abstract base classes for the two playback backends.

Both backends share the playback capability (snapshot, change notifications,
prepare, transport).  The catalog additionally resolves records by id; the
local library answers queries over its own index.

Records crossing this boundary are raw backend dicts; conversion to
CanonicalItem happens in twinplay.lib.convert.  Transport or auth failures
are raised as CollaboratorUnavailable.  A lookup that finds nothing returns
None / [] rather than raising.
"""

from abc import ABC, abstractmethod
from typing import Callable

from ..lib.records import BackendId, Kind, RawSnapshot

ChangeCallback = Callable[[], None]

# Catalog queue insert positions
REPLACE = "replace"
AFTER_CURRENT = "afterCurrent"


class PlaybackBackend(ABC):
    """Capability every backend offers: observe and drive its own player."""

    id: BackendId

    def __init__(self):
        self._change_callbacks: list[ChangeCallback] = []

    def on_change(self, callback: ChangeCallback) -> None:
        """Register *callback*; called (no arguments) on every player notification."""
        self._change_callbacks.append(callback)

    def notify_change(self) -> None:
        for callback in list(self._change_callbacks):
            callback()

    @abstractmethod
    async def current_snapshot(self) -> RawSnapshot: ...

    @abstractmethod
    async def prepare(self) -> None:
        """Stage the installed queue for playback.  Raises PrepareFailed if refused."""

    @abstractmethod
    async def play(self) -> None: ...

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def skip_next(self) -> None: ...

    @abstractmethod
    async def skip_previous(self) -> None: ...

    # -- Optional lifecycle --

    async def start(self) -> None:
        pass  # no-op by default (nothing to connect)

    async def stop(self) -> None:
        pass


class CatalogBackend(PlaybackBackend):
    """The network catalog and the player that streams from it."""

    id = BackendId.CATALOG

    @abstractmethod
    async def search_catalog(self, term: str, kinds: list[str],
                             limit: int = 25, offset: int = 0) -> dict[str, list[dict]]:
        """Search the catalog.  Returns raw records grouped by type ("songs", "albums")."""

    @abstractmethod
    async def resolve_by_id(self, kind: str, item_id: str) -> dict | None:
        """Look up exactly one catalog record by (kind, id)."""

    @abstractmethod
    async def library_items(self, kind: Kind, limit: int, offset: int) -> list[dict]:
        """One page of the user's catalog library for *kind*."""

    @abstractmethod
    async def playlist_tracks(self, playlist_id: str) -> list[dict]: ...

    @abstractmethod
    async def library_song_catalog(self, library_id: str) -> dict | None:
        """Catalog counterpart of a library song, or None."""

    @abstractmethod
    async def recently_played(self) -> list[dict]: ...

    @abstractmethod
    async def install_queue(self, records: list[dict], position: str = REPLACE) -> None:
        """Replace the queue (REPLACE) or insert after the current entry (AFTER_CURRENT)."""


class LocalBackend(PlaybackBackend):
    """The device-local media index and the player that renders it."""

    id = BackendId.LOCAL

    @abstractmethod
    async def query_all(self, kind: Kind) -> list[dict]:
        """Every index entry for *kind* (songs, albums, artists, playlists)."""

    @abstractmethod
    async def query_by_parent(self, kind: Kind, parent_id: str) -> list[dict] | None:
        """Tracks under an album or playlist, or None if the parent is unknown."""

    @abstractmethod
    async def query_item(self, persistent_id: str) -> dict | None: ...

    @abstractmethod
    async def install_queue(self, records: list[dict]) -> None: ...

    @abstractmethod
    async def jump_to(self, persistent_id: str) -> bool:
        """Play an entry already in the queue.  False if it is not queued."""
