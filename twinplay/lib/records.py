# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Canonical records shared by every TwinPlay component.

Both backends report items in their own shape (Apple Music API resources on
the catalog side, media-index entries on the local side).  Everything above
the converter works with these types only.

All records are values: components hand out copies, never references into
their own state.
"""

from dataclasses import dataclass, field
from enum import Enum


class Kind(str, Enum):
    SONG = "song"
    ALBUM = "album"
    ARTIST = "artist"
    PLAYLIST = "playlist"
    GENRE = "genre"
    VIDEO = "video"
    RECENT = "recent"


class QueueKind(str, Enum):
    SONG = "song"
    ALBUM = "album"
    PLAYLIST = "playlist"
    STATION = "station"


class BackendId(str, Enum):
    CATALOG = "catalog"
    LOCAL = "local"


class PlaybackStatus(str, Enum):
    IDLE = "idle"                  # observer only — never reported by a backend
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    INTERRUPTED = "interrupted"
    SEEKING_FORWARD = "seekingForward"
    SEEKING_BACKWARD = "seekingBackward"
    UNKNOWN = "unknown"

    @classmethod
    def from_backend(cls, value) -> "PlaybackStatus":
        """Map a backend status string onto the enum; anything unrecognised is UNKNOWN."""
        if isinstance(value, cls):
            return value if value is not cls.IDLE else cls.UNKNOWN
        try:
            status = cls(str(value))
        except ValueError:
            return cls.UNKNOWN
        return status if status is not cls.IDLE else cls.UNKNOWN


@dataclass(frozen=True)
class CanonicalItem:
    """A backend record converted to the common shape."""
    id: str
    kind: Kind
    title: str
    subtitle: str = ""
    artwork_url: str = ""
    duration: float | None = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "subtitle": self.subtitle,
            "artworkUrl": self.artwork_url,
            "duration": self.duration,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class MatchedItem:
    """A catalog item plus the ids of its local counterpart ("" when unmatched)."""
    item: CanonicalItem
    local_id: str = ""
    album_id: str = ""
    artist_id: str = ""

    @property
    def matched(self) -> bool:
        return bool(self.local_id)

    def to_dict(self) -> dict:
        data = self.item.to_dict()
        data.update({
            "localId": self.local_id,
            "albumId": self.album_id,
            "artistId": self.artist_id,
        })
        return data


@dataclass(frozen=True)
class ItemRef:
    """Reference to a backend item — what change notifications carry."""
    kind: Kind
    id: str


@dataclass(frozen=True)
class RawSnapshot:
    """Playback state exactly as a collaborator reports it."""
    status: str
    rate: float = 0.0
    position: float = 0.0
    current_ref: ItemRef | None = None


@dataclass(frozen=True)
class PlaybackSnapshot:
    backend: BackendId
    status: PlaybackStatus
    rate: float = 0.0
    position: float = 0.0
    current_item: CanonicalItem | None = None

    def to_dict(self) -> dict:
        data = {
            "backend": self.backend.value,
            "status": self.status.value,
            "rate": self.rate,
            "position": self.position,
        }
        if self.current_item is not None:
            data["currentItem"] = self.current_item.to_dict()
        return data


@dataclass(frozen=True)
class QueueRequest:
    """Play request: consumed once by the queue resolver, then discarded."""
    ref_id: str
    kind: QueueKind
    backend: BackendId

    def __post_init__(self):
        if self.backend is BackendId.LOCAL and self.kind is QueueKind.STATION:
            raise ValueError("The local library has no stations")

    @classmethod
    def from_dict(cls, data: dict) -> "QueueRequest":
        try:
            kind = QueueKind(data.get("kind", ""))
        except ValueError:
            raise ValueError(f"Unknown queue kind: {data.get('kind')!r}") from None
        try:
            backend = BackendId(data.get("backend", ""))
        except ValueError:
            raise ValueError(f"Unknown backend: {data.get('backend')!r}") from None
        ref_id = str(data.get("refId") or data.get("ref_id") or "")
        if not ref_id and not (backend is BackendId.LOCAL and kind is QueueKind.SONG):
            raise ValueError("refId is required")
        return cls(ref_id=ref_id, kind=kind, backend=backend)

