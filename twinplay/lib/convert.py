# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Record converter — backend records → CanonicalItem.

Catalog records are Apple Music API resources:

    {"id": "1440857781", "type": "songs",
     "attributes": {"name": ..., "artistName": ..., "durationInMillis": ...,
                    "artwork": {"url": "https://.../{w}x{h}bb.jpg"}}}

Local records are media-index entries (one per track, playlists separately):

    {"persistentID": "8271...", "title": ..., "artist": ..., "albumTitle": ...,
     "albumArtist": ..., "albumPersistentID": ..., "artistPersistentID": ...,
     "albumArtistPersistentID": ..., "playbackDuration": 201.4,
     "albumTrackCount": 11}

Every converter is total: a record that cannot produce an id yields None and
is dropped, never a half-filled item.  Optional upstream fields become "" or 0.
"""

import logging
from urllib.parse import urlsplit

from .errors import MalformedRecord
from .records import CanonicalItem, Kind

log = logging.getLogger(__name__)

ARTWORK_SIZE = 200

# Artwork URLs in these schemes only resolve inside the vendor framework
INTERNAL_ARTWORK_SCHEMES = {"musickit"}

CATALOG_TYPES = {
    "songs": Kind.SONG,
    "library-songs": Kind.SONG,
    "albums": Kind.ALBUM,
    "library-albums": Kind.ALBUM,
    "artists": Kind.ARTIST,
    "library-artists": Kind.ARTIST,
    "playlists": Kind.PLAYLIST,
    "library-playlists": Kind.PLAYLIST,
    "genres": Kind.GENRE,
    "music-videos": Kind.VIDEO,
    "library-music-videos": Kind.VIDEO,
}

RECENT_TYPES = {
    "albums": "album",
    "library-albums": "album",
    "playlists": "playlist",
    "library-playlists": "playlist",
    "stations": "station",
}

_CONVERT_ERRORS = (MalformedRecord, AttributeError, KeyError, TypeError, ValueError)


# ── Field helpers ──

def artwork_url(artwork, size: int = ARTWORK_SIZE) -> str:
    """Resolve a sized artwork URL; "" when missing or not publicly fetchable."""
    if not artwork:
        return ""
    template = artwork.get("url") if isinstance(artwork, dict) else str(artwork)
    if not template:
        return ""
    url = template.replace("{w}", str(size)).replace("{h}", str(size))
    scheme = urlsplit(url).scheme.lower()
    if scheme in INTERNAL_ARTWORK_SCHEMES:
        log.debug("Dropping internal artwork URL %s", url)
        return ""
    return url


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        # Apple's editorial blocks: {"standard": ..., "short": ...}
        return str(value.get("standard") or value.get("short") or "")
    return str(value)


def _count(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _seconds(value, scale: float = 1.0) -> float:
    try:
        return float(value or 0) / scale
    except (TypeError, ValueError):
        return 0.0


def _date(value) -> str:
    """ISO timestamp → yyyy-mm-dd ("" when missing)."""
    return str(value)[:10] if value else ""


def _require_id(value) -> str:
    ident = "" if value is None else str(value).strip()
    if not ident or ident == "0":
        raise MalformedRecord("record has no usable id")
    return ident


def persistent_id_key(pid):
    """Sort key for persistent ids: numeric ids ascending, anything else after."""
    text = str(pid)
    if text.isdigit():
        return (0, int(text), "")
    return (1, 0, text)


# ── Catalog ──

def _catalog_item(record: dict, kind: Kind, size: int) -> CanonicalItem:
    ident = _require_id(record.get("id"))
    attrs = record.get("attributes") or {}
    art = artwork_url(attrs.get("artwork"), size)
    title = _text(attrs.get("name"))
    play_params = attrs.get("playParams") or {}

    if kind in (Kind.SONG, Kind.VIDEO):
        return CanonicalItem(
            id=ident, kind=kind, title=title,
            subtitle=_text(attrs.get("artistName")),
            artwork_url=art,
            duration=_seconds(attrs.get("durationInMillis"), 1000),
            extra={
                "albumName": _text(attrs.get("albumName")),
                "catalogId": _text(play_params.get("catalogId")),
            },
        )
    if kind is Kind.ALBUM:
        return CanonicalItem(
            id=ident, kind=kind, title=title,
            subtitle=_text(attrs.get("artistName")),
            artwork_url=art,
            extra={"trackCount": _count(attrs.get("trackCount"))},
        )
    if kind is Kind.ARTIST:
        albums = ((record.get("relationships") or {}).get("albums") or {}).get("data") or []
        return CanonicalItem(
            id=ident, kind=kind, title=title, artwork_url=art,
            extra={
                "description": _text(attrs.get("editorialNotes")),
                "albumCount": len(albums),
            },
        )
    if kind is Kind.PLAYLIST:
        return CanonicalItem(
            id=ident, kind=kind, title=title,
            subtitle=_text(attrs.get("curatorName")),
            artwork_url=art,
            extra={
                "description": _text(attrs.get("description")),
                "dateAdded": _date(attrs.get("lastModifiedDate") or attrs.get("dateAdded")),
                "catalogId": _text(play_params.get("globalId") or play_params.get("catalogId")),
            },
        )
    if kind is Kind.GENRE:
        return CanonicalItem(id=ident, kind=kind, title=title,
                             extra={"description": ""})
    raise MalformedRecord(f"unsupported catalog kind {kind}")


def from_catalog(record, kind: Kind | None = None, artwork_size: int = ARTWORK_SIZE) -> CanonicalItem | None:
    """Convert one Apple Music API resource.  Returns None if it is unusable."""
    try:
        if kind is None:
            kind = CATALOG_TYPES.get(record.get("type", ""))
            if kind is None:
                raise MalformedRecord(f"unknown catalog type {record.get('type')!r}")
        return _catalog_item(record, kind, artwork_size)
    except _CONVERT_ERRORS as e:
        log.debug("Dropping catalog record: %s", e)
        return None


def recent_from_catalog(record, artwork_size: int = ARTWORK_SIZE) -> CanonicalItem | None:
    """Convert a recently-played container (album / playlist / station)."""
    try:
        ident = _require_id(record.get("id"))
        attrs = record.get("attributes") or {}
        return CanonicalItem(
            id=ident, kind=Kind.RECENT,
            title=_text(attrs.get("name")),
            subtitle=_text(attrs.get("artistName") or attrs.get("curatorName")),
            artwork_url=artwork_url(attrs.get("artwork"), artwork_size),
            extra={"type": RECENT_TYPES.get(record.get("type", ""), "unknown")},
        )
    except _CONVERT_ERRORS as e:
        log.debug("Dropping recently played record: %s", e)
        return None


# ── Local ──

def _local_song(entry: dict) -> CanonicalItem:
    return CanonicalItem(
        id=_require_id(entry.get("persistentID")),
        kind=Kind.SONG,
        title=_text(entry.get("title")),
        subtitle=_text(entry.get("artist")),
        artwork_url=artwork_url(entry.get("artworkUrl")),
        duration=_seconds(entry.get("playbackDuration")),
        extra={
            "albumId": _text(entry.get("albumPersistentID")),
            "artistId": _text(entry.get("artistPersistentID")),
        },
    )


def _local_album(entry: dict) -> CanonicalItem:
    return CanonicalItem(
        id=_require_id(entry.get("albumPersistentID")),
        kind=Kind.ALBUM,
        title=_text(entry.get("albumTitle")),
        subtitle=_text(entry.get("albumArtist")),
        artwork_url=artwork_url(entry.get("artworkUrl")),
        extra={
            "trackCount": _count(entry.get("albumTrackCount")),
            "artistId": _text(entry.get("artistPersistentID")),
        },
    )


def _local_artist(entry: dict) -> CanonicalItem:
    # Compilations leave artistPersistentID at 0 — fall back to the album artist
    artist_pid = entry.get("artistPersistentID")
    if not artist_pid or str(artist_pid) == "0":
        artist_pid = entry.get("albumArtistPersistentID")
    return CanonicalItem(
        id=_require_id(artist_pid),
        kind=Kind.ARTIST,
        title=_text(entry.get("artist") or entry.get("albumArtist")),
        extra={"description": "", "albumCount": 0},
    )


def _local_playlist(entry: dict) -> CanonicalItem:
    return CanonicalItem(
        id=_require_id(entry.get("persistentID")),
        kind=Kind.PLAYLIST,
        title=_text(entry.get("name")),
        artwork_url=artwork_url(entry.get("artworkUrl")),
        extra={
            "description": _text(entry.get("descriptionText")),
            "dateAdded": _date(entry.get("dateCreated")),
            "trackCount": len(entry.get("items") or []),
        },
    )


_LOCAL_BUILDERS = {
    Kind.SONG: _local_song,
    Kind.ALBUM: _local_album,
    Kind.ARTIST: _local_artist,
    Kind.PLAYLIST: _local_playlist,
}


def from_local(entry, kind: Kind = Kind.SONG) -> CanonicalItem | None:
    """Convert one media-index entry viewed as *kind*.  Returns None if unusable."""
    try:
        builder = _LOCAL_BUILDERS.get(kind)
        if builder is None:
            raise MalformedRecord(f"local library has no {kind.value} records")
        return builder(entry)
    except _CONVERT_ERRORS as e:
        log.debug("Dropping local record: %s", e)
        return None


def convert_all(records, convert, *args) -> list[CanonicalItem]:
    """Apply *convert* to each record, keeping order and dropping failures."""
    items = []
    for record in records or []:
        item = convert(record, *args)
        if item is not None:
            items.append(item)
    return items
