# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Matcher — annotate catalog items with the ids of their local counterparts.

Two items are "the same" when their normalised (title, subtitle) pairs are
equal.  No fuzzy matching and no duration check.  When several local items
share a key the first one in local iteration order wins, so two distinct
catalog songs with the same title and artist both point at that one local
song.  Output follows catalog order; local-only items are not surfaced here.
"""

import logging

from .normalize import match_key
from .records import CanonicalItem, Kind, MatchedItem

log = logging.getLogger(__name__)


def _index_local(local_items: list[CanonicalItem]) -> dict:
    index = {}
    for item in local_items:
        index.setdefault((item.kind, match_key(item.title, item.subtitle)), item)
    return index


def _cross_refs(local: CanonicalItem) -> dict:
    """Ids copied from a local match: the item itself plus its parent for the kind."""
    refs = {"local_id": local.id}
    if local.kind is Kind.SONG:
        refs["album_id"] = str(local.extra.get("albumId", ""))
    elif local.kind is Kind.ALBUM:
        refs["artist_id"] = str(local.extra.get("artistId", ""))
    return refs


def reconcile(catalog_items: list[CanonicalItem],
              local_items: list[CanonicalItem]) -> list[MatchedItem]:
    """Return one MatchedItem per catalog item, in catalog order."""
    index = _index_local(local_items)
    matched = []
    hits = 0
    for item in catalog_items:
        local = index.get((item.kind, match_key(item.title, item.subtitle)))
        if local is None:
            matched.append(MatchedItem(item))
            continue
        hits += 1
        matched.append(MatchedItem(item, **_cross_refs(local)))
    log.debug("Reconciled %d catalog items against %d local items (%d matched)",
              len(catalog_items), len(local_items), hits)
    return matched


def unmatched(catalog_items: list[CanonicalItem]) -> list[MatchedItem]:
    """Wrap items without looking for counterparts (cross-refs all "")."""
    return [MatchedItem(item) for item in catalog_items]
