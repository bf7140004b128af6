"""
Playback backends for TwinPlay.

Two collaborators, both required:
  - ``AppleMusicCatalog`` – network catalog via the Apple Music API
  - ``MediaIndexLibrary`` – device-local library from an exported media index

The factory function ``create_backends`` reads config.json and builds both,
sharing one aiohttp session when given.
"""

import logging

import aiohttp

from ..lib.config import cfg
from .apple_music import AppleMusicCatalog
from .base import CatalogBackend, LocalBackend, PlaybackBackend
from .media_index import MediaIndexLibrary

logger = logging.getLogger(__name__)

__all__ = [
    "PlaybackBackend",
    "CatalogBackend",
    "LocalBackend",
    "AppleMusicCatalog",
    "MediaIndexLibrary",
    "create_backends",
]


def create_backends(session: aiohttp.ClientSession | None = None):
    """Create (catalog, local) from config.json.

    Reads from config.json:
      catalog.api_base, catalog.storefront, catalog.player_url
      local.index_path, local.player_url
    Tokens come from the environment / token store (see tokens.py).
    """
    catalog = AppleMusicCatalog(
        storefront=cfg("catalog", "storefront"),
        api_base=cfg("catalog", "api_base"),
        player_url=cfg("catalog", "player_url"),
        session=session,
    )
    local = MediaIndexLibrary(
        index_path=cfg("local", "index_path"),
        player_url=cfg("local", "player_url"),
        session=session,
    )
    logger.info("Backends: catalog %s (%s), local index %s",
                catalog.api_base, catalog.storefront, local.index_path)
    return catalog, local
