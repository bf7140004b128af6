"""
Token store for Apple Music user credentials.

Reads user_token + storefront from a JSON file written by the setup flow of
the wider application.  Environment variables win over the file.

Storage locations (first existing wins):
  1. /etc/twinplay/apple_music_tokens.json  (production)
  2. ~/.config/twinplay/apple_music_tokens.json  (dev fallback)
"""

import json
import os

STORE_PATHS = [
    "/etc/twinplay/apple_music_tokens.json",
    os.path.join(os.path.expanduser("~"), ".config", "twinplay", "apple_music_tokens.json"),
]


def _find_store_path():
    for path in STORE_PATHS:
        if os.path.exists(path):
            return path
    return STORE_PATHS[-1]


def load_tokens():
    """Load tokens from disk. Returns dict or None if not found."""
    path = _find_store_path()
    try:
        with open(path) as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return None


def resolve_credentials():
    """Return (developer_token, user_token, storefront) from env, then the store."""
    tokens = load_tokens() or {}
    developer_token = os.getenv("APPLE_MUSIC_DEVELOPER_TOKEN", "")
    user_token = os.getenv("APPLE_MUSIC_USER_TOKEN") or tokens.get("user_token", "")
    storefront = tokens.get("storefront")
    return developer_token, user_token, storefront
