"""
Shared configuration loader for TwinPlay.

Loads a single JSON config file.  Search order:
  1. $TWINPLAY_CONFIG               (explicit override)
  2. /etc/twinplay/config.json      (deployed)
  3. config.json                    (CWD — handy for local dev)
  4. ../../config/default.json      (repo fallback)

Secrets (APPLE_MUSIC_DEVELOPER_TOKEN, APPLE_MUSIC_USER_TOKEN) stay in
environment variables.

Usage:
    from twinplay.lib.config import cfg

    debounce_ms = cfg("engine", "debounce_ms", default=50)
    storefront  = cfg("catalog", "storefront", default="us")
    catalog     = cfg("catalog")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None
_config_path: str | None = None

_SEARCH_PATHS = [
    "/etc/twinplay/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]


def _search_paths() -> list[str]:
    override = os.environ.get("TWINPLAY_CONFIG")
    if override:
        return [override] + _SEARCH_PATHS
    return list(_SEARCH_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    engine = config.get("engine") or {}
    debounce = engine.get("debounce_ms")
    if debounce is not None and (not isinstance(debounce, (int, float)) or debounce <= 0):
        logger.warning("Config %s: engine.debounce_ms must be a positive number, got %r",
                       path, debounce)
    local = config.get("local") or {}
    if not local.get("index_path"):
        logger.warning("Config %s: missing local.index_path — local library will be empty", path)
    catalog = config.get("catalog") or {}
    if catalog.get("api_base") and not str(catalog["api_base"]).startswith("http"):
        logger.warning("Config %s: catalog.api_base '%s' is not an http(s) URL",
                       path, catalog["api_base"])


def load_config() -> dict:
    """Load config from the first usable JSON file. Cached after first call."""
    global _config, _config_path
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue
        if not isinstance(data, dict):
            logger.error("Config %s must be a JSON object, got %s", path, type(data).__name__)
            continue
        _config, _config_path = data, path
        logger.info("Config loaded from %s", path)
        _validate(_config, path)
        return _config

    logger.warning("No config.json found — using empty config")
    _config, _config_path = {}, None
    return _config


def config_path() -> str | None:
    """Path of the loaded config file (None when running on defaults)."""
    load_config()
    return _config_path


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("engine")                         → config["engine"]
    cfg("catalog", "storefront")          → config["catalog"]["storefront"]
    cfg("engine", "debounce_ms", default=50)  → config["engine"]["debounce_ms"] or 50
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config, _config_path
    _config, _config_path = None, None
    return load_config()
