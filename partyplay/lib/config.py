# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for partyplay.

Loads a single JSON config file.  Search order:
  1. $PARTYPLAY_CONFIG               (explicit path, e.g. from --config)
  2. /etc/partyplay/config.json      (system install)
  3. config.json                     (CWD — handy for local dev)

Usage:
    from partyplay.lib.config import cfg

    plugins         = cfg("plugins", default=[])
    prepare_timeout = cfg("player", "prepare_timeout", default=10)
    result_count    = cfg("search", "result_count", default=10)
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/partyplay/config.json",
    "config.json",
]

# Values used when a key is absent from the config file
DEFAULTS = {
    "plugins": [],
    "backends": [],
    "player": {
        "prepare_timeout": 10,       # seconds without fetch progress before cancel
        "song_delay": 1.0,           # seconds of silence between songs
    },
    "search": {
        "result_count": 10,
    },
    "voting": {
        "bad_vote_percent": 0.67,    # read by voting plugins, not by the core
    },
    "cache": {
        "path": os.path.join(os.path.expanduser("~"), ".partyplay", "song_cache"),
    },
    "http": {
        "host": "0.0.0.0",
        "port": 8080,
    },
    "local": {
        "paths": [],
    },
}


def _search_paths() -> list[str]:
    paths = list(_SEARCH_PATHS)
    env_path = os.environ.get("PARTYPLAY_CONFIG")
    if env_path:
        paths.insert(0, env_path)
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    for section in ("plugins", "backends"):
        val = config.get(section)
        if val is not None and not isinstance(val, list):
            logger.warning("Config %s: '%s' should be a list of module names", path, section)
    player = config.get("player") or {}
    timeout = player.get("prepare_timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        logger.warning("Config %s: player.prepare_timeout must be a positive number", path)
    voting = config.get("voting") or {}
    ratio = voting.get("bad_vote_percent")
    if ratio is not None and not 0 <= ratio <= 1:
        logger.warning("Config %s: voting.bad_vote_percent %s outside [0, 1]", path, ratio)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("plugins")                        → config["plugins"]
    cfg("player", "prepare_timeout")      → config["player"]["prepare_timeout"]
    cfg("search", "result_count", default=5)  → config value or 5

    Without an explicit *default*, missing keys fall back to DEFAULTS.
    """
    config = load_config()
    if default is None:
        default = DEFAULTS.get(section) if key is None else (DEFAULTS.get(section) or {}).get(key)
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
