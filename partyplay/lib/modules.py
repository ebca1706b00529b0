# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Module loader for plugins and backends.

Builtins live in ``partyplay.plugins`` / ``partyplay.backends``.  External
modules are named in config.json and imported as ``partyplay_plugin_<name>``
/ ``partyplay_backend_<name>``, or by full dotted path.  Every module
exposes ``create(player)`` returning its Plugin / Backend instance.

Each loader creates all modules of its stage first, then awaits their
``start()`` in load order, so a plugin can hand resources to plugins loaded
after it (e.g. ``rest`` adds routes to the ``http`` app before it listens).
"""

import importlib
import logging
import sys

log = logging.getLogger(__name__)

# Order matters: rest registers its routes on the http plugin's app
BUILTIN_PLUGINS = ["http", "rest"]
BUILTIN_BACKENDS = ["local"]


def _import(name: str, package: str | None, prefix: str, force_update: bool):
    if package:
        return importlib.import_module(f"{package}.{name}")

    candidates = [name] if "." in name else [f"{prefix}{name}", name]
    last_error = None
    for module_name in candidates:
        try:
            if force_update and module_name in sys.modules:
                log.info("reloading %s", module_name)
                return importlib.reload(sys.modules[module_name])
            return importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            if e.name != module_name:
                raise  # the module exists but one of its imports is missing
            last_error = e
    raise last_error


async def _load(player, names, kind: str, package: str | None, prefix: str,
                force_update: bool = False) -> dict:
    builtin = package is not None
    loaded = {}

    for name in names or []:
        try:
            module = _import(name, package, prefix, force_update)
            descriptor = module.create(player)
        except Exception as e:
            if builtin:
                raise
            log.error("failed to load %s %s: %s", kind, name, e)
            continue
        if not getattr(descriptor, "name", None):
            descriptor.name = name
        loaded[name] = descriptor
        log.info("%s loaded: %s", kind, name)

    for name, descriptor in list(loaded.items()):
        start = getattr(descriptor, "start", None)
        if start is None:
            continue
        try:
            await start()
        except Exception:
            if builtin:
                raise
            log.exception("failed to start %s %s", kind, name)
            del loaded[name]

    return loaded


async def load_builtin_plugins(player) -> dict:
    return await _load(player, BUILTIN_PLUGINS, "plugin", "partyplay.plugins", "")


async def load_plugins(player, names, force_update: bool = False) -> dict:
    return await _load(player, names, "plugin", None, "partyplay_plugin_", force_update)


async def load_builtin_backends(player) -> dict:
    return await _load(player, BUILTIN_BACKENDS, "backend", "partyplay.backends", "")


async def load_backends(player, names, force_update: bool = False) -> dict:
    return await _load(player, names, "backend", None, "partyplay_backend_", force_update)
