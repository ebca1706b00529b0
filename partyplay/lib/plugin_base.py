# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Plugin — the one shape every partyplay plugin has.

A plugin is a named bundle of hook functions.  The player calls hooks in
plugin registration order and stops at the first hook that returns a truthy
value (an error message or veto).  Hooks run synchronously on the event loop;
schedule a task for anything slow.

Subclass contract:

    class MyPlugin(Plugin):
        name = "myplugin"

        def on_volume_change(self, volume, actor_id):
            ...                          # methods named after a hook register themselves

        def pre_add_search_result(self, song):
            if song.duration > 15 * 60 * 1000:
                return "song too long"   # veto

    def create(player):
        return MyPlugin(player)

Hooks can also be attached at runtime with ``register_hook(name, fn)``.

Optional overrides:
    start()   — awaited once every plugin of the same load stage exists
    stop()    — awaited on player shutdown
"""

import logging

log = logging.getLogger(__name__)

HOOK_NAMES = (
    # Initialization pipeline
    "on_builtin_plugins_initialized",
    "on_plugins_initialized",
    "on_builtin_backends_initialized",
    "on_backends_initialized",
    "on_ready",
    # Queue
    "pre_songs_queued",
    "post_songs_queued",
    "on_songs_removed",
    "on_queue_modified",
    # Playback
    "on_song_change",
    "on_song_end",
    "on_volume_change",
    # Preparation
    "on_prepare_progress",
    "on_song_prepared",
    "on_song_prepare_error",
    # Search
    "pre_add_search_result",
)


class Plugin:
    name: str = ""

    def __init__(self, player):
        self.player = player
        self.hooks: dict = {}
        for hook in HOOK_NAMES:
            fn = getattr(self, hook, None)
            if callable(fn):
                self.hooks[hook] = fn

    def register_hook(self, hook: str, fn):
        if hook not in HOOK_NAMES:
            log.warning("%s: registering unknown hook %s", self.name or self, hook)
        self.hooks[hook] = fn

    async def start(self):
        """Called after every plugin of this load stage has been created."""

    async def stop(self):
        """Called during player shutdown."""
