# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Watchdogs for the player process.

KeyedWatchdog — deadman's switch per key (song preparations).  Every arm()
pushes the deadline forward; if nothing re-arms or clears a key within
*interval* seconds, the expiry callback runs once for that key.

sd_notify / heartbeat_loop — systemd readiness and WATCHDOG=1 heartbeats.
Silently no-ops when NOTIFY_SOCKET is unset (macOS / dev mode).

Usage:
    timeouts = KeyedWatchdog(10, on_expire=lambda key, song: ...)
    timeouts.arm(song.song_id, song)     # (re)start the countdown
    timeouts.clear(song.song_id)         # progress finished, stop watching

    asyncio.create_task(heartbeat_loop())
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


class KeyedWatchdog:
    """Cancellable timers keyed by identity, at most one per key."""

    def __init__(self, interval: float, on_expire, loop: asyncio.AbstractEventLoop | None = None):
        self.interval = interval
        self._on_expire = on_expire
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def arm(self, key, *args):
        """Start or restart the countdown for *key*."""
        handle = self._handles.pop(key, None)
        if handle:
            handle.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.interval, self._expire, key, args)

    def clear(self, key) -> bool:
        """Stop watching *key*.  Returns True if a countdown was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def clear_all(self):
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _expire(self, key, args):
        self._handles.pop(key, None)
        self._on_expire(key, *args)

    def __contains__(self, key):
        return key in self._handles

    def __len__(self):
        return len(self._handles)


def sd_notify(msg: str):
    """Send a notification message to the systemd notify socket."""
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    finally:
        sock.close()


async def heartbeat_loop(interval: int = 20):
    """Send WATCHDOG=1 every *interval* seconds.  Call as asyncio.create_task()."""
    logger.info("Systemd heartbeat started (interval=%ds)", interval)
    while True:
        sd_notify("WATCHDOG=1")
        await asyncio.sleep(interval)
