# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
HTTP plugin — the aiohttp server other plugins attach routes to.

Publishes itself as ``player.plugin_vars["http"]``; plugins loaded after it
add routes to ``app`` in their constructor.  The server starts listening in
``start()``, once every builtin plugin exists.

Also serves a push-only WebSocket at ``/ws`` that relays queue, song,
and volume changes to UI clients as ``{"type": ..., "data": ...}``.
"""

import asyncio
import json
import logging

from aiohttp import web

from ..lib.config import cfg
from ..lib.plugin_base import Plugin

log = logging.getLogger(__name__)


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


class HttpPlugin(Plugin):
    name = "http"

    def __init__(self, player, host: str | None = None, port: int | None = None):
        super().__init__(player)
        self.host = host or cfg("http", "host")
        self.port = int(port if port is not None else cfg("http", "port"))
        self.app = web.Application(middlewares=[cors_middleware])
        self.app.router.add_get("/ws", self._handle_ws)
        self._runner: web.AppRunner | None = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._tasks: set[asyncio.Task] = set()   # broadcasts in flight
        player.plugin_vars["http"] = self

    # ── Server ──

    async def start(self):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("HTTP API on %s:%d", self.host, self.port)

    async def stop(self):
        for task in list(self._tasks):
            task.cancel()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── WebSocket broadcasting ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))
        try:
            await ws.send_json({"type": "queue", "data": self._queue_state()})
            async for msg in ws:
                pass  # push-only
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))
        return ws

    async def broadcast(self, event_type: str, data):
        """Push an event to all connected WebSocket clients."""
        if not self._ws_clients:
            return
        message = json.dumps({"type": event_type, "data": data})

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)
        self._ws_clients -= disconnected
        log.debug("Broadcast %s to %d clients", event_type, len(self._ws_clients))

    def _queue_state(self) -> dict:
        np = self.player.now_playing
        return {
            "queue": self.player.queue.to_list(),
            "nowPlaying": np.to_dict() if np else None,
            "play": self.player.play,
            "repeat": self.player.repeat,
            "volume": self.player.volume,
        }

    # ── Hooks ──

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def on_queue_modified(self, queue):
        self._spawn(self.broadcast("queue", self._queue_state()))

    def on_song_change(self, song):
        self._spawn(self.broadcast("song_change", song.to_dict()))

    def on_song_end(self, song):
        self._spawn(self.broadcast("song_end", song.to_dict()))

    def on_volume_change(self, volume, actor_id):
        self._spawn(self.broadcast("volume", {"volume": volume, "actor": actor_id}))


def create(player):
    return HttpPlugin(player)
