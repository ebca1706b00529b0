# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
REST plugin — queue, playback, volume and search over HTTP.

Routes are added to the ``http`` plugin's app, so this plugin must be
loaded after it.

  GET    /queue              queue + now playing
  POST   /queue/add          {"songs": [{backend, songId, ...}], "after": uuid}
  DELETE /queue/{uuid}       ?count=N
  POST   /playctl            {"action": "play"|"pause"|"stop"|"skip"|"repeat"}
  POST   /volume             {"volume": 0..1, "userID": ...}
  GET    /search             ?q=...
  GET    /playlists
  GET    /status
"""

import logging

from aiohttp import web

from ..lib.errors import PrepareError, QueueEmptyError
from ..lib.plugin_base import Plugin
from ..lib.song import Song

log = logging.getLogger(__name__)


async def _read_json(request: web.Request):
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


class RestPlugin(Plugin):
    name = "rest"

    def __init__(self, player):
        super().__init__(player)
        http = player.plugin_vars.get("http")
        if http is None:
            raise RuntimeError("rest plugin requires the http plugin to be loaded first")

        router = http.app.router
        router.add_get("/queue", self.handle_queue)
        router.add_post("/queue/add", self.handle_queue_add)
        router.add_delete("/queue/{uuid}", self.handle_queue_remove)
        router.add_post("/playctl", self.handle_playctl)
        router.add_post("/volume", self.handle_volume)
        router.add_get("/search", self.handle_search)
        router.add_get("/playlists", self.handle_playlists)
        router.add_get("/status", self.handle_status)

    # ── Queue ──

    async def handle_queue(self, request: web.Request) -> web.Response:
        np = self.player.now_playing
        return web.json_response({
            "nowPlaying": np.to_dict() if np else None,
            "queue": self.player.queue.to_list(),
        })

    async def handle_queue_add(self, request: web.Request) -> web.Response:
        data = await _read_json(request)
        if not data or not isinstance(data.get("songs"), list):
            return _error("'songs' list required")

        songs = []
        for entry in data["songs"]:
            if not isinstance(entry, dict):
                return _error(f"song entry must be an object: {entry!r}")
            duration = entry.get("duration", 0)
            if not _is_number(duration):
                return _error(f"invalid duration: {duration!r}")
            backend = self.player.backends.get(entry.get("backend"))
            if backend is None or not entry.get("songId"):
                return _error(f"unknown backend or missing songId: {entry}")
            songs.append(Song(
                entry["songId"], backend,
                title=entry.get("title", ""),
                artist=entry.get("artist", ""),
                album=entry.get("album", ""),
                duration=duration,
                format=entry.get("format", "mp3"),
            ))

        err = self.player.queue.add_songs(songs, data.get("after"))
        if err:
            return _error(str(err), status=409)
        return web.json_response({"status": "ok", "added": [s.uuid for s in songs]})

    async def handle_queue_remove(self, request: web.Request) -> web.Response:
        uuid = request.match_info["uuid"]
        try:
            count = int(request.query.get("count", 1))
        except ValueError:
            return _error("count must be an integer")
        removed = self.player.queue.remove_songs(uuid, count)
        if not removed:
            return _error(f"song not found: {uuid}", status=404)
        return web.json_response({"status": "ok", "removed": [s.uuid for s in removed]})

    # ── Playback ──

    async def handle_playctl(self, request: web.Request) -> web.Response:
        data = await _read_json(request)
        if not data:
            return _error("invalid json")

        action = data.get("action")
        position = data.get("position", 0)
        count = data.get("count", 1)
        if not _is_number(position) or position < 0:
            return _error(f"invalid position: {position!r}")
        if not isinstance(count, int) or isinstance(count, bool):
            return _error(f"invalid count: {count!r}")
        try:
            if action == "play":
                await self.player.start_playback(position)
            elif action == "pause":
                self.player.stop_playback(pause=True)
            elif action == "stop":
                self.player.stop_playback()
            elif action == "skip":
                await self.player.skip_songs(count)
            elif action == "repeat":
                self.player.repeat = bool(data.get("value", not self.player.repeat))
            else:
                return _error(f"unknown action: {action}")
        except QueueEmptyError as e:
            return _error(str(e), status=409)
        except PrepareError as e:
            return _error(str(e), status=502)

        log.info("playctl: %s", action)
        return web.json_response({
            "status": "ok",
            "play": self.player.play,
            "repeat": self.player.repeat,
        })

    async def handle_volume(self, request: web.Request) -> web.Response:
        data = await _read_json(request)
        if not data:
            return _error("invalid json")
        volume = data.get("volume")
        if not _is_number(volume):
            return _error("missing or invalid 'volume'")

        self.player.set_volume(volume, data.get("userID"))
        return web.json_response({"status": "ok", "volume": self.player.volume})

    # ── Search ──

    async def handle_search(self, request: web.Request) -> web.Response:
        query = request.query.get("q", "").strip()
        if not query:
            return _error("query parameter 'q' required")

        results = await self.player.search_backends(query)
        return web.json_response({
            name: {"songs": {sid: song.to_dict() for sid, song in result["songs"].items()}}
            for name, result in results.items()
        })

    async def handle_playlists(self, request: web.Request) -> web.Response:
        results = await self.player.get_playlists()
        return web.json_response({
            name: {title: [song.to_dict() for song in songs]
                   for title, songs in (playlists or {}).items()}
            for name, playlists in results.items()
        })

    async def handle_status(self, request: web.Request) -> web.Response:
        np = self.player.now_playing
        return web.json_response({
            "play": self.player.play,
            "repeat": self.player.repeat,
            "volume": self.player.volume,
            "nowPlaying": np.to_dict() if np else None,
            "position": np.elapsed() if np else 0,
            "queueLength": self.player.queue.get_length(),
            "plugins": list(self.player.plugins),
            "backends": list(self.player.backends),
        })


def create(player):
    return RestPlugin(player)
