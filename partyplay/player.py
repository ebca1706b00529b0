# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Player — the partyplay core.

Owns the queue and the playback state, loads plugins and backends, prepares
(fetches and caches) the now-playing and next song, advances the queue when a
song ends and fans searches out to every backend.  Plugins hook into all of
this through named hooks, see ``lib.plugin_base``.

Everything here runs on one asyncio event loop.  Backend work is awaited or
reported through callbacks scheduled on that loop, so no locking is needed.
"""

import asyncio
import logging
from dataclasses import dataclass

from .lib import modules
from .lib.config import cfg
from .lib.errors import PrepareError, QueueEmptyError
from .lib.queue import Queue
from .lib.song import Playback
from .lib.watchdog import KeyedWatchdog, sd_notify

log = logging.getLogger("partyplay.core")


@dataclass
class _Preparation:
    future: asyncio.Future
    received: int = 0


def _track_key(song) -> tuple:
    # queue entries of the same track share one cache file and one fetch
    return getattr(song.backend, "name", None), song.song_id


class Player:
    def __init__(self, *, prepare_timeout: float | None = None,
                 song_delay: float | None = None, repeat: bool = False,
                 volume: float = 1.0):
        if prepare_timeout is None:
            prepare_timeout = float(cfg("player", "prepare_timeout"))
        if song_delay is None:
            song_delay = float(cfg("player", "song_delay"))

        self.queue = Queue(self)
        self.now_playing = None
        self.play = False
        self.repeat = repeat
        self.volume = min(1.0, max(0.0, volume))
        self.song_delay = song_delay
        self.plugins: dict = {}
        self.backends: dict = {}
        self.plugin_vars: dict = {}          # scratch space shared between plugins
        self.prepare_timeouts = KeyedWatchdog(prepare_timeout, self._prepare_timed_out)
        self.song_end_timeout: asyncio.TimerHandle | None = None
        self._preparing: dict[tuple, _Preparation] = {}   # (backend, song_id) → waiters
        self._tasks: set[asyncio.Task] = set()

    # ── Initialization pipeline ──

    async def init(self, force_update: bool = False):
        """Load plugins and backends, in four strictly ordered stages."""
        self.plugins = await modules.load_builtin_plugins(self)
        self.call_hooks("on_builtin_plugins_initialized")

        self.plugins.update(await modules.load_plugins(self, cfg("plugins"), force_update))
        self.call_hooks("on_plugins_initialized")

        self.backends = await modules.load_builtin_backends(self)
        self.call_hooks("on_builtin_backends_initialized")

        self.backends.update(await modules.load_backends(self, cfg("backends"), force_update))
        self.call_hooks("on_backends_initialized")

        log.info("ready (%d plugins, %d backends)", len(self.plugins), len(self.backends))
        sd_notify("READY=1")
        self.call_hooks("on_ready")

    async def shutdown(self):
        if self.play:
            self.stop_playback()
        self._cancel_song_end()
        self.prepare_timeouts.clear_all()
        for song in self.queue.songs:
            song.cancel_prepare("shutdown")
        for descriptor in [*reversed(self.backends.values()), *reversed(self.plugins.values())]:
            stop = getattr(descriptor, "stop", None)
            if stop:
                try:
                    await stop()
                except Exception:
                    log.exception("error stopping %s", getattr(descriptor, "name", descriptor))
        for task in list(self._tasks):
            task.cancel()
        log.info("player stopped")

    # ── Hooks ──

    # If any hook returns a truthy value it is an error/veto and we stop.
    # Be careful with calling hooks from within a hook, infinite loops are possible.
    def call_hooks(self, hook: str, args=None):
        log.debug("call_hooks(%s%s)", hook, f", {args!r}" if args else "")
        for plugin in self.plugins.values():
            fn = plugin.hooks.get(hook)
            if fn is None:
                continue
            err = fn(*(args or ()))
            if err:
                return err
        return None

    def num_hooks(self, hook: str) -> int:
        return sum(1 for plugin in self.plugins.values() if hook in plugin.hooks)

    # ── Playback state ──

    def get_now_playing(self):
        return self.now_playing

    def stop_playback(self, pause: bool = False):
        """Stop playback of the current song.  With *pause*, keep its position."""
        log.info("playback %s.", "paused" if pause else "stopped")
        self._cancel_song_end()
        self.play = False

        np = self.now_playing
        if np is not None:
            pos = np.elapsed()
            np.playback = Playback(start_time=0, start_pos=pos if pause else 0)

    async def start_playback(self, position: float = 0):
        """Start playing the now playing song (or the first queued one).

        Raises QueueEmptyError when there is nothing to play, PrepareError
        when the song could not be prepared.
        """
        np = self.now_playing
        if np is None:
            if not self.queue.songs:
                raise QueueEmptyError("queue is empty! not starting playback.")
            np = self.now_playing = self.queue.songs[0]

        await self._await_prepared(np)

        if self.now_playing is not np:
            return  # song changed while we waited
        if not np.started:
            self._begin_playback(np, position or np.playback.start_pos)

    def _begin_playback(self, song, position: float):
        song.playback_started(position)
        self.play = True
        self._cancel_song_end()
        if song.duration > 0:
            remaining = (song.duration - song.playback.start_pos) / 1000 + self.song_delay
            loop = asyncio.get_running_loop()
            self.song_end_timeout = loop.call_later(max(0, remaining), self._song_end_timer)
        else:
            log.warning("%s has no duration, it will not end by itself", song)
        log.info("playback started.")

    def _song_end_timer(self):
        self.song_end_timeout = None
        self._spawn(self.song_end())

    def _cancel_song_end(self):
        if self.song_end_timeout is not None:
            self.song_end_timeout.cancel()
            self.song_end_timeout = None

    async def change_song(self, uuid: str):
        """Change to song *uuid*.  If it isn't queued, playback goes idle."""
        log.debug("changing song to: %s", uuid)
        self._cancel_song_end()

        song = self.queue.find_song(uuid)
        if song is None:
            log.info("song not found: %s", uuid)
            if self.now_playing is not None:
                self.now_playing.playback = Playback()
            self.now_playing = None
            self.play = False
            return

        if self.now_playing is not None:
            self.now_playing.playback = Playback()
        song.playback = Playback()
        self.now_playing = song
        self.call_hooks("on_song_change", [song])
        await self.start_playback()
        log.info("changed song to: %s", uuid)

    async def song_end(self):
        np = self.now_playing
        if np is None:
            await self.prepare_songs()
            return
        np_index = self.queue.find_song_index(np.uuid)

        log.info("end of song %s", np.uuid)
        self.call_hooks("on_song_end", [np])

        next_index = np_index + 1
        try:
            if next_index < len(self.queue.songs):
                await self.change_song(self.queue.uuid_at_index(next_index))
            else:
                log.info("hit end of queue.")
                if self.repeat and self.queue.songs:
                    log.info("repeat is on, restarting playback from start of queue.")
                    await self.change_song(self.queue.uuid_at_index(0))
                else:
                    self.stop_playback()
        except PrepareError as e:
            log.error("could not start next song: %s", e)

        await self.prepare_songs()

    async def skip_songs(self, count: int = 1):
        """Move now playing *count* songs forward (negative: back)."""
        if not self.queue.songs:
            raise QueueEmptyError("queue is empty! nothing to skip to.")
        np = self.now_playing
        index = self.queue.find_song_index(np.uuid) if np else -1
        index = min(max(index + count, 0), len(self.queue.songs) - 1)
        await self.change_song(self.queue.uuid_at_index(index))

    # ── Song preparation ──

    def _playback_pending(self, song) -> bool:
        np = self.now_playing
        return (self.play and np is not None and not np.started
                and _track_key(np) == _track_key(song))

    async def prepare_song(self, song):
        """Make sure *song* is in its backend's cache.  Raises PrepareError."""
        if song is None:
            raise ValueError("prepare_song() without song")

        if song.is_prepared():
            if self._playback_pending(song):
                await self.start_playback()
            return

        await self._await_prepared(song)

    async def _await_prepared(self, song):
        if song.is_prepared():
            return
        prep = self._preparing.get(_track_key(song))
        if prep is None:
            prep = self._start_prepare(song)
        await asyncio.shield(prep.future)

    def _start_prepare(self, song) -> _Preparation:
        log.debug("prepare_song() %s", song.song_id)
        future = asyncio.get_running_loop().create_future()
        # waiters may be cancelled; don't let the error go unretrieved
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        prep = _Preparation(future)
        self._preparing[_track_key(song)] = prep

        song.prepare(lambda err, chunk, done: self._prepare_progress(song, prep, err, chunk, done))
        if not future.done():
            self.prepare_timeouts.arm(song.song_id, song)
        return prep

    def _prepare_progress(self, song, prep: _Preparation, err, chunk: int, done: bool):
        if err:
            self._prepare_failed(song, prep, err)
            return

        if chunk:
            first_byte = prep.received == 0
            prep.received += chunk
            # start playback as soon as there is something to play
            if first_byte and self._playback_pending(song):
                np = self.now_playing
                self._begin_playback(np, np.playback.start_pos)

            # tell plugins that new data is available for this song, and
            # whether the song is now fully written to disk or not
            self.call_hooks("on_prepare_progress", [song, chunk, done])
            if not done:
                self.prepare_timeouts.arm(song.song_id, song)

        if done:
            self.call_hooks("on_song_prepared", [song])
            song.forget_prepare()
            song.backend.songs_preparing.pop(song.song_id, None)
            self.prepare_timeouts.clear(song.song_id)
            self._preparing.pop(_track_key(song), None)
            if not prep.future.done():
                prep.future.set_result(None)

    def _prepare_failed(self, song, prep: _Preparation, err):
        if not isinstance(err, PrepareError):
            err = PrepareError(song, err)
        self._preparing.pop(_track_key(song), None)
        if not prep.future.done():
            prep.future.set_exception(err)

        self.prepare_timeouts.clear(song.song_id)
        song.forget_prepare()
        log.warning("%s", err)
        self.call_hooks("on_song_prepare_error", [song, err])

        # buffered data is useless now; the next queue change retries
        job = song.backend.songs_preparing.pop(song.song_id, None)
        if job is not None:
            job.discard()

    def _prepare_timed_out(self, song_id: str, song):
        log.info("prepare timeout for song: %s, removing", song_id)
        song.cancel_prepare("prepare timeout")

    async def prepare_songs(self):
        """Prepare the now playing song, then the one after it."""
        current = self.now_playing
        if current is None:
            if not self.queue.songs:
                return
            current = self.queue.songs[0]

        try:
            await self.prepare_song(current)
            index = self.queue.find_song_index(current.uuid)
            if 0 <= index < len(self.queue.songs) - 1:
                await self.prepare_song(self.queue.songs[index + 1])
        except PrepareError as e:
            # retried on the next queue modification or song end
            log.info("preparation aborted: %s", e)

    def schedule_prepare(self):
        """Run prepare_songs() in the background (after queue changes)."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop yet; start_playback prepares on demand
        self._spawn(self.prepare_songs())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("background task failed", exc_info=task.exception())

    # ── Search & playlists ──

    async def search_backends(self, query: str, on_done=None) -> dict:
        """Search every backend concurrently.  Returns {backend: {"songs": {...}}}."""
        all_results = {}

        async def search_one(name, backend):
            try:
                results = await backend.search(query)
            except Exception as e:
                log.error("error while searching %s: %s", name, e)
                return

            found = results.get("songs") or []
            if isinstance(found, dict):
                found = list(found.values())

            songs = {}
            for song in found:
                err = self.call_hooks("pre_add_search_result", [song])
                if err:
                    log.error("pre_add_search_result hook error: %s", err)
                else:
                    songs[song.song_id] = song
            all_results[name] = {**results, "songs": songs}

        await asyncio.gather(*(search_one(name, b) for name, b in self.backends.items()))

        if on_done is not None:
            on_done(all_results)
        return all_results

    async def get_playlists(self, on_done=None) -> dict:
        """Collect playlists from every backend that has any."""
        all_results = {}

        async def playlists_one(name, backend):
            get = getattr(backend, "get_playlists", None)
            if get is None:
                return
            try:
                all_results[name] = await get()
            except Exception as e:
                log.error("error while listing playlists of %s: %s", name, e)

        await asyncio.gather(*(playlists_one(name, b) for name, b in self.backends.items()))

        if on_done is not None:
            on_done(all_results)
        return all_results

    # ── Volume ──

    def set_volume(self, volume: float, actor_id=None):
        volume = min(1.0, max(0.0, float(volume)))
        self.volume = volume
        self.call_hooks("on_volume_change", [volume, actor_id])
