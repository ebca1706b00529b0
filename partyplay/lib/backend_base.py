# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
BackendBase — shared plumbing for partyplay music catalog backends.

A backend searches its catalog and fetches songs into the local song cache
(one file per song under ``<cache.path>/<backend name>/``).  The player
streams from the cache, so playback can begin as soon as the first chunk is
on disk.

Subclass contract:

    class MyBackend(BackendBase):
        name = "mine"

        async def search(self, query) -> dict:
            '''Return {"songs": [Song, ...]} (at most self.result_count).'''

        async def fetch(self, song):
            '''Async iterator of byte chunks for *song*.'''
            async for chunk in ...:
                yield chunk

    def create(player):
        return MyBackend(player)

Optional overrides:
    get_playlists()   — return {playlist name: [Song, ...]}
    start() / stop()  — lifecycle, awaited by the loader / on shutdown
"""

import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass, field

from .config import cfg
from .errors import PrepareCancelled, PrepareError

log = logging.getLogger(__name__)


@dataclass
class PrepareJob:
    """One in-flight fetch, kept in ``BackendBase.songs_preparing``.

    Every caller that asked for the same song while the fetch was running is
    a listener and gets the same progress reports.
    """

    task: asyncio.Task | None
    path: str
    listeners: list = field(default_factory=list)
    bytes_written: int = 0
    cancel_reason: str = "cancelled"

    @property
    def part_path(self) -> str:
        return self.path + ".part"

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def report(self, err, chunk: int, done: bool):
        for progress in list(self.listeners):
            progress(err, chunk, done)

    def discard(self):
        """Throw away whatever was fetched so far."""
        try:
            os.remove(self.part_path)
        except FileNotFoundError:
            pass


class BackendBase:
    # ── Subclass must set these ──
    name: str = ""

    def __init__(self, player, cache_dir: str | None = None):
        self.player = player
        self.cache_dir = cache_dir or os.path.join(
            os.path.expanduser(cfg("cache", "path")), self.name)
        self.result_count = int(cfg("search", "result_count"))
        self.songs_preparing: dict[str, PrepareJob] = {}

    # ── Abstract methods (subclass must implement) ──

    async def search(self, query: str) -> dict:
        raise NotImplementedError

    async def fetch(self, song):
        raise NotImplementedError
        yield b""  # pragma: no cover

    # ── Song cache ──

    def cache_path(self, song) -> str:
        digest = hashlib.sha1(song.song_id.encode()).hexdigest()
        return os.path.join(self.cache_dir, f"{digest}.{song.format}")

    def is_prepared(self, song) -> bool:
        return os.path.isfile(self.cache_path(song))

    def prepare(self, song, progress):
        """Start fetching *song* into the cache.  Returns a cancel(reason) callable.

        ``progress(error, bytes_chunk, is_complete)`` is called from the event
        loop for every chunk written, once with is_complete=True at the end,
        or once with an error.  Asking for a song that is already being
        fetched joins that fetch instead of starting a second one.
        """
        job = self.songs_preparing.get(song.song_id)
        if job is not None and job.running:
            log.debug("%s: joining fetch of %s", self.name, song.song_id)
            job.listeners.append(progress)
        else:
            job = PrepareJob(task=None, path=self.cache_path(song), listeners=[progress])
            self.songs_preparing[song.song_id] = job
            job.task = asyncio.ensure_future(self._prepare(song, job))
            job.task.add_done_callback(
                lambda task: self._prepare_finished(task, song, job))

        def cancel(reason):
            job.cancel_reason = reason
            job.task.cancel()

        return cancel

    async def _prepare(self, song, job):
        async for err, chunk, done in self._cache_chunks(song, job):
            job.report(err, chunk, done)

    @staticmethod
    def _write(f, data: bytes):
        f.write(data)
        f.flush()

    async def _cache_chunks(self, song, job):
        """Write fetched chunks to disk, yielding progress tuples.

        The last data chunk is held back so it can be reported together
        with is_complete=True.
        """
        loop = asyncio.get_running_loop()
        os.makedirs(self.cache_dir, exist_ok=True)
        pending = b""
        try:
            with open(job.part_path, "wb") as f:
                async for chunk in self.fetch(song):
                    if not chunk:
                        continue
                    if pending:
                        await loop.run_in_executor(None, self._write, f, pending)
                        job.bytes_written += len(pending)
                        yield None, len(pending), False
                    pending = chunk
                await loop.run_in_executor(None, self._write, f, pending)
                job.bytes_written += len(pending)
            os.replace(job.part_path, job.path)
        except asyncio.CancelledError:
            job.discard()
            raise
        except Exception as e:
            log.warning("%s: fetching %s failed: %s", self.name, song.song_id, e)
            job.discard()
            yield PrepareError(song, e), 0, False
            return
        log.info("%s: cached %s (%d bytes)", self.name, song.song_id, job.bytes_written)
        yield None, len(pending), True

    def _prepare_finished(self, task, song, job):
        if task.cancelled():
            job.discard()
            log.info("%s: preparing %s cancelled (%s)", self.name, song.song_id, job.cancel_reason)
            job.report(PrepareCancelled(song, job.cancel_reason), 0, False)
        elif task.exception() is not None:
            log.error("%s: prepare task for %s died", self.name, song.song_id,
                      exc_info=task.exception())
            job.report(PrepareError(song, task.exception()), 0, False)
        if self.songs_preparing.get(song.song_id) is job:
            del self.songs_preparing[song.song_id]

    # ── Lifecycle ──

    async def start(self):
        """Called after every backend of this load stage has been created."""

    async def stop(self):
        """Cancel in-flight fetches.  Override for extra cleanup."""
        for job in list(self.songs_preparing.values()):
            if job.task and not job.task.done():
                job.cancel_reason = "shutdown"
                job.task.cancel()
