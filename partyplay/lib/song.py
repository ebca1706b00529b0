# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Song — one queued or search-result track.

A song is identified two ways: ``uuid`` is unique for this session (two
queue entries of the same track get different uuids), ``song_id`` is the
track's identity in its backend's catalog.  Times are in milliseconds.
"""

import time
import uuid as uuid_lib
from dataclasses import dataclass


def now_ms() -> float:
    return time.time() * 1000


@dataclass
class Playback:
    """Where playback of a song started.  start_time == 0 → not playing."""

    start_time: float = 0
    start_pos: float = 0


class Song:
    def __init__(self, song_id: str, backend, *, title: str = "", artist: str = "",
                 album: str = "", duration: float = 0, format: str = "mp3",
                 uuid: str | None = None):
        self.uuid = uuid or str(uuid_lib.uuid4())
        self.song_id = song_id
        self.backend = backend
        self.title = title
        self.artist = artist
        self.album = album
        self.duration = duration
        self.format = format
        self.playback = Playback()
        self._cancel = None  # set only while a fetch is in flight

    def __repr__(self):
        return f"<Song {self.song_id} uuid={self.uuid}>"

    # ── Preparation ──

    def is_prepared(self) -> bool:
        return self.backend.is_prepared(self)

    @property
    def preparing(self) -> bool:
        return self._cancel is not None

    def prepare(self, progress_handler):
        """Ask the backend to fetch this song into its cache.

        The backend calls ``progress_handler(error, bytes_chunk, is_complete)``
        as data arrives.
        """
        self._cancel = self.backend.prepare(self, progress_handler)

    def cancel_prepare(self, reason: str = "cancelled") -> bool:
        """Cancel an in-flight fetch.  Returns False if nothing was in flight."""
        cancel, self._cancel = self._cancel, None
        if cancel is None:
            return False
        cancel(reason)
        return True

    def forget_prepare(self):
        """Drop the cancellation capability once a fetch has finished or failed."""
        self._cancel = None

    # ── Playback bookkeeping ──

    @property
    def started(self) -> bool:
        return bool(self.playback.start_time)

    def playback_started(self, position: float = 0):
        self.playback = Playback(start_time=now_ms(), start_pos=max(0, position))

    def elapsed(self) -> float:
        """Current position in the song (ms)."""
        pb = self.playback
        if not pb.start_time:
            return pb.start_pos
        return max(0, pb.start_pos + (now_ms() - pb.start_time))

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "songId": self.song_id,
            "backend": getattr(self.backend, "name", None),
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "format": self.format,
            "playback": {
                "startTime": self.playback.start_time,
                "startPos": self.playback.start_pos,
            },
        }
