# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Queue — the shared play order, owned by the Player.

Every modification fires the ``on_queue_modified`` hook and asks the player
to prepare songs again, which is also how a failed preparation is retried.
"""

import logging

log = logging.getLogger(__name__)


class Queue:
    def __init__(self, player):
        self.player = player
        self.songs = []

    def __len__(self):
        return len(self.songs)

    def get_length(self) -> int:
        return len(self.songs)

    def find_song_index(self, uuid: str) -> int:
        for i, song in enumerate(self.songs):
            if song.uuid == uuid:
                return i
        return -1

    def find_song(self, uuid: str):
        index = self.find_song_index(uuid)
        return self.songs[index] if index >= 0 else None

    def uuid_at_index(self, index: int) -> str | None:
        if 0 <= index < len(self.songs):
            return self.songs[index].uuid
        return None

    def add_songs(self, songs: list, after_uuid: str | None = None):
        """Insert *songs* after *after_uuid* (or at the end).

        Returns None on success, or the veto/error value that stopped it.
        """
        if not songs:
            return None
        err = self.player.call_hooks("pre_songs_queued", [songs, after_uuid])
        if err:
            log.info("songs not queued: %s", err)
            return err

        if after_uuid is None:
            pos = len(self.songs)
        else:
            index = self.find_song_index(after_uuid)
            if index < 0:
                return f"song not found: {after_uuid}"
            pos = index + 1

        self.songs[pos:pos] = songs
        log.info("queued %d song(s) at position %d", len(songs), pos)
        self.player.call_hooks("post_songs_queued", [songs, pos])
        self._modified()
        return None

    def remove_songs(self, uuid: str, count: int = 1) -> list:
        """Remove *count* songs starting at *uuid*.  Returns the removed songs."""
        index = self.find_song_index(uuid)
        if index < 0 or count < 1:
            return []

        removed = self.songs[index:index + count]
        del self.songs[index:index + count]

        np = self.player.now_playing
        if np is not None and np in removed:
            self.player.stop_playback()
            self.player.now_playing = None

        for song in removed:
            # another entry of the same track still needs the fetch
            if song.preparing and not self._has_track(song):
                song.cancel_prepare("removed from queue")

        log.info("removed %d song(s) from position %d", len(removed), index)
        self.player.call_hooks("on_songs_removed", [removed, index])
        self._modified()
        return removed

    def _has_track(self, song) -> bool:
        return any(s.backend is song.backend and s.song_id == song.song_id
                   for s in self.songs)

    def _modified(self):
        self.player.call_hooks("on_queue_modified", [self])
        self.player.schedule_prepare()

    def to_list(self) -> list[dict]:
        return [song.to_dict() for song in self.songs]
