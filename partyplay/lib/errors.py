# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Exceptions raised by the player core."""


class PartyplayError(Exception):
    """Base class for partyplay errors."""


class QueueEmptyError(PartyplayError):
    """Playback was requested but there is nothing to play."""


class PrepareError(PartyplayError):
    """A song could not be fetched into the cache."""

    def __init__(self, song, reason):
        self.song = song
        self.reason = reason
        song_id = getattr(song, "song_id", song)
        super().__init__(f"error while preparing {song_id}: {reason}")


class PrepareCancelled(PrepareError):
    """Preparation was cancelled, by request or by the prepare watchdog."""
