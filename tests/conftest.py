"""Shared fakes for partyplay tests."""

import asyncio
import os

import pytest

from partyplay.lib import config
from partyplay.lib.backend_base import BackendBase
from partyplay.lib.plugin_base import Plugin
from partyplay.lib.song import Song
from partyplay.player import Player


def run(coro):
    """Run an async scenario from a sync test function."""
    return asyncio.run(coro)


class RecordingPlugin(Plugin):
    """Plugin that records every call of the hooks it is given."""

    def __init__(self, player, name, calls=None):
        super().__init__(player)
        self.name = name
        self.calls = calls if calls is not None else []

    def add(self, hook, result=None):
        def fn(*args):
            self.calls.append((self.name, hook, args))
            return result
        self.register_hook(hook, fn)
        return self


class FakeBackend(BackendBase):
    """Backend whose fetch plays back a script.

    Script items: bytes are yielded, floats are slept, exceptions raised.
    """

    def __init__(self, player, cache_dir, name="fake", script=(b"ab", b"cd"),
                 songs=(), search_delay=0, search_error=None, events=None):
        self.name = name
        super().__init__(player, cache_dir=os.path.join(str(cache_dir), name))
        self.script = list(script)
        self.songs = list(songs)
        self.search_delay = search_delay
        self.search_error = search_error
        self.events = events if events is not None else []
        self.fetched = []

    def song(self, song_id, **kwargs):
        return Song(song_id, self, **kwargs)

    def precache(self, song):
        os.makedirs(self.cache_dir, exist_ok=True)
        with open(self.cache_path(song), "wb") as f:
            f.write(b"cached")

    async def search(self, query):
        if self.search_delay:
            await asyncio.sleep(self.search_delay)
        self.events.append(("search", self.name))
        if self.search_error:
            raise self.search_error
        return {"songs": list(self.songs)}

    async def fetch(self, song):
        self.fetched.append(song.song_id)
        self.events.append(("fetch", song.song_id))
        for item in self.script:
            if isinstance(item, float):
                await asyncio.sleep(item)
            elif isinstance(item, Exception):
                raise item
            else:
                yield item


class PlaylistBackend(FakeBackend):
    def __init__(self, *args, playlists=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.playlists = playlists or {}

    async def get_playlists(self):
        return self.playlists


@pytest.fixture(autouse=True)
def empty_config(monkeypatch):
    """Never read a real config.json during tests."""
    monkeypatch.setattr(config, "_config", {})


@pytest.fixture
def player():
    return Player(prepare_timeout=0.2, song_delay=0)


@pytest.fixture
def backend(player, tmp_path):
    b = FakeBackend(player, tmp_path)
    player.backends[b.name] = b
    return b
