"""Playback state machine: start, stop, change song, song end."""

import asyncio

import pytest

from partyplay.lib.errors import PrepareError, QueueEmptyError
from partyplay.lib.song import Playback, now_ms

from conftest import RecordingPlugin, run


def _queue(player, backend, *ids, cached=True, duration=60_000):
    songs = [backend.song(song_id, duration=duration) for song_id in ids]
    player.queue.songs.extend(songs)
    if cached:
        for song in songs:
            backend.precache(song)
    return songs


def test_start_playback_on_empty_queue_fails_and_changes_nothing(player):
    with pytest.raises(QueueEmptyError):
        run(player.start_playback())
    assert player.now_playing is None
    assert player.play is False


def test_start_playback_adopts_first_song_and_prepares_it(player, backend):
    first, _ = _queue(player, backend, "a", "b", cached=False)

    async def scenario():
        await player.start_playback()
        assert player.song_end_timeout is not None
        player.stop_playback(pause=True)

    run(scenario())
    assert player.now_playing is first
    assert first.is_prepared()
    assert backend.fetched == ["a"]


def test_start_playback_records_position(player, backend):
    song, = _queue(player, backend, "a")

    async def scenario():
        await player.start_playback(5000)
        assert player.play is True
        assert song.playback.start_pos == 5000
        assert song.playback.start_time > 0
        player.stop_playback()

    run(scenario())


def test_start_playback_resumes_from_paused_position(player, backend):
    song, = _queue(player, backend, "a")
    player.now_playing = song
    song.playback = Playback(start_time=0, start_pos=12_000)

    async def scenario():
        await player.start_playback()
        assert song.playback.start_pos == 12_000
        player.stop_playback()

    run(scenario())


def test_start_playback_propagates_prepare_error(player, backend):
    backend.script = [OSError("disk full")]
    _queue(player, backend, "a", cached=False)

    with pytest.raises(PrepareError):
        run(player.start_playback())
    assert player.play is False


def test_pause_keeps_elapsed_position(player, backend):
    song, = _queue(player, backend, "a")
    player.now_playing = song
    player.play = True
    song.playback = Playback(start_time=now_ms() - 5000, start_pos=1000)

    player.stop_playback(pause=True)

    assert player.play is False
    assert song.playback.start_time == 0
    assert 6000 <= song.playback.start_pos < 7000


def test_stop_resets_position(player, backend):
    song, = _queue(player, backend, "a")
    player.now_playing = song
    song.playback = Playback(start_time=now_ms() - 5000, start_pos=1000)

    player.stop_playback()

    assert song.playback == Playback(0, 0)


def test_stop_without_now_playing(player):
    player.play = True
    player.stop_playback()
    assert player.play is False


def test_change_song_to_missing_uuid_goes_idle(player, backend):
    song, = _queue(player, backend, "a")
    player.now_playing = song
    player.play = True

    run(player.change_song("no-such-uuid"))

    assert player.now_playing is None
    assert player.play is False


def test_change_song_to_missing_uuid_when_already_idle(player):
    run(player.change_song("no-such-uuid"))
    assert player.now_playing is None


def test_change_song_restarts_from_beginning(player, backend):
    a, b = _queue(player, backend, "a", "b")
    plugin = RecordingPlugin(player, "ui").add("on_song_change")
    player.plugins = {"ui": plugin}
    b.playback = Playback(0, 30_000)

    async def scenario():
        await player.change_song(b.uuid)
        player.stop_playback(pause=True)

    run(scenario())
    assert player.now_playing is b
    assert b.playback.start_pos < 1000
    assert plugin.calls == [("ui", "on_song_change", (b,))]


def test_song_end_advances_to_next(player, backend):
    a, b, c = _queue(player, backend, "a", "b", "c")
    player.now_playing = a
    player.play = True
    plugin = RecordingPlugin(player, "ui").add("on_song_end")
    player.plugins = {"ui": plugin}

    async def scenario():
        await player.song_end()
        player.stop_playback()

    run(scenario())
    assert player.now_playing is b
    assert plugin.calls == [("ui", "on_song_end", (a,))]


def test_song_end_on_last_song_stops_without_repeat(player, backend):
    a, b = _queue(player, backend, "a", "b")
    player.now_playing = b
    player.play = True
    plugin = RecordingPlugin(player, "ui").add("on_song_change")
    player.plugins = {"ui": plugin}

    run(player.song_end())

    assert player.now_playing is b
    assert player.play is False
    assert plugin.calls == []


def test_song_end_on_last_song_wraps_with_repeat(player, backend):
    a, b = _queue(player, backend, "a", "b")
    player.repeat = True
    player.now_playing = b
    player.play = True

    async def scenario():
        await player.song_end()
        assert player.play is True
        player.stop_playback()

    run(scenario())
    assert player.now_playing is a


def test_song_end_prepares_ahead(player, backend):
    a, = _queue(player, backend, "a")
    b, c = _queue(player, backend, "b", "c", cached=False)
    player.now_playing = a
    player.play = True

    async def scenario():
        await player.song_end()
        player.stop_playback()

    run(scenario())
    assert player.now_playing is b
    assert backend.fetched == ["b", "c"]


def test_song_end_timer_advances_queue(player, backend):
    a, b = _queue(player, backend, "a", "b", duration=50)

    async def scenario():
        await player.start_playback()
        assert player.now_playing is a
        await asyncio.sleep(0.2)
        assert player.now_playing is b
        player.stop_playback()

    run(scenario())


def test_skip_songs_clamps_to_queue(player, backend):
    a, b, c = _queue(player, backend, "a", "b", "c")
    player.now_playing = a

    async def scenario():
        await player.skip_songs(5)
        assert player.now_playing is c
        await player.skip_songs(-1)
        assert player.now_playing is b
        player.stop_playback()

    run(scenario())


def test_skip_on_empty_queue(player):
    with pytest.raises(QueueEmptyError):
        run(player.skip_songs())


def test_song_end_without_now_playing_still_prepares(player, backend):
    _queue(player, backend, "a", "b", cached=False)

    run(player.song_end())

    assert player.now_playing is None
    assert backend.fetched == ["a", "b"]


def test_first_chunk_starts_now_playing_entry_of_shared_track(player, backend):
    backend.script = [b"a", 0.1, b"b"]
    earlier, later = _queue(player, backend, "x", "x", cached=False)

    async def scenario():
        player.schedule_prepare()
        await asyncio.sleep(0.02)
        player.play = True
        await player.change_song(later.uuid)
        assert later.started
        player.stop_playback()

    run(scenario())
    assert backend.fetched == ["x"]
    assert not earlier.started
