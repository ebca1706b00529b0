# partyplay
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Local file backend — songs from directories on this machine.

Searches file names under the configured ``local.paths`` and "fetches" a
song by copying it into the song cache in chunks.  ``.m3u`` files found in
the roots are offered as playlists.  Duration and artist/title/album come
from the file's tags (mutagen), falling back to "Artist - Title" file names.

Song ids are ``<root index>/<path relative to that root>``.
"""

import asyncio
import logging
import os
from pathlib import Path

import mutagen

from ..lib.backend_base import BackendBase
from ..lib.config import cfg
from ..lib.song import Song

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {'.flac', '.mp3', '.wma', '.aac', '.wav', '.m4a', '.ogg', '.opus'}
CHUNK_SIZE = 64 * 1024


class LocalBackend(BackendBase):
    name = "local"

    def __init__(self, player, root_paths=None, cache_dir=None):
        super().__init__(player, cache_dir)
        self.roots = []
        for p in root_paths if root_paths is not None else cfg("local", "paths"):
            rp = Path(p).expanduser().resolve()
            if rp.is_dir():
                self.roots.append(rp)
                log.info("Root path: %s", rp)
            else:
                log.warning("Root path not found: %s", p)

    # ── Paths ──

    def _resolve(self, song_id: str) -> Path | None:
        """Resolve a song id to a file.  Prevents traversal."""
        index, _, rel_path = song_id.partition("/")
        try:
            root = self.roots[int(index)]
        except (ValueError, IndexError):
            return None
        target = (root / rel_path).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            return None
        return target

    def _song_id(self, path: Path) -> str | None:
        for i, root in enumerate(self.roots):
            if path.is_relative_to(root):
                return f"{i}/{path.relative_to(root).as_posix()}"
        return None

    def _read_tags(self, path: Path) -> dict:
        """Duration (ms) and artist/title/album tags, whatever the file has."""
        try:
            audio = mutagen.File(str(path), easy=True)
        except Exception as e:
            log.debug("Cannot read tags of %s: %s", path, e)
            return {}
        if audio is None:
            return {}

        tags = {}
        length = getattr(audio.info, "length", 0) or 0
        if length > 0:
            tags["duration"] = int(length * 1000)
        for key in ("artist", "title", "album"):
            try:
                value = audio.get(key)
            except (KeyError, ValueError):
                value = None
            if value and str(value[0]).strip():
                tags[key] = str(value[0]).strip()
        return tags

    def _make_song(self, path: Path) -> Song:
        # "Artist - Title.mp3" is the common naming scheme
        artist, sep, title = path.stem.partition(" - ")
        if not sep:
            artist, title = "", path.stem
        tags = self._read_tags(path)
        return Song(
            self._song_id(path), self,
            title=tags.get("title", title.strip()),
            artist=tags.get("artist", artist.strip()),
            album=tags.get("album", path.parent.name),
            duration=tags.get("duration", 0),
            format=path.suffix.lower().lstrip("."),
        )

    def _audio_files(self):
        for root in self.roots:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
                for filename in sorted(filenames):
                    path = Path(dirpath) / filename
                    if path.suffix.lower() in AUDIO_EXTENSIONS:
                        yield root, path

    # ── Search ──

    def _scan(self, query: str) -> list[Song]:
        words = query.lower().split()
        songs = []
        for root, path in self._audio_files():
            name = path.relative_to(root).as_posix().lower()
            if all(word in name for word in words):
                songs.append(self._make_song(path))
                if len(songs) >= self.result_count:
                    break
        return songs

    async def search(self, query: str) -> dict:
        loop = asyncio.get_running_loop()
        songs = await loop.run_in_executor(None, self._scan, query)
        log.info("search '%s': %d results", query, len(songs))
        return {"songs": songs}

    # ── Playlists ──

    def _read_playlists(self) -> dict:
        playlists = {}
        for root in self.roots:
            for m3u in sorted(root.rglob("*.m3u")):
                songs = []
                try:
                    lines = m3u.read_text(errors="replace").splitlines()
                except OSError as e:
                    log.warning("Cannot read %s: %s", m3u, e)
                    continue
                for line in lines:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    path = (m3u.parent / line).resolve()
                    if path.is_file() and path.suffix.lower() in AUDIO_EXTENSIONS \
                            and self._song_id(path):
                        songs.append(self._make_song(path))
                playlists[m3u.stem] = songs
        return playlists

    async def get_playlists(self) -> dict:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_playlists)

    # ── Fetch ──

    async def fetch(self, song):
        path = self._resolve(song.song_id)
        if path is None:
            raise FileNotFoundError(f"no such song: {song.song_id}")

        loop = asyncio.get_running_loop()
        with open(path, "rb") as f:
            while True:
                chunk = await loop.run_in_executor(None, f.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk


def create(player):
    return LocalBackend(player)
