"""
Backends — music catalogs that provide content to play.

A backend searches its catalog and fetches songs into the song cache ahead
of playback (see lib/backend_base.py).  Search requests fan out to every
backend at once.

Builtin backends:
  local.py  — audio files from local directories, .m3u playlists
"""
