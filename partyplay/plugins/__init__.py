"""
Plugins — extensions that react to player hooks.

A plugin does NOT provide music.  It listens to what the player does
(queue changes, song changes, volume) and may veto some of it by returning
a truthy value from a hook, e.g. rejecting a search result.

Builtin plugins, loaded in this order:
  http.py  — aiohttp server + WebSocket push feed for UIs
  rest.py  — REST API for queue, playback, volume and search (needs http)
"""
