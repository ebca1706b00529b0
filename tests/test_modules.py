"""Module loader: builtin and external plugins/backends."""

import sys
import types

import pytest

from partyplay.lib import config, modules
from partyplay.lib.plugin_base import Plugin

from conftest import run


def _fake_module(monkeypatch, module_name, events, plugin_name):
    class Fake(Plugin):
        name = plugin_name

        def __init__(self, player):
            super().__init__(player)
            events.append(f"{plugin_name}.init")

        async def start(self):
            events.append(f"{plugin_name}.start")

    module = types.ModuleType(module_name)
    module.create = Fake
    monkeypatch.setitem(sys.modules, module_name, module)
    return module


def test_external_plugins_are_created_then_started_in_order(player, monkeypatch):
    events = []
    _fake_module(monkeypatch, "partyplay_plugin_first", events, "first")
    _fake_module(monkeypatch, "partyplay_plugin_second", events, "second")

    loaded = run(modules.load_plugins(player, ["first", "second"]))

    assert list(loaded) == ["first", "second"]
    assert events == ["first.init", "second.init", "first.start", "second.start"]


def test_dotted_module_path(player, monkeypatch):
    events = []
    _fake_module(monkeypatch, "somewhere.votes", events, "votes")

    loaded = run(modules.load_plugins(player, ["somewhere.votes"]))
    assert loaded["somewhere.votes"].name == "votes"


def test_missing_external_module_is_skipped(player, monkeypatch, caplog):
    events = []
    _fake_module(monkeypatch, "partyplay_plugin_ok", events, "ok")

    loaded = run(modules.load_plugins(player, ["does_not_exist_anywhere", "ok"]))

    assert list(loaded) == ["ok"]
    assert "does_not_exist_anywhere" in caplog.text


def test_external_start_failure_drops_module(player, monkeypatch):
    class Broken(Plugin):
        name = "broken"

        async def start(self):
            raise OSError("port in use")

    module = types.ModuleType("partyplay_backend_broken")
    module.create = Broken
    monkeypatch.setitem(sys.modules, "partyplay_backend_broken", module)

    assert run(modules.load_backends(player, ["broken"])) == {}


def test_no_configured_modules(player):
    assert run(modules.load_plugins(player, None)) == {}
    assert run(modules.load_backends(player, [])) == {}


def test_builtin_backends(player, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "_config", {"cache": {"path": str(tmp_path)}})

    backends = run(modules.load_builtin_backends(player))

    assert list(backends) == ["local"]
    assert backends["local"].cache_dir == str(tmp_path / "local")


def test_builtin_plugins_load_http_before_rest(player, monkeypatch):
    monkeypatch.setattr(config, "_config", {"http": {"host": "127.0.0.1", "port": 0}})

    async def scenario():
        plugins = await modules.load_builtin_plugins(player)
        try:
            routes = {r.resource.canonical for r in plugins["http"].app.router.routes()}
            return list(plugins), routes
        finally:
            for plugin in reversed(plugins.values()):
                await plugin.stop()

    names, routes = run(scenario())
    assert names == ["http", "rest"]
    assert {"/ws", "/queue", "/playctl", "/search"} <= routes


def test_builtin_failure_propagates(player, monkeypatch):
    monkeypatch.setattr(modules, "BUILTIN_PLUGINS", ["rest"])  # rest without http
    with pytest.raises(RuntimeError, match="http"):
        run(modules.load_builtin_plugins(player))
