"""Shared test fixtures for the Syntropy test suite."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from textwrap import dedent

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from syntropy.plugins import Origin, Plugin, Provenance, build_plugin  # noqa: E402
from syntropy.scripting import ScriptHost  # noqa: E402

# Smallest plugin that passes validation
MINIMAL_PLUGIN = dedent("""\
    return {
      metadata = { name = "notes", version = "1.0.0", icon = "N" },
      tasks = {
        open = {
          description = "Open a note",
          mode = "multi",
          item_sources = {
            files = {
              items = function() return { "a.md", "b.md" } end,
              execute = function(items)
                return "opened " .. table.concat(items, ","), 0
              end,
            },
          },
        },
      },
    }
""")


@pytest.fixture(autouse=True)
def _restore_logging():
    """configure_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def host():
    """A fresh script host, closed after the test."""
    script_host = ScriptHost()
    yield script_host
    script_host.close()


@pytest.fixture
def lua_fn(host):
    """Compile a Lua function expression on the test host."""

    def _make(source: str):
        with host.locked():
            return host.lua.execute(f"return {source}")

    return _make


def write_plugin(root: Path, directory: str, source: str) -> Path:
    """Write ``root/directory/plugin.lua`` and return the plugin directory."""
    plugin_dir = root / directory
    plugin_dir.mkdir(parents=True, exist_ok=True)
    (plugin_dir / "plugin.lua").write_text(dedent(source), encoding="utf-8")
    return plugin_dir


@pytest.fixture
def plugin_writer():
    return write_plugin


@pytest.fixture
def make_plugin(host, tmp_path):
    """Evaluate a plugin source and build a validated Plugin from it."""

    def _make(source: str, directory: str = "plugin") -> Plugin:
        plugin_dir = write_plugin(tmp_path / "plugins", directory, source)
        script = plugin_dir / "plugin.lua"
        table = host.evaluate_file(script)
        provenance = Provenance(directory=plugin_dir, origin=Origin.BASE, sources=(script,))
        return build_plugin(table, provenance, host)

    return _make


@pytest.fixture
def xdg_dirs(tmp_path, monkeypatch):
    """Point the config and data directories at tmp_path.

    Returns ``(override_root, base_root)``.
    """
    config_home = tmp_path / "config"
    data_home = tmp_path / "data"
    config_home.mkdir()
    data_home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    for var in ("SYNTROPY_DEFAULT_PLUGIN", "SYNTROPY_DEFAULT_TASK", "SYNTROPY_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return config_home / "syntropy" / "plugins", data_home / "syntropy" / "plugins"
