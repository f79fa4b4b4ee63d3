"""Main Textual App for the Syntropy TUI."""

from __future__ import annotations

import logging

from textual.app import App
from textual.binding import Binding

from syntropy.config import Settings, base_plugins_root, override_plugins_root
from syntropy.execution.handoff import HandoffBroker
from syntropy.plugins import Diagnostic, Plugin, load_plugins
from syntropy.scripting import ScriptHost
from syntropy.tui.screens import ItemListScreen, PluginListScreen, TaskListScreen

logger = logging.getLogger(__name__)

# How often the render loop checks for pending terminal handoffs
HANDOFF_POLL_SECONDS = 1 / 30


class SyntropyApp(App):
    """Syntropy TUI - browse plugins, pick items, run tasks.

    The app owns the terminal. Plugin callbacks that need the terminal
    (``syntropy.invoke_tui``/``invoke_editor``) queue a request on the
    handoff broker; the app serves it between frames by suspending itself.
    """

    TITLE = "Syntropy"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=True, priority=True),
    ]

    def __init__(
        self,
        settings: Settings,
        plugin_name: str | None = None,
        task_key: str | None = None,
        host: ScriptHost | None = None,
        broker: HandoffBroker | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.settings = settings
        self.broker = broker or (host.handoff if host else HandoffBroker())
        self.host = host or ScriptHost(
            handoff=self.broker, shell_timeout=settings.shell_timeout_seconds
        )
        self.start_plugin = plugin_name
        self.start_task = task_key
        # Plugins load before the app takes over the terminal
        result = load_plugins(
            override_plugins_root(),
            base_plugins_root(),
            self.host,
            default_icon=settings.default_plugin_icon,
        )
        self.plugins: list[Plugin] = result.plugins
        self.diagnostics: list[Diagnostic] = result.diagnostics

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def find_plugin(self, name: str) -> Plugin | None:
        for plugin in self.plugins:
            if plugin.name == name:
                return plugin
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_mount(self) -> None:
        self.broker.attach()
        self.set_interval(HANDOFF_POLL_SECONDS, self._serve_handoff)
        self.push_screen(PluginListScreen(name="plugins"))

        if self.start_plugin:
            plugin = self.find_plugin(self.start_plugin)
            if plugin is None:
                self.notify(f"Plugin not found: {self.start_plugin}", severity="error")
                return
            task_key = self.start_task
            if task_key and plugin.get_task(task_key) is None:
                self.notify(f"Task not found: {task_key}", severity="error")
                task_key = None
            self.open_plugin(plugin.name, initial_task=task_key)

    def close(self) -> None:
        """Fail pending handoffs and release the interpreter after the app exits."""
        self.broker.close()
        self.host.close()
        logger.info("TUI closed")

    def _serve_handoff(self) -> None:
        """Drain at most one handoff request, suspending the app around it."""
        if self.broker.serve_one(self):
            self.refresh(layout=True)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open_plugin(self, name: str, initial_task: str | None = None) -> None:
        """Show the plugin's tasks, opening ``initial_task`` once mounted."""
        plugin = self.find_plugin(name)
        if plugin is None:
            return
        self.push_screen(
            TaskListScreen(plugin, initial_task=initial_task, name=f"tasks:{plugin.name}")
        )

    def open_task(self, plugin: Plugin, task_key: str) -> None:
        task_def = plugin.get_task(task_key)
        if task_def is None:
            return
        logger.info(f"Opening {plugin.name}/{task_key}")
        self.push_screen(
            ItemListScreen(plugin, task_def, name=f"items:{plugin.name}:{task_key}")
        )
