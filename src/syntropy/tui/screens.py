"""Plugin, task and item list screens."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.text import Text
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.fuzzy import Matcher
from textual.screen import Screen
from textual.widgets import Input, OptionList, Static
from textual.widgets.option_list import Option

from syntropy.errors import SyntropyError
from syntropy.execution import CallerKind, ExecutionResult, ItemSet, TaskEngine, run_task
from syntropy.execution.polling import PollScheduler
from syntropy.plugins import Plugin, Task
from syntropy.tui.modals import ConfirmScreen, ResultScreen
from syntropy.tui.selection import ItemSelection
from syntropy.tui.widgets import PreviewPane, StatusBar

if TYPE_CHECKING:
    from syntropy.tui.app import SyntropyApp

logger = logging.getLogger(__name__)


def fuzzy_filter(query: str, entries: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Filter ``(key, label)`` pairs by label, best match first."""
    if not query:
        return entries
    matcher = Matcher(query)
    scored = [(matcher.match(label), i, (key, label)) for i, (key, label) in enumerate(entries)]
    return [entry for score, _, entry in sorted(scored, key=lambda s: (-s[0], s[1])) if score > 0]


class ListScreen(Screen):
    """Search input, option list and status bar shared by all list screens."""

    DEFAULT_CSS = """
    ListScreen #search {
        dock: top;
        margin: 0 0 1 0;
    }
    ListScreen #list-body {
        height: 1fr;
    }
    ListScreen OptionList {
        width: 1fr;
        border: none;
    }
    ListScreen #list-errors {
        color: $error;
        height: auto;
    }
    """

    BINDINGS = [
        Binding("escape", "back", "Back"),
        Binding("slash", "focus_search", "Search"),
    ]

    app: SyntropyApp

    def compose(self):
        yield Input(placeholder="Search", id="search")
        yield Static("", id="list-errors")
        with Horizontal(id="list-body"):
            yield OptionList(id="options")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        settings = self.app.settings
        self.search_input.display = settings.search_bar
        self.status_bar.display = settings.status_bar
        self.status_bar.breadcrumb = self.breadcrumb()
        self.query_one("#list-errors", Static).display = False
        self.refresh_options()
        self.option_list.focus()

    @property
    def search_input(self) -> Input:
        return self.query_one("#search", Input)

    @property
    def option_list(self) -> OptionList:
        return self.query_one("#options", OptionList)

    @property
    def status_bar(self) -> StatusBar:
        return self.query_one("#status-bar", StatusBar)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def breadcrumb(self) -> str:
        return "Plugins"

    def entries(self) -> list[tuple[str, str]]:
        """``(key, label)`` pairs for the list."""
        return []

    def visible_entries(self) -> list[tuple[str, str]]:
        return fuzzy_filter(self.search_input.value, self.entries())

    def refresh_options(self) -> None:
        """Rebuild the option list, keeping the highlighted key if possible."""
        options = self.option_list
        current = self.highlighted_key()
        visible = self.visible_entries()
        self._entry_keys = [key for key, _ in visible]
        options.clear_options()
        # Text() keeps item strings such as "[tag] item" from being read as markup
        options.add_options([Option(Text(label), id=str(i)) for i, (_, label) in enumerate(visible)])
        if self._entry_keys:
            index = self._entry_keys.index(current) if current in self._entry_keys else 0
            options.highlighted = index
        self.status_bar.counts = f"{len(visible)}/{len(self.entries())}"

    def highlighted_key(self) -> str | None:
        keys = getattr(self, "_entry_keys", [])
        index = self.option_list.highlighted
        if index is None or index >= len(keys):
            return None
        return keys[index]

    def on_input_changed(self, event: Input.Changed) -> None:
        self.refresh_options()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.option_list.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        key = self.highlighted_key()
        if key is not None:
            self.open(key)

    def open(self, key: str) -> None:
        pass

    def show_result(self, result: ExecutionResult, suppress_success: bool = False) -> bool:
        """Quit, stay silent or open the result dialog.

        Returns False if the app is exiting.
        """
        if self.app.settings.exit_on_execute:
            self.app.exit(return_code=result.exit_code)
            return False
        if not (result.success and suppress_success):
            self.app.push_screen(ResultScreen(result))
        return True

    def action_focus_search(self) -> None:
        if self.search_input.display:
            self.search_input.focus()

    def action_back(self) -> None:
        if self.search_input.has_focus:
            self.option_list.focus()
            return
        if len(self.app.screen_stack) > 2:
            self.app.pop_screen()
        else:
            self.app.exit()


class PluginListScreen(ListScreen):
    def entries(self) -> list[tuple[str, str]]:
        return [
            (plugin.name, f"{plugin.metadata.icon} {plugin.name}")
            for plugin in self.app.plugins
        ]

    def on_mount(self) -> None:
        super().on_mount()
        errors = [str(d) for d in self.app.diagnostics if d.severity.value == "error"]
        errors_widget = self.query_one("#list-errors", Static)
        errors_widget.update("\n".join(f"✗ {error}" for error in errors))
        errors_widget.display = bool(errors)

    def open(self, key: str) -> None:
        self.app.open_plugin(key)


class TaskListScreen(ListScreen):
    """Tasks of one plugin.

    Tasks with item sources open an item list; tasks without run straight
    from here, through the confirmation dialog when they declare one.
    """

    def __init__(self, plugin: Plugin, initial_task: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.plugin = plugin
        self.initial_task = initial_task

    def on_mount(self) -> None:
        super().on_mount()
        self.status_bar.hints = "Enter open/run  Esc back"
        key, self.initial_task = self.initial_task, None
        if key is not None and key in self._entry_keys:
            self.option_list.highlighted = self._entry_keys.index(key)
            self.open(key)

    def breadcrumb(self) -> str:
        return f"{self.plugin.metadata.icon} {self.plugin.name}"

    def entries(self) -> list[tuple[str, str]]:
        return [
            (key, f"{self.plugin.tasks[key].display_name} - {self.plugin.tasks[key].description}")
            for key in self.plugin.task_keys
        ]

    def open(self, key: str) -> None:
        task_def = self.plugin.tasks[key]
        if task_def.has_item_sources:
            self.app.open_task(self.plugin, key)
            return
        if self.status_bar.is_busy:
            return
        if task_def.execution_confirmation_message:

            def on_answer(confirmed: bool | None) -> None:
                if confirmed:
                    self._run(task_def)

            self.app.push_screen(ConfirmScreen(task_def.execution_confirmation_message), on_answer)
            return
        self._run(task_def)

    def _run(self, task_def: Task) -> None:
        self.status_bar.is_busy = True
        self.run_worker(lambda: self._execute(task_def), thread=True, group="engine")

    def _execute(self, task_def: Task) -> None:
        # Confirmation already happened in the dialog; run without a refresh pass
        result = run_task(self.app.host, self.plugin, task_def.key, explicit_items=[])
        self.app.call_from_thread(self._after_execute, task_def, result)

    def _after_execute(self, task_def: Task, result: ExecutionResult) -> None:
        self.status_bar.is_busy = False
        self.show_result(result, task_def.suppress_success_notification)


class ItemListScreen(ListScreen):
    """Browse, select and execute the items of one task.

    Script work (enumeration, previews, executions) runs in thread
    workers; results come back through ``call_from_thread``. The status
    bar's busy flag is set while an enumeration or execution is in flight
    and blocks starting another one.
    """

    DEFAULT_CSS = """
    ItemListScreen #item-list {
        width: 1fr;
    }
    """

    BINDINGS = [
        Binding("space", "toggle_item", "Select"),
        Binding("ctrl+a", "select_all", "Select all"),
    ]

    def __init__(self, plugin: Plugin, task_def: Task, **kwargs):
        super().__init__(**kwargs)
        self.plugin = plugin
        self.task_def = task_def
        self.item_selection = ItemSelection(task_def.mode)
        self.engine: TaskEngine | None = None
        self.poller: PollScheduler | None = None
        self._preview_cache: dict[str, str | None] = {}
        self._focused_key: str | None = None

    def compose(self):
        yield Input(placeholder="Search", id="search")
        yield Static("", id="list-errors")
        with Horizontal(id="list-body"):
            with Vertical(id="item-list"):
                yield OptionList(id="options")
            yield PreviewPane(id="preview")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        super().on_mount()
        self.preview_pane.display = self.app.settings.show_preview_pane
        hints = "Enter execute  Esc back"
        if self.item_selection.multi:
            hints = "Space select  Ctrl+A all  " + hints
        self.status_bar.hints = hints
        self.status_bar.is_busy = True
        self.run_worker(self._start_engine, thread=True, group="engine")

    def on_unmount(self) -> None:
        if self.poller is not None:
            self.poller.shutdown()

    @property
    def preview_pane(self) -> PreviewPane:
        return self.query_one("#preview", PreviewPane)

    def breadcrumb(self) -> str:
        return f"{self.plugin.metadata.icon} {self.plugin.name} › {self.task_def.display_name}"

    def entries(self) -> list[tuple[str, str]]:
        return [(item, self.item_selection.label(item)) for item in self.item_selection.items]

    def visible_entries(self) -> list[tuple[str, str]]:
        self.item_selection.query = self.search_input.value
        return [(item, self.item_selection.label(item)) for item in self.item_selection.visible()]

    def refresh_options(self) -> None:
        super().refresh_options()
        self._focused_key = self.highlighted_key()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _start_engine(self) -> None:
        try:
            engine = TaskEngine(
                self.app.host, self.plugin, self.task_def.key, CallerKind.INTERACTIVE
            )
            item_set = engine.start()
        except SyntropyError as e:
            self.app.call_from_thread(self._show_fatal, ExecutionResult.from_error(e))
            return
        self.engine = engine
        self.poller = PollScheduler(
            engine,
            on_items=lambda items: self.app.call_from_thread(self._apply_items, items),
            on_preview=lambda item, text: self.app.call_from_thread(self._apply_preview, item, text),
            focused_item=lambda: self._focused_key,
        )
        self.app.call_from_thread(self._engine_ready, item_set)
        self.poller.start()

    def _load_preview(self, item: str) -> None:
        try:
            text = self.engine.preview(item)
        except SyntropyError as e:
            text = e.message
        self.app.call_from_thread(self._apply_preview, item, text)

    def _execute(self, items: list[str], confirmed: bool = False) -> None:
        engine = self.engine
        if not confirmed and engine.request_confirmation():
            self.app.call_from_thread(self._ask_confirmation, items)
            return
        result = engine.execute(items)
        self.app.call_from_thread(self._after_execute, result)

    # ------------------------------------------------------------------
    # UI side
    # ------------------------------------------------------------------

    def _engine_ready(self, item_set: ItemSet) -> None:
        self.status_bar.is_busy = False
        self._apply_items(item_set)

    def _apply_items(self, item_set: ItemSet) -> None:
        self.item_selection.set_items(item_set.items, item_set.preselected)
        errors_widget = self.query_one("#list-errors", Static)
        errors_widget.update("\n".join(f"✗ {error}" for error in item_set.errors))
        errors_widget.display = bool(item_set.errors)
        self._preview_cache = {
            item: text for item, text in self._preview_cache.items() if item in item_set.items
        }
        self.refresh_options()
        self._request_preview()

    def _apply_preview(self, item: str, text: str | None) -> None:
        self._preview_cache[item] = text
        if item == self._focused_key:
            self.preview_pane.show(text)

    def _request_preview(self) -> None:
        item = self._focused_key
        if item is None or self.engine is None or not self.preview_pane.display:
            if item is None and self.preview_pane.display:
                self.preview_pane.show(None)
            return
        if item in self._preview_cache:
            self.preview_pane.show(self._preview_cache[item])
            return
        self.run_worker(
            lambda: self._load_preview(item), thread=True, group="preview", exclusive=True
        )

    def on_option_list_option_highlighted(self, event: OptionList.OptionHighlighted) -> None:
        self._focused_key = self.highlighted_key()
        self._request_preview()

    def open(self, key: str) -> None:
        self._start_execution()

    def _start_execution(self) -> None:
        if self.engine is None or self.status_bar.is_busy:
            return
        items = self.item_selection.targets(self._focused_key)
        if not items:
            self.notify("Nothing selected", severity="warning")
            return
        self.status_bar.is_busy = True
        self.run_worker(lambda: self._execute(items), thread=True, group="engine")

    def _ask_confirmation(self, items: list[str]) -> None:
        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                self.run_worker(
                    lambda: self._execute(items, confirmed=True), thread=True, group="engine"
                )
            else:
                self.engine.cancel_confirmation()
                self.status_bar.is_busy = False

        self.app.push_screen(
            ConfirmScreen(self.task_def.execution_confirmation_message), on_answer
        )

    def _after_execute(self, result: ExecutionResult) -> None:
        self._preview_cache.clear()
        if self.engine.item_set is not None:
            self._apply_items(self.engine.item_set)
        self.status_bar.is_busy = False

        staying = self.show_result(result, self.task_def.suppress_success_notification)
        if staying and self.engine.setup_error is not None:
            # Refresh failed; report it on top of the execution result
            self.app.push_screen(ResultScreen(ExecutionResult.from_error(self.engine.setup_error)))

    def _show_fatal(self, result: ExecutionResult) -> None:
        self.status_bar.is_busy = False
        self.app.push_screen(ResultScreen(result))

    def action_toggle_item(self) -> None:
        item = self._focused_key
        if item is None or not self.item_selection.multi:
            return
        self.item_selection.toggle(item)
        self.refresh_options()

    def action_select_all(self) -> None:
        if self.item_selection.multi:
            if len(self.item_selection.selected) == len(self.item_selection.items):
                self.item_selection.clear()
            else:
                self.item_selection.select_all()
            self.refresh_options()
