"""Bottom status bar showing where the user is and what is running."""

from __future__ import annotations

from rich.text import Text
from textual.reactive import reactive
from textual.widgets import Static


class StatusBar(Static):
    """Footer status bar.

    Shows: breadcrumb | item counts | busy indicator | key hints.
    """

    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    breadcrumb: reactive[str] = reactive("Plugins")
    counts: reactive[str] = reactive("")
    is_busy: reactive[bool] = reactive(False)
    hints: reactive[str] = reactive("Enter open  Esc back  Ctrl+Q quit")

    def render(self) -> Text:
        busy = " [running...]" if self.is_busy else ""
        counts = f" | {self.counts}" if self.counts else ""
        return Text(f" {self.breadcrumb}{counts}{busy}  |  {self.hints}")
