"""Preview pane for the focused item."""

from __future__ import annotations

from rich.text import Text
from textual.containers import VerticalScroll
from textual.widgets import Static


class PreviewPane(VerticalScroll):
    DEFAULT_CSS = """
    PreviewPane {
        width: 1fr;
        border-left: solid $surface-lighten-2;
        padding: 0 1;
    }
    PreviewPane #preview-body {
        width: 100%;
    }
    """

    def compose(self):
        yield Static("", id="preview-body")

    def show(self, text: str | None) -> None:
        body = self.query_one("#preview-body", Static)
        if text is None:
            body.update(Text("No preview", style="dim"))
        else:
            body.update(Text(text))
        self.scroll_home(animate=False)
