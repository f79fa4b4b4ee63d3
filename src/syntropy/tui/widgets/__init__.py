"""TUI widgets."""

from .preview_pane import PreviewPane
from .status_bar import StatusBar

__all__ = ["PreviewPane", "StatusBar"]
