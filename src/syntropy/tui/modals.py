"""Confirmation and result dialogs."""

from __future__ import annotations

from rich.text import Text
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Static

from syntropy.execution import ExecutionResult, ResultKind


def result_title(result: ExecutionResult) -> str:
    if result.kind is ResultKind.ERROR:
        return "Error"
    if result.kind is ResultKind.FAILURE:
        return "Script failed"
    if result.status == 0:
        return "Success"
    return f"Exited with {result.exit_code}"


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no dialog shown before executing a task that asks for it."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }
    ConfirmScreen > Vertical {
        width: 60;
        height: auto;
        border: thick $warning;
        background: $surface;
        padding: 1 2;
    }
    ConfirmScreen Horizontal {
        height: auto;
        align: center middle;
        padding-top: 1;
    }
    ConfirmScreen Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("y", "confirm", "Yes"),
        Binding("n,escape", "cancel", "No"),
    ]

    def __init__(self, message: str, **kwargs):
        super().__init__(**kwargs)
        self.prompt = message

    def compose(self):
        with Vertical():
            yield Static(Text(self.prompt))
            with Horizontal():
                yield Button("Yes", variant="warning", id="confirm-yes")
                yield Button("No", id="confirm-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class ResultScreen(ModalScreen[None]):
    """Shows the output and status of an execution."""

    DEFAULT_CSS = """
    ResultScreen {
        align: center middle;
    }
    ResultScreen > Vertical {
        width: 80%;
        max-height: 80%;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    ResultScreen.-failed > Vertical {
        border: thick $error;
    }
    ResultScreen #result-title {
        text-style: bold;
        padding-bottom: 1;
    }
    ResultScreen VerticalScroll {
        height: auto;
        max-height: 20;
    }
    """

    BINDINGS = [
        Binding("enter,escape,q", "close", "Close"),
    ]

    def __init__(self, result: ExecutionResult, **kwargs):
        super().__init__(**kwargs)
        self.execution_result = result

    def compose(self):
        with Vertical():
            yield Static(result_title(self.execution_result), id="result-title")
            with VerticalScroll():
                yield Static(Text(self.execution_result.output or "(no output)"))

    def on_mount(self) -> None:
        if not self.execution_result.success:
            self.add_class("-failed")

    def action_close(self) -> None:
        self.dismiss(None)
