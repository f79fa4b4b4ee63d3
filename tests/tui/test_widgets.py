"""Tests for TUI widget and selection logic (non-Textual-mount tests)."""

from __future__ import annotations

from types import SimpleNamespace

from syntropy.execution import ExecutionResult, ResultKind
from syntropy.plugins import Mode
from syntropy.tui.modals import result_title
from syntropy.tui.screens import fuzzy_filter
from syntropy.tui.selection import ItemSelection
from syntropy.tui.widgets.status_bar import StatusBar


def _render_status_bar(breadcrumb="Plugins", counts="", is_busy=False, hints="Esc back") -> str:
    """Call StatusBar.render() on a plain namespace to avoid Textual reactives."""
    ns = SimpleNamespace(breadcrumb=breadcrumb, counts=counts, is_busy=is_busy, hints=hints)
    return StatusBar.render(ns).plain


class TestStatusBarRender:
    def test_breadcrumb_and_hints(self):
        result = _render_status_bar("notes > open")
        assert "notes > open" in result
        assert "Esc back" in result
        assert "running" not in result

    def test_counts_shown(self):
        result = _render_status_bar(counts="2/5 selected")
        assert "| 2/5 selected" in result

    def test_busy_indicator(self):
        assert "[running...]" in _render_status_bar(is_busy=True)


class TestItemSelection:
    """Selection state across re-enumeration."""

    def test_preselection_on_first_load_only(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b", "c"], preselected=["b", "zzz"])
        assert selection.selected == {"b"}

        selection.clear()
        selection.set_items(["a", "b", "c"], preselected=["b"])
        assert selection.selected == set()

    def test_selection_survives_reorder(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b", "c"])
        selection.toggle("c")

        selection.set_items(["c", "b", "a"])

        assert selection.selected == {"c"}

    def test_vanished_items_dropped(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b"])
        selection.select_all()

        selection.set_items(["b"])

        assert selection.selected == {"b"}

    def test_toggle(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a"])
        assert selection.toggle("a") is True
        assert selection.toggle("a") is False
        assert selection.toggle("missing") is False

    def test_single_mode_ignores_marks(self):
        selection = ItemSelection(Mode.SINGLE)
        selection.set_items(["a", "b"], preselected=["a"])

        assert selection.toggle("a") is False
        selection.select_all()
        assert selection.selected == set()
        assert selection.targets("b") == ["b"]
        assert selection.label("b") == "b"

    def test_targets_in_list_order(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b", "c"])
        selection.toggle("c")
        selection.toggle("a")

        assert selection.targets("b") == ["a", "c"]

    def test_targets_fall_back_to_focus(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b"])
        assert selection.targets("b") == ["b"]
        assert selection.targets(None) == []

    def test_labels(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["a", "b"])
        selection.toggle("a")
        assert selection.label("a") == "● a"
        assert selection.label("b") == "○ b"

    def test_visible_filters_by_query(self):
        selection = ItemSelection(Mode.MULTI)
        selection.set_items(["firefox", "vim", "fish"])

        selection.query = "fi"

        visible = selection.visible()
        assert "vim" not in visible
        assert set(visible) == {"firefox", "fish"}


class TestFuzzyFilter:
    def test_empty_query_keeps_order(self):
        entries = [("b", "Beta"), ("a", "Alpha")]
        assert fuzzy_filter("", entries) == entries

    def test_filters_by_label(self):
        entries = [("notes", "N notes"), ("tools", "T tools")]
        assert fuzzy_filter("tools", entries) == [("tools", "T tools")]


class TestResultTitle:
    def test_titles(self):
        assert result_title(ExecutionResult("ok", 0)) == "Success"
        assert result_title(ExecutionResult("", 3)) == "Exited with 3"
        assert result_title(ExecutionResult("boom", 1, ResultKind.FAILURE)) == "Script failed"
        assert result_title(ExecutionResult("broken", 1, ResultKind.ERROR)) == "Error"

    def test_exit_code_clamped_in_title(self):
        assert result_title(ExecutionResult("", 300)) == "Exited with 255"
