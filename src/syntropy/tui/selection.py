"""Item list state that survives re-enumeration.

Selection and the search query are keyed by the literal item string, so
a poll that returns the same items (in any order) leaves both untouched,
and items that disappear simply drop out of the selection.
"""

from __future__ import annotations

from textual.fuzzy import Matcher

from syntropy.plugins.models import Mode


class ItemSelection:
    def __init__(self, mode: Mode):
        self.mode = mode
        self.items: list[str] = []
        self.selected: set[str] = set()
        self.query = ""
        self._loaded = False

    @property
    def multi(self) -> bool:
        return self.mode is Mode.MULTI

    def set_items(self, items: list[str], preselected: list[str] | None = None) -> None:
        """Replace the item list, keeping selection for items that remain.

        Preselection only applies to the first load.
        """
        self.items = list(items)
        present = set(self.items)
        if not self._loaded:
            self._loaded = True
            if self.multi and preselected:
                self.selected = {item for item in preselected if item in present}
            return
        self.selected &= present

    def visible(self) -> list[str]:
        """Items matching the search query, best fuzzy match first."""
        if not self.query:
            return list(self.items)
        matcher = Matcher(self.query)
        scored = [(matcher.match(item), index, item) for index, item in enumerate(self.items)]
        return [item for score, _, item in sorted(scored, key=lambda s: (-s[0], s[1])) if score > 0]

    def toggle(self, item: str) -> bool:
        """Flip selection of ``item`` in multi mode. Returns the new state."""
        if not self.multi or item not in self.items:
            return False
        if item in self.selected:
            self.selected.discard(item)
            return False
        self.selected.add(item)
        return True

    def select_all(self) -> None:
        if self.multi:
            self.selected = set(self.items)

    def clear(self) -> None:
        self.selected.clear()

    def targets(self, focused: str | None) -> list[str]:
        """Items an execution acts on, in list order.

        Multi mode uses the marked items, or the focused item when nothing
        is marked. Other modes act on the focused item only.
        """
        if self.multi and self.selected:
            return [item for item in self.items if item in self.selected]
        return [focused] if focused is not None else []

    def label(self, item: str) -> str:
        if not self.multi:
            return item
        marker = "●" if item in self.selected else "○"
        return f"{marker} {item}"
