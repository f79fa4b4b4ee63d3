"""Item selection for one-shot execution."""

from __future__ import annotations

from syntropy.errors import ItemSelectionError
from syntropy.execution.tags import strip_tag


def parse_comma_separated_with_escapes(value: str) -> list[str]:
    r"""Split an ``--items`` value on unescaped commas.

    ``\,`` is a literal comma and ``\\`` a literal backslash; any other
    backslash is kept as is. Items are trimmed and empty items dropped.

    >>> parse_comma_separated_with_escapes(r"a, b\,c ,,d")
    ['a', 'b,c', 'd']
    """
    items: list[str] = []
    current: list[str] = []
    chars = iter(value)
    for char in chars:
        if char == "\\":
            following = next(chars, None)
            if following in (",", "\\"):
                current.append(following)
            else:
                current.append("\\")
                if following is not None:
                    current.append(following)
        elif char == ",":
            items.append("".join(current))
            current = []
        else:
            current.append(char)
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


class ItemMatcher:
    """Resolves user-typed item names against enumerated items.

    Tried in order: exact match, tag-stripped match (multi-source tasks
    only, must be unambiguous), then a unique case-insensitive match.
    """

    def __init__(self, available: list[str], multi_source: bool = False):
        self.available = available
        self.multi_source = multi_source

    def match(self, requested: str) -> str:
        if requested in self.available:
            return requested

        if self.multi_source:
            stripped = [item for item in self.available if strip_tag(item) == requested]
            if len(stripped) == 1:
                return stripped[0]
            if len(stripped) > 1:
                raise ItemSelectionError(
                    f"item '{requested}' is ambiguous; use one of: {', '.join(stripped)}",
                    requested=requested,
                    available=stripped,
                )

        lowered = requested.lower()
        candidates = [
            item
            for item in self.available
            if item.lower() == lowered
            or (self.multi_source and strip_tag(item).lower() == lowered)
        ]
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            raise ItemSelectionError(
                f"item '{requested}' matches several items case-insensitively: "
                f"{', '.join(candidates)}",
                requested=requested,
                available=candidates,
            )

        raise ItemSelectionError(
            f"item '{requested}' not found. Available items:\n"
            + "\n".join(f"  {item}" for item in self.available),
            requested=requested,
            available=self.available,
        )

    def match_all(self, requested: list[str]) -> list[str]:
        matched: list[str] = []
        for name in requested:
            item = self.match(name)
            if item not in matched:
                matched.append(item)
        return matched
