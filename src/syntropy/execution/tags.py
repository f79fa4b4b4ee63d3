"""Item tags for tasks with several item sources.

Items from a multi-source task are shown as ``"[tag] item"`` so the
engine can route a selection back to the source that produced it.
"""

from __future__ import annotations


def format_tagged(tag: str, item: str) -> str:
    return f"[{tag}] {item}"


def parse_tag(item: str) -> tuple[str | None, str]:
    """Split ``"[tag] content"`` into ``(tag, content)``.

    Only the first space after the closing bracket is removed. Items that
    do not start with ``[`` or lack a closing ``]`` have no tag.

    >>> parse_tag("[pkg] git")
    ('pkg', 'git')
    >>> parse_tag("plain")
    (None, 'plain')
    """
    if not item.startswith("["):
        return None, item
    end = item.find("]")
    if end == -1:
        return None, item
    tag = item[1:end]
    content = item[end + 1 :]
    if content.startswith(" "):
        content = content[1:]
    return tag, content


def strip_tag(item: str) -> str:
    return parse_tag(item)[1]
