"""Re-serialization of roll trees back to macro syntax, and tooltip markup."""

from __future__ import annotations

from chatmacro.ast import MATH, InlineRoll, Message, Text


def to_source(node: Message | InlineRoll | Text) -> str:
    """Rebuild the exact macro text a node was parsed from."""
    if isinstance(node, Text):
        return node.value
    inner = "".join(to_source(c) for c in node.children)
    if isinstance(node, Message):
        return inner
    opener, closer = ("<<", ">>") if node.kind == MATH else ("[[", "]]")
    return opener + inner + (closer if node.closed else "")


def tooltip_source(node: InlineRoll) -> str:
    """The expression shown when hovering an evaluated node: its source sans roll brackets."""
    inner = "".join(to_source(c) for c in node.children)
    return inner.replace("[[", "").replace("]]", "")


def render_tooltip(title: str, value: str) -> str:
    """Wrap an evaluated value in a hover span."""
    return f'<span title="{_escape_attr(title)}">{value}</span>'


# ---------------------------------------------------------------------------
# HTML escaping
# ---------------------------------------------------------------------------


def _escape_attr(text: str) -> str:
    """Escape text for HTML attribute values."""
    result: list[str] = []
    for ch in text:
        if ch == "&":
            result.append("&amp;")
        elif ch == "<":
            result.append("&lt;")
        elif ch == ">":
            result.append("&gt;")
        elif ch == '"':
            result.append("&quot;")
        elif ord(ch) > 0x7F:
            result.append(f"&#x{ord(ch):X};")
        else:
            result.append(ch)
    return "".join(result)
