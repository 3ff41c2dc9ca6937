"""--debug roll tree dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from chatmacro.ast import ROLL, InlineRoll, Message, Text


def dump_tree(message: Message, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable roll tree to *file*."""
    file.write("Message\n")
    for child in message.children:
        _dump_child(child, 1, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_child(child: Text | InlineRoll, depth: int, f: TextIO) -> None:
    if isinstance(child, Text):
        f.write(f"{_indent(depth)}Text({child.value!r})\n")
    elif isinstance(child, InlineRoll):
        _dump_roll(child, depth, f)


def _dump_roll(node: InlineRoll, depth: int, f: TextIO) -> None:
    label = "Roll [[...]]" if node.kind == ROLL else "Math <<...>>"
    suffix = "" if node.closed else " (unclosed)"
    leaf = " leaf" if node.is_leaf else ""
    f.write(f"{_indent(depth)}{label}{leaf}{suffix}\n")
    for child in node.children:
        _dump_child(child, depth + 1, f)
