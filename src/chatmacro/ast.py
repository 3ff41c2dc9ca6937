"""Tree node types for parsed chat messages."""

from __future__ import annotations

from dataclasses import dataclass

from chatmacro.tokens import Span

ROLL = "roll"
MATH = "math"


@dataclass(frozen=True, slots=True)
class Text:
    """Coalesced plain text, HTML included."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class InlineRoll:
    """A ``[[...]]`` roll or legacy ``<<...>>`` math node.

    ``closed`` is False when the lenient parser had to close the node at
    end of input; re-serialization then omits the closing delimiter.
    """

    kind: str
    children: tuple[Text | InlineRoll, ...]
    span: Span
    closed: bool = True

    @property
    def is_leaf(self) -> bool:
        return all(isinstance(c, Text) for c in self.children)


@dataclass(frozen=True, slots=True)
class Message:
    """Root node: the implicit container around the whole message."""

    children: tuple[Text | InlineRoll, ...]
    span: Span
