"""Token types and source position data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Inline roll delimiters
    ROLL_OPEN = auto()  # [[
    ROLL_CLOSE = auto()  # ]]

    # Legacy inline math delimiters (only when enabled)
    MATH_OPEN = auto()  # <<
    MATH_CLOSE = auto()  # >>

    # Anything else, user HTML included
    TEXT = auto()

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with its source text."""

    type: TokenType
    value: str
    span: Span


# Source text for each delimiter token, used when re-serializing
DELIMITERS: dict[TokenType, str] = {
    TokenType.ROLL_OPEN: "[[",
    TokenType.ROLL_CLOSE: "]]",
    TokenType.MATH_OPEN: "<<",
    TokenType.MATH_CLOSE: ">>",
}
