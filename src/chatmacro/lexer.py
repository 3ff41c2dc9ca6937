"""Macro lexer: splits message text into roll/math delimiters and text runs."""

from __future__ import annotations

from enum import Enum, auto

from chatmacro.tokens import Position, Span, Token, TokenType


class _State(Enum):
    NORMAL = auto()
    MATH = auto()


class Lexer:
    """Tokenize a chat message into a stream of Token objects.

    Angle brackets are ordinary text: user HTML passes through untouched.
    Inside a legacy ``<<...>>`` span only the closing ``>>`` is recognized.
    """

    def __init__(self, source: str, legacy_math: bool = False) -> None:
        self._source = source
        self._legacy_math = legacy_math
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []
        self._state = _State.NORMAL

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list."""
        while self._pos < len(self._source):
            if self._state == _State.NORMAL:
                self._lex_normal()
            else:
                self._lex_math()

        self._emit(TokenType.EOF, "")
        return self._tokens

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _at(self, text: str) -> bool:
        return self._source.startswith(text, self._pos)

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _emit(self, tt: TokenType, value: str, start: Position | None = None) -> Token:
        end = self._current_pos()
        if start is None:
            start = end
        tok = Token(tt, value, Span(start, end))
        self._tokens.append(tok)
        return tok

    def _delimiter(self, tt: TokenType, text: str) -> None:
        start = self._current_pos()
        for _ in text:
            self._advance()
        self._emit(tt, text, start)

    # ------------------------------------------------------------------
    # Normal mode
    # ------------------------------------------------------------------

    def _at_normal_delimiter(self) -> TokenType | None:
        if self._at("[["):
            return TokenType.ROLL_OPEN
        if self._at("]]"):
            return TokenType.ROLL_CLOSE
        if self._legacy_math:
            if self._at("<<"):
                return TokenType.MATH_OPEN
            if self._at(">>"):
                return TokenType.MATH_CLOSE
        return None

    def _lex_normal(self) -> None:
        tt = self._at_normal_delimiter()
        if tt is TokenType.ROLL_OPEN:
            self._delimiter(tt, "[[")
            return
        if tt is TokenType.ROLL_CLOSE:
            self._delimiter(tt, "]]")
            return
        if tt is TokenType.MATH_OPEN:
            self._delimiter(tt, "<<")
            self._state = _State.MATH
            return
        if tt is TokenType.MATH_CLOSE:
            # Stray closer outside a math span
            self._delimiter(tt, ">>")
            return

        start = self._current_pos()
        chars = []
        while self._pos < len(self._source) and self._at_normal_delimiter() is None:
            chars.append(self._advance())
        self._emit(TokenType.TEXT, "".join(chars), start)

    # ------------------------------------------------------------------
    # Math mode (always a leaf)
    # ------------------------------------------------------------------

    def _lex_math(self) -> None:
        if self._at(">>"):
            self._delimiter(TokenType.MATH_CLOSE, ">>")
            self._state = _State.NORMAL
            return

        start = self._current_pos()
        chars = []
        while self._pos < len(self._source) and not self._at(">>"):
            chars.append(self._advance())
        self._emit(TokenType.TEXT, "".join(chars), start)


def tokenize(source: str, legacy_math: bool = False) -> list[Token]:
    """Convenience wrapper: tokenize source and return token list."""
    return Lexer(source, legacy_math).tokenize()
