"""Macro parser: converts a token stream into a nested roll tree."""

from __future__ import annotations

from chatmacro.ast import MATH, ROLL, InlineRoll, Message, Text
from chatmacro.errors import ParseError
from chatmacro.lexer import tokenize
from chatmacro.tokens import DELIMITERS, Span, Token, TokenType

_CLOSERS: dict[str, TokenType] = {
    ROLL: TokenType.ROLL_CLOSE,
    MATH: TokenType.MATH_CLOSE,
}


class Parser:
    """Recursive descent parser for macro token streams.

    In lenient mode an unclosed node is closed at end of input and a stray
    closing delimiter is kept as text. Strict mode reports both as errors.
    """

    def __init__(self, tokens: list[Token], source: str, strict: bool = False) -> None:
        self._tokens = tokens
        self._source = source
        self._strict = strict
        self._pos = 0

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _peek(self) -> Token:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return self._tokens[-1]  # EOF

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _at_eof(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _error(self, message: str, span: Span) -> ParseError:
        return ParseError(message, span, self._source)

    # ------------------------------------------------------------------
    # Message level
    # ------------------------------------------------------------------

    def parse(self) -> Message:
        start = self._peek().span.start
        children: list[Text | InlineRoll] = []

        while not self._at_eof():
            tok = self._peek()
            if tok.type in (TokenType.ROLL_OPEN, TokenType.MATH_OPEN):
                children.append(self._parse_node())
            elif tok.type in (TokenType.ROLL_CLOSE, TokenType.MATH_CLOSE):
                children.append(self._stray_closer())
            else:
                self._advance()
                children.append(Text(tok.value, tok.span))

        end = self._peek().span.end
        return Message(tuple(_coalesce_text(children)), Span(start, end))

    # ------------------------------------------------------------------
    # Roll / math nodes
    # ------------------------------------------------------------------

    def _parse_node(self) -> InlineRoll:
        opener = self._advance()
        kind = ROLL if opener.type == TokenType.ROLL_OPEN else MATH
        closer = _CLOSERS[kind]
        children: list[Text | InlineRoll] = []

        while True:
            if self._at_eof():
                if self._strict:
                    raise self._error(
                        f"unclosed '{opener.value}': expected '{DELIMITERS[closer]}'",
                        opener.span,
                    )
                end = self._peek().span.end
                return InlineRoll(
                    kind, tuple(_coalesce_text(children)), Span(opener.span.start, end), False
                )

            tok = self._peek()
            if tok.type == closer:
                self._advance()
                span = Span(opener.span.start, tok.span.end)
                return InlineRoll(kind, tuple(_coalesce_text(children)), span)
            if tok.type in (TokenType.ROLL_OPEN, TokenType.MATH_OPEN):
                children.append(self._parse_node())
            elif tok.type in (TokenType.ROLL_CLOSE, TokenType.MATH_CLOSE):
                children.append(self._stray_closer())
            else:
                self._advance()
                children.append(Text(tok.value, tok.span))

    def _stray_closer(self) -> Text:
        tok = self._advance()
        if self._strict:
            raise self._error(f"unmatched '{tok.value}'", tok.span)
        return Text(tok.value, tok.span)


def _coalesce_text(children: list[Text | InlineRoll]) -> list[Text | InlineRoll]:
    """Merge adjacent Text nodes."""
    result: list[Text | InlineRoll] = []
    for child in children:
        if isinstance(child, Text) and result and isinstance(result[-1], Text):
            prev = result[-1]
            result[-1] = Text(prev.value + child.value, Span(prev.span.start, child.span.end))
        else:
            result.append(child)
    return result


def parse(source: str, legacy_math: bool = False, strict: bool = False) -> Message:
    """Tokenize and parse a chat message."""
    tokens = tokenize(source, legacy_math)
    return Parser(tokens, source, strict).parse()
