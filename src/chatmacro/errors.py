"""Error types, with formatted source context for syntax errors."""

from __future__ import annotations

from chatmacro.tokens import Span


class MacroError(Exception):
    """Base class for all chatmacro errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ParseError(MacroError):
    """Raised by the strict parser on unbalanced roll or math delimiters."""

    def __init__(self, message: str, span: Span, source: str) -> None:
        self.span = span
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        return self.format()

    def format(self, filename: str = "<message>") -> str:
        lines = self.source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )


class EvalError(MacroError):
    """Raised by the arithmetic evaluator on malformed expressions."""


class DiceError(MacroError):
    """Raised when a dice expression cannot be rolled."""


class TableError(MacroError):
    """Raised when a rollable table cannot produce an entry."""
