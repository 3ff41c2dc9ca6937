"""Minimal LSP server for chat macros: diagnostics only."""

from __future__ import annotations

import argparse
import re
from dataclasses import dataclass

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from chatmacro import __version__
from chatmacro.ast import InlineRoll, Message, Text
from chatmacro.errors import ParseError
from chatmacro.eval import ID_RE
from chatmacro.parser import parse
from chatmacro.prompts import PROMPT_SPAN_RE
from chatmacro.references import ROLL_REF_RE

server = LanguageServer(
    "chatmacro-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


@dataclass(slots=True)
class ServerOptions:
    """Settings fixed when the server starts."""

    legacy_math: bool = False


options = ServerOptions()


def _validate(ls: LanguageServer, uri: str, legacy_math: bool = False) -> None:
    """Check roll delimiters, roll references and prompt tags; publish diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    source = doc.source
    diagnostics: list[Diagnostic] = []

    try:
        tree = parse(source, legacy_math, strict=True)
    except ParseError as exc:
        start_line = exc.span.start.line - 1
        start_col = exc.span.start.column - 1
        end_line = exc.span.end.line - 1
        end_col = exc.span.end.column - 1
        diagnostics.append(
            Diagnostic(
                range=Range(
                    start=Position(line=start_line, character=start_col),
                    end=Position(line=end_line, character=end_col),
                ),
                message=exc.message,
                severity=DiagnosticSeverity.Error,
                source="chatmacro",
            )
        )
    else:
        known = _known_ids(tree)
        for m in ROLL_REF_RE.finditer(source):
            ref_id = m.group("id").strip()
            if ref_id not in known:
                diagnostics.append(
                    _warning(source, m.start(), m.end(), f"no roll with id '{ref_id}'")
                )

    for pos in _unclosed_prompts(source):
        diagnostics.append(_warning(source, pos, pos + 2, "prompt tag is never closed"))

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


def _unclosed_prompts(source: str) -> list[int]:
    """Offsets of ``?{`` openers left over once every balanced tag is blanked out.

    Tags are removed innermost first, the way resolution answers them, so a
    prompt nested in another prompt's default closes its parent.
    """
    text = source
    m = PROMPT_SPAN_RE.search(text)
    while m is not None:
        text = text[: m.start()] + " " * (m.end() - m.start()) + text[m.end() :]
        m = PROMPT_SPAN_RE.search(text)
    return [m.start() for m in re.finditer(r"\?\{", text)]


def _known_ids(tree: Message) -> set[str]:
    """Explicit ``@name:`` ids plus the automatic ids the other nodes will get."""
    explicit: set[str] = set()
    auto = 0
    stack: list[Text | InlineRoll] = list(tree.children)
    while stack:
        node = stack.pop()
        if not isinstance(node, InlineRoll):
            continue
        stack.extend(node.children)
        first = node.children[0] if node.children else None
        m = ID_RE.match(first.value) if isinstance(first, Text) else None
        if m:
            explicit.add(m.group(1))
            continue
        # Blank rolls evaluate to nothing and take no id
        if node.is_leaf and not any(c.value.strip() for c in node.children if isinstance(c, Text)):
            continue
        auto += 1
    return explicit | {str(i) for i in range(1, auto + 1)}


def _position(source: str, offset: int) -> Position:
    line = source.count("\n", 0, offset)
    column = offset - (source.rfind("\n", 0, offset) + 1)
    return Position(line=line, character=column)


def _warning(source: str, start: int, end: int, message: str) -> Diagnostic:
    return Diagnostic(
        range=Range(start=_position(source, start), end=_position(source, end)),
        message=message,
        severity=DiagnosticSeverity.Warning,
        source="chatmacro",
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri, options.legacy_math)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri, options.legacy_math)


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(prog="chatmacro-lsp", description="Chat macro diagnostics server")
    p.add_argument("--legacy-math", action="store_true", help="Treat <<...>> as inline math")
    args = p.parse_args(argv)
    options.legacy_math = args.legacy_math
    server.start_io()
