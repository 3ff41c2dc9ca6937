"""Tests for the roll tree parser, re-serialization and the debug dump."""

from __future__ import annotations

import io

import pytest

from chatmacro.ast import MATH, ROLL, InlineRoll, Text
from chatmacro.debug import dump_tree
from chatmacro.errors import ParseError
from chatmacro.parser import parse
from chatmacro.render import to_source, tooltip_source


class TestStructure:
    def test_plain_text(self) -> None:
        msg = parse("just words")
        assert len(msg.children) == 1
        assert isinstance(msg.children[0], Text)
        assert msg.children[0].value == "just words"

    def test_single_roll(self) -> None:
        msg = parse("Hit [[1d20]]!")
        text, roll, tail = msg.children
        assert text.value == "Hit "
        assert isinstance(roll, InlineRoll)
        assert roll.kind == ROLL
        assert roll.is_leaf
        assert roll.children[0].value == "1d20"
        assert tail.value == "!"

    def test_nested_roll(self) -> None:
        msg = parse("[[1d[[2]]]]")
        (outer,) = msg.children
        assert not outer.is_leaf
        assert outer.children[0].value == "1d"
        inner = outer.children[1]
        assert isinstance(inner, InlineRoll)
        assert inner.is_leaf
        assert inner.children[0].value == "2"

    def test_math_node(self) -> None:
        msg = parse("<<2*3>>", legacy_math=True)
        (node,) = msg.children
        assert node.kind == MATH

    def test_empty_roll(self) -> None:
        (node,) = parse("[[]]").children
        assert node.children == ()
        assert node.is_leaf


class TestLenient:
    def test_unclosed_roll_closes_at_end(self) -> None:
        (node,) = parse("[[1d6").children
        assert isinstance(node, InlineRoll)
        assert node.closed is False

    def test_stray_closer_is_text(self) -> None:
        msg = parse("a ]] b")
        assert len(msg.children) == 1
        assert msg.children[0].value == "a ]] b"


class TestRoundTrip:
    @pytest.mark.parametrize(
        "source",
        [
            "",
            "plain <b>html</b> text",
            "Hit [[1d20+5]] for [[2d6]] damage",
            "[[1d[[2]]]]",
            "[[ [[1d4]]d6 ]]",
            "[[1d6",
            "stray ]] closer",
            "a [[b [[c",
            "<<1 + [[2]]>>",
            "[[]]",
        ],
    )
    def test_to_source(self, source: str) -> None:
        assert to_source(parse(source)) == source

    @pytest.mark.parametrize("source", ["<<1+2>>", "x <<3 >> y", "<<1d6", "a >> b"])
    def test_to_source_legacy(self, source: str) -> None:
        assert to_source(parse(source, legacy_math=True)) == source


class TestTooltipSource:
    def test_strips_inner_roll_brackets(self) -> None:
        (node,) = parse("[[ [[1d4]]d6 ]]").children
        assert tooltip_source(node) == " 1d4d6 "


class TestStrict:
    def test_unclosed(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("[[1d6", strict=True)
        assert exc_info.value.message == "unclosed '[[': expected ']]'"

    def test_unclosed_math(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("<<1+2", legacy_math=True, strict=True)
        assert exc_info.value.message == "unclosed '<<': expected '>>'"

    def test_unmatched_closer(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("1d6]]", strict=True)
        assert exc_info.value.message == "unmatched ']]'"
        assert exc_info.value.span.start.column == 4

    def test_balanced_is_fine(self) -> None:
        msg = parse("[[1d[[2]]]] ok", strict=True)
        assert len(msg.children) == 2


class TestErrorFormat:
    def test_caret_under_opener(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("[[1d6", strict=True)
        text = str(exc_info.value)
        lines = text.splitlines()
        assert lines[0] == "error: unclosed '[[': expected ']]'"
        assert lines[1] == "  --> <message>:1:1"
        assert lines[3] == "1 | [[1d6"
        assert lines[4] == "  | ^^"

    def test_filename(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("ok\nbad ]]", strict=True)
        text = exc_info.value.format("macro.txt")
        assert "--> macro.txt:2:5" in text
        assert "2 | bad ]]" in text


class TestDumpTree:
    def test_dump(self) -> None:
        out = io.StringIO()
        dump_tree(parse("a [[1d[[2]]]] [[3"), file=out)
        assert out.getvalue() == (
            "Message\n"
            "  Text('a ')\n"
            "  Roll [[...]]\n"
            "    Text('1d')\n"
            "    Roll [[...]] leaf\n"
            "      Text('2')\n"
            "  Text(' ')\n"
            "  Roll [[...]] leaf (unclosed)\n"
            "    Text('3')\n"
        )
