"""Tests for the CLI module: arg parsing, terminal prompts, exit codes, end-to-end."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from chatmacro.cli import (
    TerminalInputProvider,
    build_parser,
    expand_message,
    main,
    resolve_options,
)
from chatmacro.prompts import CHECKBOX, LIST, ChoicePrompt, PromptOption

from tests.conftest import ScriptedProvider

# ---------------------------------------------------------------------------
# Arg parsing via build_parser
# ---------------------------------------------------------------------------


class TestArgParsing:
    def test_no_input(self) -> None:
        ns = build_parser().parse_args([])
        assert ns.input is None
        assert ns.message is None
        assert ns.output is None

    def test_input_and_output(self) -> None:
        ns = build_parser().parse_args(["msg.txt", "-o", "out.txt"])
        assert ns.input == "msg.txt"
        assert ns.output == "out.txt"

    def test_message_flag(self) -> None:
        ns = build_parser().parse_args(["-m", "[[1d20]]"])
        assert ns.message == "[[1d20]]"

    def test_tooltip_flags(self) -> None:
        p = build_parser()
        assert p.parse_args([]).tooltips is None
        assert p.parse_args(["--tooltips"]).tooltips is True
        assert p.parse_args(["--no-tooltips"]).tooltips is False

    def test_engine_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--engine", "fancy"])

    def test_switches(self) -> None:
        ns = build_parser().parse_args(["--check", "--debug", "-v", "--legacy-math"])
        assert ns.check is True
        assert ns.debug is True
        assert ns.verbose is True
        assert ns.legacy_math is True

    def test_stdin_dash(self) -> None:
        opts = resolve_options(build_parser().parse_args(["-"]))
        assert opts.input_file is None
        assert opts.source_name == "<stdin>"


# ---------------------------------------------------------------------------
# Terminal prompts
# ---------------------------------------------------------------------------


def _terminal(answers: str) -> tuple[TerminalInputProvider, io.StringIO]:
    out = io.StringIO()
    return TerminalInputProvider(io.StringIO(answers), out), out


OPTIONS = (
    PromptOption("Sword", "1d8"),
    PromptOption("Axe", "1d12", selected=True),
    PromptOption("Bow", "1d6"),
)


class TestTerminalText:
    def test_answer(self) -> None:
        provider, out = _terminal("Ayla\n")
        assert provider.request_text("Name", "") == "Ayla"
        assert out.getvalue() == "Name: "

    def test_blank_takes_default(self) -> None:
        provider, out = _terminal("\n")
        assert provider.request_text("Bonus", "2") == "2"
        assert out.getvalue() == "Bonus [2]: "

    def test_eof_cancels(self) -> None:
        provider, _ = _terminal("")
        assert provider.request_text("Name", "x") is None


@pytest.mark.asyncio
class TestTerminalChoice:
    async def test_listing(self) -> None:
        provider, out = _terminal("1\n")
        await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS))
        lines = out.getvalue().splitlines()
        assert lines[:4] == ["Weapon", "  1) Sword", " *2) Axe", "  3) Bow"]

    async def test_single(self) -> None:
        provider, _ = _terminal("3\n")
        chosen = await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS))
        assert chosen == [OPTIONS[2]]

    async def test_single_takes_first_number(self) -> None:
        provider, _ = _terminal("3, 1\n")
        chosen = await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS))
        assert chosen == [OPTIONS[2]]

    async def test_checkbox(self) -> None:
        provider, _ = _terminal("1, 3\n")
        chosen = await provider.request_choice(ChoicePrompt("Weapon", CHECKBOX, OPTIONS))
        assert chosen == [OPTIONS[0], OPTIONS[2]]

    async def test_blank_keeps_preselection(self) -> None:
        provider, _ = _terminal("\n")
        chosen = await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS))
        assert chosen == [OPTIONS[1]]

    async def test_retry_on_bad_answer(self) -> None:
        provider, out = _terminal("9\nabc\n2\n")
        chosen = await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS))
        assert chosen == [OPTIONS[1]]
        assert out.getvalue().count("Enter number between 1 and 3") == 2

    async def test_eof_dismisses(self) -> None:
        provider, _ = _terminal("")
        assert await provider.request_choice(ChoicePrompt("Weapon", LIST, OPTIONS)) is None


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class TestExitCodes:
    def test_success(self, tmp_path: Path) -> None:
        doc = tmp_path / "ok.txt"
        doc.write_text("Total: [[1+1]]")
        out = tmp_path / "out.txt"
        assert main([str(doc), "-o", str(out)]) == 0
        assert out.read_text() == "Total: 2"

    def test_check_ok(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--check", "-m", "[[1d20]]"]) == 0
        assert capsys.readouterr().out == ""

    def test_check_syntax_error_returns_1(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--check", "-m", "[[1d20"]) == 1
        err = capsys.readouterr().err
        assert "unclosed '[['" in err
        assert "<message>:1:1" in err

    def test_lenient_run_accepts_unclosed(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--engine", "standalone", "-m", "[[2+2"]) == 0
        assert capsys.readouterr().out == "4"

    def test_file_and_message_returns_2(self, tmp_path: Path) -> None:
        doc = tmp_path / "ok.txt"
        doc.write_text("")
        assert main([str(doc), "-m", "x"]) == 2

    def test_missing_file_returns_2(self, tmp_path: Path) -> None:
        assert main([str(tmp_path / "nope.txt")]) == 2

    def test_bad_config_returns_2(self, tmp_path: Path) -> None:
        cfg = tmp_path / "bad.toml"
        cfg.write_text("[parser\n")
        assert main(["--config", str(cfg), "-m", "x"]) == 2

    def test_bad_actor_returns_2(self, tmp_path: Path) -> None:
        actor = tmp_path / "actor.json"
        actor.write_text("[1]")
        assert main(["--actor", str(actor), "-m", "x"]) == 2


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


class TestEndToEnd:
    def test_d20_engine(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["-m", "[[1d1+2]]"]) == 0
        assert capsys.readouterr().out == "3"

    def test_standalone_engine(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--engine", "standalone", "-m", "[[2d1]]"]) == 0
        assert capsys.readouterr().out == "2"

    def test_seed_repeats(self, capsys: pytest.CaptureFixture[str]) -> None:
        for engine in ("d20", "standalone"):
            main(["--engine", engine, "--seed", "11", "-m", "[[10d20]]"])
            first = capsys.readouterr().out
            main(["--engine", engine, "--seed", "11", "-m", "[[10d20]]"])
            assert capsys.readouterr().out == first

    def test_tooltips(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--tooltips", "-m", "[[1d1]]"]) == 0
        assert capsys.readouterr().out == '<span title="1d1">1</span>'

    def test_actor_and_library(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        actor = tmp_path / "actor.json"
        actor.write_text(json.dumps({"id": "a1", "name": "Ayla", "str": 2}))
        library = tmp_path / "macros.json"
        library.write_text(json.dumps([{"label": "Hit", "content": "[[1d1+{{str}}]]"}]))
        args = ["--actor", str(actor), "--library", str(library), "-m", "{{name}}: #{custom|hit}"]
        assert main(args) == 0
        assert capsys.readouterr().out == "Ayla: 3"

    def test_debug_dump(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--debug", "-m", "a [[1]]"]) == 0
        captured = capsys.readouterr()
        assert captured.out == "a 1"
        assert "Message\n  Text('a ')\n  Roll [[...]] leaf\n" in captured.err

    def test_prompt_from_terminal_remembered(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        store = tmp_path / "settings.json"
        monkeypatch.setattr("sys.stdin", io.StringIO("2\n"))
        assert main(["--store", str(store), "-m", "?{Pick|A,1|B,2}"]) == 0
        assert capsys.readouterr().out == "2"
        memory = json.loads(json.loads(store.read_text())["chatmacro"]["promptOptionsMemory"])
        assert memory == {"?{Pick|A,1|B,2}": {"value": "2"}}

        # Blank answer keeps the remembered choice
        monkeypatch.setattr("sys.stdin", io.StringIO("\n"))
        assert main(["--store", str(store), "-m", "?{Pick|A,1|B,2}"]) == 0
        assert capsys.readouterr().out == "2"

    def test_expand_message_with_provider(self) -> None:
        opts = resolve_options(build_parser().parse_args(["--engine", "standalone", "-m", ""]))
        provider = ScriptedProvider(text={"N": "3"})
        assert expand_message(opts, "[[?{N}d1]]", provider) == "3"
