"""Command-line interface for chatmacro."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from chatmacro.errors import ParseError
from chatmacro.prompts import CHECKBOX, ChoicePrompt, InputProvider, PromptOption

ENGINES = ("d20", "standalone")


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path | None
    message: str | None
    output_file: Path | None
    tooltips: bool
    legacy_math: bool
    engine: str
    seed: int | None
    store_path: Path | None
    namespace: str
    library_path: Path | None
    actor_path: Path | None
    check: bool
    debug: bool
    verbose: bool

    @property
    def source_name(self) -> str:
        if self.input_file is None:
            return "<message>" if self.message is not None else "<stdin>"
        return str(self.input_file)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="chatmacro",
        description="Expand prompts, rolls and references in a chat message",
    )
    p.add_argument("input", nargs="?", help="Message file, or - for stdin (default: stdin)")
    p.add_argument("-m", "--message", help="Message text given on the command line")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover chatmacro.toml)",
    )
    p.add_argument(
        "--tooltips",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Wrap top-level roll results in hover spans",
    )
    p.add_argument(
        "--legacy-math",
        action="store_true",
        default=None,
        help="Also evaluate <<...>> inline math",
    )
    p.add_argument("--engine", choices=ENGINES, default=None, help="Dice engine (default: d20)")
    p.add_argument("--seed", type=int, default=None, metavar="N", help="Seed the dice")
    p.add_argument("--store", metavar="FILE", help="JSON file remembering prompt selections")
    p.add_argument("--library", metavar="FILE", help="JSON list of stored macros")
    p.add_argument("--actor", metavar="FILE", help="JSON object of actor data")
    p.add_argument("--check", action="store_true", help="Only check roll delimiters")
    p.add_argument("--debug", action="store_true", help="Dump the roll tree to stderr")
    p.add_argument("-v", "--verbose", action="store_true", help="Log each evaluation step")
    return p


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "chatmacro.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def _config_path(section: dict[str, Any], base: Path) -> Path | None:
    value = section.get("path")
    if value is None:
        return None
    if not isinstance(value, str):
        raise argparse.ArgumentTypeError(f"invalid path in config: {value!r}")
    return base / value


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags. Relative paths in the config file
    are taken relative to the input file's directory.
    """
    if args.input is not None and args.message is not None:
        raise argparse.ArgumentTypeError("give either an input file or --message, not both")

    input_file = None if args.input in (None, "-") else Path(args.input)
    input_dir = Path(".")
    if input_file is not None and input_file.parent.parts:
        input_dir = input_file.parent

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    cfg_parser = _section(config, "parser")
    cfg_store = _section(config, "store")
    cfg_library = _section(config, "library")
    cfg_actor = _section(config, "actor")

    # Parser settings: config < CLI
    tooltips = bool(cfg_parser.get("tooltips", False))
    if args.tooltips is not None:
        tooltips = args.tooltips

    legacy_math = bool(cfg_parser.get("legacy_math", False))
    if args.legacy_math is not None:
        legacy_math = args.legacy_math

    engine = cfg_parser.get("engine", "d20")
    if args.engine is not None:
        engine = args.engine
    if engine not in ENGINES:
        raise argparse.ArgumentTypeError(f"unknown dice engine: {engine!r}")

    seed = cfg_parser.get("seed")
    if args.seed is not None:
        seed = args.seed
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise argparse.ArgumentTypeError(f"seed must be an integer: {seed!r}")

    # Files: config < CLI
    store_path = Path(args.store) if args.store else _config_path(cfg_store, input_dir)
    namespace = str(cfg_store.get("namespace", "chatmacro"))
    library_path = Path(args.library) if args.library else _config_path(cfg_library, input_dir)
    actor_path = Path(args.actor) if args.actor else _config_path(cfg_actor, input_dir)

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        message=args.message,
        output_file=output_file,
        tooltips=tooltips,
        legacy_math=legacy_math,
        engine=engine,
        seed=seed,
        store_path=store_path,
        namespace=namespace,
        library_path=library_path,
        actor_path=actor_path,
        check=args.check,
        debug=args.debug,
        verbose=args.verbose,
    )


# ---------------------------------------------------------------------------
# Terminal prompts
# ---------------------------------------------------------------------------


class TerminalInputProvider:
    """Answers prompt tags by asking on a terminal.

    Questions go to stderr unless another stream is given, so stdout only
    carries the expanded message. End of input dismisses a prompt.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._in = stdin if stdin is not None else sys.stdin
        self._out = stdout if stdout is not None else sys.stderr

    def _ask(self, text: str) -> str | None:
        self._out.write(text)
        self._out.flush()
        line = self._in.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def request_text(self, query: str, default: str) -> str | None:
        suffix = f" [{default}]" if default else ""
        answer = self._ask(f"{query}{suffix}: ")
        if answer is None:
            return None
        return answer.strip() or default

    async def request_choice(self, prompt: ChoicePrompt) -> list[PromptOption] | None:
        self._out.write(f"{prompt.query}\n")
        for i, option in enumerate(prompt.options, 1):
            mark = "*" if option.selected else " "
            self._out.write(f" {mark}{i}) {option.label}\n")
        many = prompt.kind == CHECKBOX
        hint = "numbers, comma-separated" if many else "number"

        while True:
            answer = self._ask(f"Choose ({hint}): ")
            if answer is None:
                return None
            if not answer.strip():
                return [o for o in prompt.options if o.selected]
            picked = _pick(answer, prompt.options)
            if picked is None:
                self._out.write(f"Enter {hint} between 1 and {len(prompt.options)}\n")
                continue
            return picked if many else picked[:1]


def _pick(answer: str, options: tuple[PromptOption, ...]) -> list[PromptOption] | None:
    picked: list[PromptOption] = []
    for item in answer.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            n = int(item)
        except ValueError:
            return None
        if not 1 <= n <= len(options):
            return None
        if options[n - 1] not in picked:
            picked.append(options[n - 1])
    return picked or None


# ---------------------------------------------------------------------------
# Running a message
# ---------------------------------------------------------------------------


def read_source(options: CliOptions) -> str:
    """The message text, from --message, the input file or stdin."""
    if options.message is not None:
        return options.message
    if options.input_file is None:
        return sys.stdin.read()
    return options.input_file.read_text(encoding="utf-8")


def load_actor(path: Path) -> dict[str, Any]:
    """Load actor data: one JSON object."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object of actor data")
    return data


def expand_message(
    options: CliOptions, source: str, provider: InputProvider | None = None
) -> str:
    """Run one message through the full macro pipeline."""
    from chatmacro.dice import D20DiceEngine
    from chatmacro.library import MacroLibrary
    from chatmacro.pipeline import MacroParser
    from chatmacro.store import JsonFileSettingsStore, MemorySettingsStore

    rng = random.Random(options.seed)
    engine = None
    if options.engine == "d20":
        if options.seed is not None:
            # d20 rolls from the module-level generator
            random.seed(options.seed)
        engine = D20DiceEngine()

    if options.store_path is not None:
        store = JsonFileSettingsStore(options.store_path)
    else:
        store = MemorySettingsStore()
    library = MacroLibrary.from_json(options.library_path) if options.library_path else None
    actor = load_actor(options.actor_path) if options.actor_path else None

    macro_parser = MacroParser(
        provider if provider is not None else TerminalInputProvider(),
        store=store,
        engine=engine,
        rng=rng,
        library=library,
        legacy_math=options.legacy_math,
        namespace=options.namespace,
    )
    return asyncio.run(macro_parser.parse(source, actor, options.tooltips))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    from chatmacro.debug import dump_tree
    from chatmacro.parser import parse

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except (argparse.ArgumentTypeError, tomllib.TOMLDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    _configure_logging(options.verbose)

    try:
        source = read_source(options)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if options.check or options.debug:
        try:
            tree = parse(source, options.legacy_math, strict=options.check)
        except ParseError as exc:
            print(exc.format(options.source_name), file=sys.stderr)
            return 1
        if options.debug:
            dump_tree(tree, file=sys.stderr)
        if options.check:
            return 0

    try:
        result = expand_message(options, source)
    except (OSError, ValueError, KeyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if options.output_file:
        options.output_file.write_text(result, encoding="utf-8")
    else:
        sys.stdout.write(result)

    return 0
