"""The macro pipeline: prompts, prompt references, nested macros, rolls, roll references."""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from chatmacro.dice import DiceEngine, DieSource
from chatmacro.errors import TableError
from chatmacro.eval import EvalContext, evaluate_rolls
from chatmacro.hooks import PARSE_AFTER_PROMPTS, PARSE_BEGIN, PARSE_END, HookRegistry
from chatmacro.library import (
    CUSTOM,
    NESTED_RE,
    TABLE,
    Macro,
    MacroLibrary,
    flatten_actor,
    macro_tag,
    roll_table,
    substitute_actor_data,
)
from chatmacro.prompts import (
    InputProvider,
    PromptMemory,
    resolve_prompts,
    substitute_prompt_references,
)
from chatmacro.references import ReferenceTable, substitute_roll_references
from chatmacro.store import MemorySettingsStore, SettingsStore

logger = logging.getLogger(__name__)

Actor = Mapping[str, Any]


@dataclass
class _Run:
    """State owned by one parse() call."""

    actor: Actor | None
    selections: dict[str, list[str]] = field(default_factory=dict)
    nested: list[str] = field(default_factory=list)


class MacroParser:
    """Runs chat messages through every macro stage, in order.

    One instance can serve many messages; only the remembered prompt
    selections outlive a single call.
    """

    def __init__(
        self,
        provider: InputProvider,
        store: SettingsStore | None = None,
        engine: DiceEngine | None = None,
        rng: DieSource | None = None,
        library: MacroLibrary | None = None,
        hooks: HookRegistry | None = None,
        legacy_math: bool = False,
        namespace: str = "chatmacro",
    ) -> None:
        self.provider = provider
        self.store = store if store is not None else MemorySettingsStore()
        self.engine = engine
        self.rng = rng if rng is not None else random.Random()
        self.library = library if library is not None else MacroLibrary()
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.legacy_math = legacy_math
        self.memory = PromptMemory(self.store, namespace)

    async def parse(self, message: str, actor: Actor | None = None, tooltips: bool = False) -> str:
        """Fully substitute every macro tag in message."""
        return await self._parse(message, _Run(actor), tooltips)

    async def run_macro(self, macro: Macro, actor: Actor | None = None, tooltips: bool = False) -> str:
        """Run a stored macro; a table macro posts its label and rolled entry."""
        run = _Run(actor, nested=[macro.tag])
        if macro.type == TABLE:
            content = f"<strong>{macro.label}</strong><br />{roll_table(macro.table, self.rng)}"
        else:
            content = macro.content
        return await self._parse(content, run, tooltips)

    async def _parse(self, message: str, run: _Run, tooltips: bool) -> str:
        message = self.hooks.call_all_values(PARSE_BEGIN, message, run.actor)
        message = await self._text_stages(message, run)

        ctx = EvalContext(
            references=ReferenceTable(),
            engine=self.engine,
            rng=self.rng,
            tooltips=tooltips,
            legacy_math=self.legacy_math,
        )
        message = evaluate_rolls(message, ctx)
        message = substitute_roll_references(message, ctx.references)
        return self.hooks.call_all_values(PARSE_END, message, run.actor)

    async def _text_stages(self, message: str, run: _Run) -> str:
        """Every stage that runs before rolls: also applied to nested macro text."""
        result = await resolve_prompts(message, self.provider, self.memory, run.selections)
        message = substitute_prompt_references(result.message, run.selections)
        message = self.hooks.call_all_values(PARSE_AFTER_PROMPTS, message, run.actor)
        if run.actor is not None:
            message = substitute_actor_data(message, flatten_actor(run.actor))
        return await self._expand_nested(message, run)

    async def _expand_nested(self, message: str, run: _Run) -> str:
        """Replace ``#{custom|...}`` with processed macro text and ``#{table|...}`` with a rolled entry."""
        actor_id = None if run.actor is None else run.actor.get("id")
        macros = self.library.lookup(None if actor_id is None else str(actor_id))

        pos = 0
        while True:
            m = NESTED_RE.search(message, pos)
            if m is None:
                return message

            tag = macro_tag(m.group("type"), m.group("label"))
            macro = macros.get(tag)
            if macro is None or tag in run.nested:
                logger.debug("dropping nested macro %s", tag)
                replacement = ""
            elif macro.type == CUSTOM:
                run.nested.append(tag)
                try:
                    replacement = await self._text_stages(macro.content, run)
                finally:
                    run.nested.pop()
            else:
                try:
                    replacement = roll_table(macro.table, self.rng)
                except TableError as exc:
                    logger.warning("%s: %s", tag, exc.message)
                    replacement = ""
            message = message[: m.start()] + replacement + message[m.end() :]
            pos = m.start() + len(replacement)
