"""Roll/math evaluation: walks the roll tree and records each node's result."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field

from chatmacro.arith import evaluate_arithmetic, format_number
from chatmacro.ast import MATH, ROLL, InlineRoll, Message, Text
from chatmacro.dice import INVALID_DICE, DiceEngine, DieSource, roll_shorthand
from chatmacro.errors import DiceError, EvalError
from chatmacro.parser import parse
from chatmacro.references import EvaluationRecord, ReferenceTable
from chatmacro.render import render_tooltip, tooltip_source

logger = logging.getLogger(__name__)

# Explicit node id: [[@name:1d20+5]]
ID_RE = re.compile(r"^@([^:]+):")

# A message starting with this is a chat command; its rolls get no tooltips
COMMAND_PREFIX = "/"


@dataclass
class EvalContext:
    """State carried through one roll evaluation pass."""

    references: ReferenceTable = field(default_factory=ReferenceTable)
    engine: DiceEngine | None = None
    rng: DieSource = field(default_factory=random.Random)
    tooltips: bool = False
    legacy_math: bool = False


def evaluate_rolls(message: str, ctx: EvalContext) -> str:
    """Replace every roll and math node in message with its evaluated result."""
    tree = parse(message, ctx.legacy_math)
    tooltips = ctx.tooltips and not message.startswith(COMMAND_PREFIX)
    return evaluate_message(tree, ctx, tooltips)


def evaluate_message(tree: Message, ctx: EvalContext, tooltips: bool) -> str:
    """Evaluate a parsed message; top-level nodes optionally get hover tooltips."""
    parts: list[str] = []
    for child in tree.children:
        if isinstance(child, Text):
            parts.append(child.value)
            continue
        value = _evaluate_node(child, ctx)
        if tooltips and value:
            parts.append(render_tooltip(tooltip_source(child), value))
        else:
            parts.append(value)
    return "".join(parts)


def _evaluate_node(node: InlineRoll, ctx: EvalContext) -> str:
    """Evaluate children first, then the concatenated expression as a leaf."""
    parts: list[str] = []
    for child in node.children:
        if isinstance(child, Text):
            parts.append(child.value)
        else:
            parts.append(_evaluate_node(child, ctx))
    return interpret_node("".join(parts), node.kind, ctx)


def interpret_node(expression: str, kind: str, ctx: EvalContext) -> str:
    """Evaluate one leaf expression as a roll or math node and record it."""
    ref_id: str | None = None
    m = ID_RE.match(expression)
    if m:
        ref_id = m.group(1)
        expression = expression[m.end() :]

    if not expression.strip():
        return ""
    if ref_id is None:
        ref_id = ctx.references.next_id()

    if kind == MATH:
        rec = EvaluationRecord(_arithmetic(expression))
    elif kind == ROLL and ctx.engine is not None:
        rec = _roll_with_engine(expression, ctx.engine)
    elif kind == ROLL:
        result, groups = roll_shorthand(expression, ctx.rng)
        rec = EvaluationRecord(result, groups)
    else:
        return expression

    ctx.references.record(ref_id, rec)
    logger.debug("%s node %s: %r -> %s", kind, ref_id, expression, rec.result)
    return rec.result


def _arithmetic(expression: str) -> str:
    try:
        return format_number(evaluate_arithmetic(expression))
    except EvalError as exc:
        logger.warning("cannot evaluate %r: %s", expression, exc.message)
        return exc.message


def _roll_with_engine(expression: str, engine: DiceEngine) -> EvaluationRecord:
    try:
        rolled = engine.roll(expression)
    except DiceError as exc:
        logger.warning("invalid dice string %r: %s", expression, exc.message)
        return EvaluationRecord(INVALID_DICE)
    return EvaluationRecord(_arithmetic(rolled.arithmetic()), rolled.groups, rolled.raw)
