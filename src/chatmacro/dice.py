"""Dice terms, the d20-backed dice engine, and the standalone shorthand roller."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import d20

from chatmacro.arith import evaluate_arithmetic, format_number
from chatmacro.errors import DiceError, EvalError

logger = logging.getLogger(__name__)

INVALID_DICE = "Invalid Dice String"

# Upper bound on dice per group, same limit d20 applies to a whole roll
MAX_DICE = 1000

# Longest digit run accepted for a count, face or threshold
_MAX_DIGITS = 100


@dataclass(frozen=True, slots=True)
class Literal:
    """A literal fragment of a rolled expression: a number or an operator."""

    text: str


@dataclass(frozen=True, slots=True)
class DieGroup:
    """N dice of one size rolled as a single term."""

    sides: int
    results: tuple[int, ...]

    @property
    def total(self) -> int:
        return sum(self.results)


Term = Literal | DieGroup


@dataclass(frozen=True, slots=True)
class RolledExpression:
    """Terms of one rolled expression, plus the engine's own result object."""

    terms: tuple[Term, ...]
    raw: Any = None

    @property
    def groups(self) -> tuple[DieGroup, ...]:
        return tuple(t for t in self.terms if isinstance(t, DieGroup))

    def arithmetic(self) -> str:
        """Sum die totals and literal terms back into a plain expression."""
        parts: list[str] = []
        for term in self.terms:
            if isinstance(term, DieGroup):
                parts.append(str(term.total))
            else:
                parts.append(term.text)
        return "".join(parts)


class DiceEngine(Protocol):
    """Host dice capability: roll an expression into ordered terms."""

    def roll(self, expression: str) -> RolledExpression: ...


class DieSource(Protocol):
    """Source of uniform integers; ``random.Random`` satisfies it."""

    def randint(self, a: int, b: int) -> int: ...


# ---------------------------------------------------------------------------
# d20-backed engine
# ---------------------------------------------------------------------------


class D20DiceEngine:
    """Dice engine backed by the d20 library's roller and expression tree."""

    def roll(self, expression: str) -> RolledExpression:
        try:
            result = d20.roll(expression)
        except d20.RollError as exc:
            raise DiceError(str(exc)) from None
        terms: list[Term] = []
        try:
            _flatten(result.expr, terms)
        except EvalError as exc:
            raise DiceError(exc.message) from None
        return RolledExpression(tuple(terms), result)


def _flatten(node: Any, terms: list[Term]) -> None:
    """Walk a d20 expression tree, emitting one term per dice node."""
    if isinstance(node, d20.Expression):
        _flatten(node.roll, terms)
    elif isinstance(node, d20.Dice):
        terms.append(DieGroup(node.size, tuple(int(die.total) for die in node.keptset)))
    elif isinstance(node, d20.BinOp):
        _flatten(node.left, terms)
        terms.append(Literal(f" {node.op} "))
        _flatten(node.right, terms)
    elif isinstance(node, d20.UnOp):
        terms.append(Literal(node.op))
        _flatten(node.value, terms)
    elif isinstance(node, d20.Parenthetical) and not node.operations:
        terms.append(Literal("("))
        _flatten(node.value, terms)
        terms.append(Literal(")"))
    else:
        # Literals, sets and parentheticals with keep/drop operations
        terms.append(Literal(format_number(node.total)))


# ---------------------------------------------------------------------------
# Standalone shorthand roller
# ---------------------------------------------------------------------------

_GROUP_RE = re.compile(
    r"(?P<rolls>\d*)d(?P<faces>\d+)"
    r"(?:ro(?:<|&lt;)(?P<reroll_once>\d+))?"
    r"(?:r(?:<|&lt;)(?P<reroll>\d+))?",
    re.IGNORECASE,
)

# Anything dice-like left over once valid groups are removed
_STRAY_RE = re.compile(r"\b\d*d\w*", re.IGNORECASE)


def roll_shorthand(expression: str, rng: DieSource) -> tuple[str, tuple[DieGroup, ...]]:
    """Roll ``NdF[ro<T][r<T]`` groups in place, then evaluate the residue.

    Returns the result text and the rolled groups in order. A malformed dice
    pattern gives INVALID_DICE; an arithmetic failure gives its message.
    """
    text = expression.strip()
    if _STRAY_RE.search(_GROUP_RE.sub("", text)):
        logger.warning("invalid dice string: %r", expression)
        return INVALID_DICE, ()

    groups: list[DieGroup] = []
    m = _GROUP_RE.search(text)
    while m:
        try:
            group = _roll_group(m, rng)
        except DiceError as exc:
            logger.warning("invalid dice string %r: %s", expression, exc.message)
            return INVALID_DICE, tuple(groups)
        groups.append(group)
        text = text[: m.start()] + str(group.total) + text[m.end() :]
        m = _GROUP_RE.search(text)

    try:
        result = format_number(evaluate_arithmetic(text))
    except EvalError as exc:
        logger.warning("cannot evaluate %r: %s", expression, exc.message)
        return exc.message, tuple(groups)
    return result, tuple(groups)


def _roll_group(m: re.Match[str], rng: DieSource) -> DieGroup:
    if any(len(g) > _MAX_DIGITS for g in m.groups() if g):
        raise DiceError(f"die group too large: {m.group(0)[:20]}...")
    rolls = int(m.group("rolls") or 1)
    faces = int(m.group("faces"))
    reroll_once = int(m.group("reroll_once") or 0)
    reroll = int(m.group("reroll") or 0)

    if faces < 1:
        raise DiceError(f"a die needs at least one face: d{faces}")
    if rolls > MAX_DICE:
        raise DiceError(f"too many dice: {rolls}")
    if reroll >= faces:
        raise DiceError(f"reroll threshold {reroll} leaves no result on a d{faces}")

    results: list[int] = []
    for _ in range(rolls):
        value = rng.randint(1, faces)
        if value <= reroll_once:
            value = rng.randint(1, faces)
        elif value <= reroll:
            while value <= reroll:
                value = rng.randint(1, faces)
        results.append(value)
    return DieGroup(faces, tuple(results))
