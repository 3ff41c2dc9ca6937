"""Run-scoped table of evaluated rolls and the ``@{id|mode|opts}`` substitution pass."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from chatmacro.dice import DieGroup

logger = logging.getLogger(__name__)

ROLL_REF_RE = re.compile(r"@\{(?P<id>[^|}]+)(?:\|(?P<mode>[^|}]+))?(?:\|(?P<options>[^}]+))?\}")


@dataclass(frozen=True, slots=True)
class EvaluationRecord:
    """What one evaluated roll or math node produced."""

    result: str
    rolls: tuple[DieGroup, ...] = ()
    roll: Any = None


@dataclass
class ReferenceTable:
    """Evaluation records keyed by node id, for one pipeline run."""

    _records: dict[str, EvaluationRecord] = field(default_factory=dict)
    _counter: int = 0

    def next_id(self) -> str:
        """Return the next automatic id: "1", "2", ..."""
        self._counter += 1
        return str(self._counter)

    def record(self, ref_id: str, rec: EvaluationRecord) -> None:
        self._records[ref_id] = rec

    def get(self, ref_id: str) -> EvaluationRecord | None:
        return self._records.get(ref_id)

    def ids(self) -> list[str]:
        return list(self._records)

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._records

    def __len__(self) -> int:
        return len(self._records)


def substitute_roll_references(message: str, table: ReferenceTable) -> str:
    """Replace every ``@{id|mode|opt...}`` tag with a view of the recorded roll.

    Tags naming an id that was never recorded are left in place. Scanning
    resumes after each tag, so substituted text is never rescanned.
    """
    pos = 0
    while True:
        m = ROLL_REF_RE.search(message, pos)
        if m is None:
            return message

        ref_id = m.group("id").strip()
        rec = table.get(ref_id)
        if rec is None:
            logger.debug("unresolved roll reference %s", m.group(0))
            pos = m.end()
            continue

        mode = (m.group("mode") or "result").strip()
        options = (m.group("options") or "").split("|")
        value = roll_view(rec, mode, options)
        message = message[: m.start()] + value + message[m.end() :]
        pos = m.start() + len(value)


def roll_view(rec: EvaluationRecord, mode: str, options: list[str]) -> str:
    """Format one record for a reference tag: result, crit or fumble."""
    if mode == "result":
        return rec.result

    if mode == "crit":
        if len(options) != 2:
            return ""
        group = _group(rec, options[0])
        threshold = _to_int(options[1])
        if group is None or threshold is None:
            return ""
        return "crit" if group.total >= threshold else ""

    if mode == "fumble":
        if len(options) != 1:
            return ""
        group = _group(rec, options[0])
        if group is None:
            return ""
        return "fumble" if group.total == 1 else ""

    return ""


def _group(rec: EvaluationRecord, index: str) -> DieGroup | None:
    """Look up a die group by its 1-based index."""
    n = _to_int(index)
    if n is None or not 1 <= n <= len(rec.rolls):
        return None
    return rec.rolls[n - 1]


def _to_int(text: str) -> int | None:
    try:
        return int(text.strip())
    except ValueError:
        return None
