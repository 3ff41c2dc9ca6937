"""Stored macros, rollable tables, nested macro tags and actor data tags."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chatmacro.arith import format_number
from chatmacro.dice import DieSource
from chatmacro.errors import TableError

CUSTOM = "custom"
TABLE = "table"

ACTOR = "actor"
WORLD = "world"
GLOBAL = "global"

# Lookup precedence when several scopes define the same tag
_SCOPE_ORDER = (ACTOR, WORLD, GLOBAL)

NESTED_RE = re.compile(r"#\{(?P<type>custom|table)\|(?P<label>[^}]+)\}")
ACTOR_DATA_RE = re.compile(r"\{\{([^}]*)\}\}")


@dataclass(frozen=True, slots=True)
class TableEntry:
    weight: int
    value: str


@dataclass(frozen=True, slots=True)
class Macro:
    """A stored macro: text to run (custom) or a weighted table to roll."""

    label: str
    type: str = CUSTOM
    content: str = ""
    table: tuple[TableEntry, ...] = ()
    scope: str = GLOBAL
    actor_id: str | None = None

    @property
    def tag(self) -> str:
        return macro_tag(self.type, self.label)


def macro_tag(type_: str, label: str) -> str:
    """The ``#{type|slug}`` tag a macro is referenced by."""
    slug = re.sub(r"[^a-z0-9 \-_]", "", label, flags=re.IGNORECASE)
    return f"#{{{type_}|{slug.replace(' ', '-').lower()}}}"


def roll_table(entries: tuple[TableEntry, ...], rng: DieSource) -> str:
    """Pick one entry with probability proportional to its weight."""
    total = sum(e.weight for e in entries if e.weight > 0)
    if total <= 0:
        raise TableError("rollable table has no weighted entries")
    roll = rng.randint(1, total)
    running = 0
    for entry in entries:
        if entry.weight <= 0:
            continue
        running += entry.weight
        if roll <= running:
            return entry.value
    raise TableError("error in rollable table")


@dataclass
class MacroLibrary:
    """All stored macros, across actor, world and global scopes."""

    macros: list[Macro] = field(default_factory=list)

    def lookup(self, actor_id: str | None = None) -> dict[str, Macro]:
        """Map each tag to the macro it resolves to for this actor."""
        result: dict[str, Macro] = {}
        for scope in _SCOPE_ORDER:
            for macro in self.macros:
                if macro.scope != scope:
                    continue
                if scope == ACTOR and (actor_id is None or macro.actor_id != actor_id):
                    continue
                result.setdefault(macro.tag, macro)
        return result

    @classmethod
    def from_json(cls, path: Path) -> MacroLibrary:
        """Load a JSON list of macro objects."""
        with open(path, encoding="utf-8") as f:
            items = json.load(f)
        if not isinstance(items, list):
            raise ValueError(f"{path}: expected a list of macros")
        return cls([_macro_from_dict(item) for item in items])


def _macro_from_dict(item: dict[str, Any]) -> Macro:
    table = tuple(
        TableEntry(int(e.get("weight", 1)), str(e.get("value", "")))
        for e in item.get("table", [])
    )
    actor_id = item.get("actor_id")
    return Macro(
        label=str(item["label"]),
        type=str(item.get("type", CUSTOM)),
        content=str(item.get("content", "")),
        table=table,
        scope=str(item.get("scope", GLOBAL)),
        actor_id=None if actor_id is None else str(actor_id),
    )


# ---------------------------------------------------------------------------
# Actor data tags
# ---------------------------------------------------------------------------


def flatten_actor(data: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested actor data into dotted paths: ``{"class1": {"level": 3}}`` -> ``class1.level``."""
    result: dict[str, str] = {}
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten_actor(value, path))
        elif isinstance(value, (list, tuple)):
            result.update(flatten_actor({str(i): v for i, v in enumerate(value)}, path))
        elif value is not None:
            result[path] = format_number(value) if isinstance(value, float) else str(value)
    return result


def substitute_actor_data(message: str, values: Mapping[str, str]) -> str:
    """Replace ``{{path}}`` tags naming known actor data; leave the rest alone."""

    def _sub(m: re.Match[str]) -> str:
        name = m.group(1).strip()
        return values.get(name, m.group(0))

    return ACTOR_DATA_RE.sub(_sub, message)
