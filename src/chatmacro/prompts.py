"""Prompt tags: ``?{...}`` resolution with memoized answers, and ``?{:label}`` references.

Tag forms::

    ?{Query}                                  free text, empty default
    ?{Query|default}                          free text with a default
    ?{Query|label,value|label,value}          single choice (list)
    ?{[list]Query|label,value|...}            single choice
    ?{[radio]Query|label,value|...}           single choice, radio buttons
    ?{[checkbox|delim]Query|label,value|...}  multiple choice, joined by delim
    ?{:label|index}                           value of an earlier selection

A query answered once in a run is answered the same way every time it
appears again. Choices (not free text) are also remembered across runs and
offered as the preselection next time.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Protocol

from chatmacro.store import SettingsStore

logger = logging.getLogger(__name__)

LIST = "list"
CHECKBOX = "checkbox"
RADIO = "radio"

DEFAULT_DELIMITER = ", "

# Actor data tags may appear inside labels and values
_ACTOR = r"\{\{[^}]+\}\}"
_CHAR = rf"(?:[^|{{}}]|{_ACTOR})"
_LABEL_CHAR = rf"(?:[^,{{}}|]|{_ACTOR})"
_OPTION = rf"{_LABEL_CHAR}+,{_CHAR}+"

# A balanced ``?{...}`` span, prompt or reference; found in linear time
PROMPT_SPAN_RE = re.compile(rf"\?\{{(?:[^{{}}]|{_ACTOR})*\}}")

# Grammar of one prompt tag, matched against a single span
PROMPT_RE = re.compile(
    r"\?\{(?!:)"
    r"(?:\[(?P<list_type>list|checkbox|radio)(?P<has_delimiter>\|(?P<delimiter>[^\]]*))?\])?"
    rf"(?P<query>{_CHAR}+)"
    r"(?:\|"
    rf"(?P<options>{_OPTION}(?:\|{_OPTION})*\|?)?"
    rf"(?P<default>(?:[^{{}}]|{_ACTOR})+)?"
    r")?"
    r"\}",
    re.IGNORECASE,
)

PROMPT_REF_RE = re.compile(
    rf"\?\{{:(?P<query>[^|}}]+)(?:\|(?P<index>(?:[^{{}}]|{_ACTOR})+)?)?\}}"
)

# Substitutions per run before resolution gives up on answers that keep
# producing new tags
MAX_SUBSTITUTIONS = 1000


@dataclass(frozen=True, slots=True)
class PromptOption:
    """One ``label,value`` choice; ``selected`` carries the remembered preselection."""

    label: str
    value: str
    selected: bool = False


@dataclass(frozen=True, slots=True)
class ChoicePrompt:
    """What an input provider is asked to render for a list/checkbox/radio tag."""

    query: str
    kind: str
    options: tuple[PromptOption, ...]


@dataclass(frozen=True, slots=True)
class PromptTag:
    """A parsed ``?{...}`` tag."""

    text: str
    kind: str
    query: str
    options: tuple[PromptOption, ...]
    default: str
    delimiter: str

    @property
    def is_choice(self) -> bool:
        return bool(self.options)


@dataclass
class PromptResult:
    """Final message of the prompt stage and the Selection Map it built."""

    message: str
    references: dict[str, list[str]] = field(default_factory=dict)


class InputProvider(Protocol):
    """Asks the user for prompt answers."""

    def request_text(self, query: str, default: str) -> str | None:
        """Return the typed answer, or None when the prompt was cancelled."""
        ...

    async def request_choice(self, prompt: ChoicePrompt) -> list[PromptOption] | None:
        """Return the checked options, or None when dismissed without confirming."""
        ...


# ---------------------------------------------------------------------------
# Cross-run memory of selections
# ---------------------------------------------------------------------------


class PromptMemory:
    """Remembered selections keyed by literal tag text, persisted as one JSON blob."""

    KEY = "promptOptionsMemory"

    def __init__(self, store: SettingsStore, namespace: str = "chatmacro") -> None:
        self._store = store
        self._namespace = namespace
        self._data: dict[str, dict[str, str]] = {}
        raw = store.get(namespace, self.KEY)
        if raw:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                logger.warning("discarding unreadable prompt memory: %s", exc)
            else:
                if isinstance(data, dict):
                    self._data = data

    def recall(self, tag: str, name: str) -> str | None:
        return self._data.get(tag, {}).get(name)

    def remember(self, tag: str, name: str, value: str) -> None:
        self._data.setdefault(tag, {})[name] = value

    def forget(self, tag: str, name: str) -> None:
        self._data.get(tag, {}).pop(name, None)

    def flush(self) -> None:
        self._store.set(self._namespace, self.KEY, json.dumps(self._data))


# ---------------------------------------------------------------------------
# Tag parsing
# ---------------------------------------------------------------------------


def find_prompt_tag(message: str, pos: int = 0) -> re.Match[str] | None:
    """First well-formed prompt tag at or after pos, as a PROMPT_RE match."""
    while True:
        span = PROMPT_SPAN_RE.search(message, pos)
        if span is None:
            return None
        m = PROMPT_RE.fullmatch(message, span.start(), span.end())
        if m is not None:
            return m
        pos = span.start() + 2


def parse_prompt_tag(m: re.Match[str]) -> PromptTag:
    """Build a PromptTag from a PROMPT_RE match."""
    kind = (m.group("list_type") or LIST).lower()
    if m.group("has_delimiter") is not None:
        delimiter = m.group("delimiter")
    else:
        delimiter = DEFAULT_DELIMITER

    options: list[PromptOption] = []
    for item in (m.group("options") or "").split("|"):
        if not item:
            continue
        label, _, value = item.partition(",")
        options.append(PromptOption(label.strip(), value.strip()))

    return PromptTag(
        text=m.group(0),
        kind=kind,
        query=m.group("query").strip(),
        options=tuple(options),
        default=(m.group("default") or "").strip(),
        delimiter=delimiter,
    )


# ---------------------------------------------------------------------------
# Stage 1: prompt resolution
# ---------------------------------------------------------------------------


async def resolve_prompts(
    message: str,
    provider: InputProvider,
    memory: PromptMemory,
    parsed: dict[str, list[str]] | None = None,
) -> PromptResult:
    """Answer every prompt tag in message, one at a time, first tag first.

    Each substitution can complete or create a tag, so the search restarts
    from the beginning after every answer. An answer that reproduces its own
    tag is left in place. Remembered selections are persisted at the end.
    """
    if parsed is None:
        parsed = {}
    pos = 0
    for _ in range(MAX_SUBSTITUTIONS):
        m = find_prompt_tag(message, pos)
        if m is None:
            break

        tag = parse_prompt_tag(m)
        if tag.is_choice:
            replacement = await _resolve_choice(tag, provider, memory, parsed)
        else:
            replacement = _resolve_text(tag, provider, parsed)
        logger.debug("prompt %r -> %r", tag.query, replacement)
        message = message[: m.start()] + replacement + message[m.end() :]
        pos = m.end() if replacement == tag.text else 0
    else:
        logger.warning("gave up resolving prompts after %d substitutions", MAX_SUBSTITUTIONS)

    memory.flush()
    return PromptResult(message, parsed)


def _resolve_text(tag: PromptTag, provider: InputProvider, parsed: dict[str, list[str]]) -> str:
    if tag.query in parsed:
        return ",".join(parsed[tag.query])
    answer = provider.request_text(tag.query, tag.default) or ""
    parsed[tag.query] = [answer]
    return answer


async def _resolve_choice(
    tag: PromptTag,
    provider: InputProvider,
    memory: PromptMemory,
    parsed: dict[str, list[str]],
) -> str:
    if tag.query in parsed:
        return tag.delimiter.join(parsed[tag.query])

    prompt = ChoicePrompt(tag.query, tag.kind, _preselect(tag, memory))
    chosen = await provider.request_choice(prompt)
    if chosen is None:
        parsed[tag.query] = [""]
        return ""

    if tag.kind == LIST:
        if not chosen:
            parsed[tag.query] = [""]
            return ""
        option = chosen[0]
        segments = option.value.split(",")
        memory.remember(tag.text, "value", option.value)
        parsed[option.label] = segments
        parsed[tag.query] = [segments[0]]
        return segments[0]

    if tag.kind == CHECKBOX:
        for option in tag.options:
            memory.forget(tag.text, option.label)

    selected: list[str] = []
    for option in chosen:
        name = option.label if tag.kind == CHECKBOX else tag.query
        segments = option.value.split(",")
        selected.append(segments[0])
        parsed[name] = segments
        memory.remember(tag.text, name, option.value)
    joined = tag.delimiter.join(selected)
    parsed[tag.query] = [joined]
    return joined


def _preselect(tag: PromptTag, memory: PromptMemory) -> tuple[PromptOption, ...]:
    """Mark the options chosen the last time this exact tag was answered."""
    options: list[PromptOption] = []
    for option in tag.options:
        if tag.kind == LIST:
            remembered = memory.recall(tag.text, "value")
        elif tag.kind == CHECKBOX:
            remembered = memory.recall(tag.text, option.label)
        else:
            remembered = memory.recall(tag.text, tag.query)
        options.append(replace(option, selected=remembered == option.value))
    return tuple(options)


# ---------------------------------------------------------------------------
# Stage 2: prompt references
# ---------------------------------------------------------------------------


def substitute_prompt_references(message: str, parsed: dict[str, list[str]]) -> str:
    """Replace ``?{:label|index}`` with the index-th value selected under label.

    Unknown labels and out-of-range indices become empty strings. Scanning
    resumes after each substitution.
    """
    pos = 0
    while True:
        m = PROMPT_REF_RE.search(message, pos)
        if m is None:
            return message

        values = parsed.get(m.group("query").strip())
        value = ""
        if values is not None:
            index = _index(m.group("index"))
            if 1 <= index <= len(values):
                value = values[index - 1]
        message = message[: m.start()] + value + message[m.end() :]
        pos = m.start() + len(value)


def _index(text: str | None) -> int:
    """1-based index option; missing or non-numeric means 1."""
    if text is None:
        return 1
    try:
        return int(text.strip())
    except ValueError:
        return 1
