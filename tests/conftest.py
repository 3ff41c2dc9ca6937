"""Shared test fixtures and helpers."""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from chatmacro.lexer import tokenize
from chatmacro.prompts import ChoicePrompt, PromptMemory, PromptOption
from chatmacro.store import MemorySettingsStore
from chatmacro.tokens import Token, TokenType

# Marker: keep whatever the prompt preselected
_KEEP = object()


class ScriptedProvider:
    """Input provider answering from fixed scripts and recording every request.

    ``text`` maps a query to its typed answer (None cancels); unknown queries
    take the default. ``choices`` maps a query to the labels to check (None
    dismisses); unknown queries keep the preselection.
    """

    def __init__(
        self,
        text: dict[str, str | None] | None = None,
        choices: dict[str, list[str] | None] | None = None,
    ) -> None:
        self.text = dict(text or {})
        self.choices = dict(choices or {})
        self.text_calls: list[tuple[str, str]] = []
        self.choice_calls: list[ChoicePrompt] = []

    def request_text(self, query: str, default: str) -> str | None:
        self.text_calls.append((query, default))
        return self.text.get(query, default)

    async def request_choice(self, prompt: ChoicePrompt) -> list[PromptOption] | None:
        self.choice_calls.append(prompt)
        labels = self.choices.get(prompt.query, _KEEP)
        if labels is None:
            return None
        if labels is _KEEP:
            return [o for o in prompt.options if o.selected]
        return [o for o in prompt.options if o.label in labels]


class FixedDice:
    """Die source that always rolls the same face, capped at the die size."""

    def __init__(self, value: int) -> None:
        self.value = value

    def randint(self, a: int, b: int) -> int:
        return max(a, min(self.value, b))


class SequenceDice:
    """Die source that replays a fixed sequence of results."""

    def __init__(self, values: Iterable[int]) -> None:
        self.values = list(values)
        self.calls = 0

    def randint(self, a: int, b: int) -> int:
        value = self.values[self.calls]
        self.calls += 1
        return value


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str, legacy_math: bool = False) -> list[Token]:
        tokens = tokenize(source, legacy_math)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def memory(store: MemorySettingsStore) -> PromptMemory:
    return PromptMemory(store)


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"
