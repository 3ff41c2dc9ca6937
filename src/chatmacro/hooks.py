"""Named hook points that let host code rewrite the message between stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

PARSE_BEGIN = "parse_macros_begin"
PARSE_AFTER_PROMPTS = "parse_macros_after_prompts"
PARSE_END = "parse_macros_end"

Handler = Callable[..., Any]


@dataclass
class HookRegistry:
    """Handlers by hook name, called in registration order."""

    _handlers: dict[str, list[Handler]] = field(default_factory=dict)

    def on(self, name: str, fn: Handler) -> None:
        self._handlers.setdefault(name, []).append(fn)

    def off(self, name: str, fn: Handler) -> None:
        handlers = self._handlers.get(name, [])
        if fn in handlers:
            handlers.remove(fn)

    def call_all_values(self, name: str, initial: Any, *args: Any) -> Any:
        """Fold initial through every handler for name.

        Each handler gets the current value plus args; a falsy return keeps
        the current value.
        """
        handlers = self._handlers.get(name)
        if not handlers:
            return initial
        logger.debug("calling %d handler(s) for %s", len(handlers), name)
        value = initial
        for fn in handlers:
            value = fn(value, *args) or value
        return value
