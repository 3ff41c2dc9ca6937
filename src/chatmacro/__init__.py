"""Inline macro and dice-text interpreter for virtual-tabletop chat messages."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chatmacro.prompts import InputProvider

__version__ = "0.1.0"


async def parse(
    message: str,
    provider: InputProvider,
    actor: Mapping[str, Any] | None = None,
    tooltips: bool = False,
    **options: Any,
) -> str:
    """Resolve prompts, evaluate rolls and substitute references in one message."""
    from chatmacro.pipeline import MacroParser

    parser = MacroParser(provider, **options)
    return await parser.parse(message, actor, tooltips)
