"""Persistent key-value settings stores (namespace, key) -> JSON string."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    """Where process-wide settings such as remembered prompt selections live."""

    def get(self, namespace: str, key: str) -> str | None: ...

    def set(self, namespace: str, key: str, value: str) -> None: ...


@dataclass
class MemorySettingsStore:
    """Dict-backed store; nothing survives the process."""

    data: dict[str, dict[str, str]] = field(default_factory=dict)

    def get(self, namespace: str, key: str) -> str | None:
        return self.data.get(namespace, {}).get(key)

    def set(self, namespace: str, key: str, value: str) -> None:
        self.data.setdefault(namespace, {})[key] = value


@dataclass
class JsonFileSettingsStore:
    """One JSON object on disk: ``{namespace: {key: value}}``.

    A missing or unreadable file reads as empty. Writes go through a temp file in the same
    directory and an atomic replace.
    """

    path: Path

    def get(self, namespace: str, key: str) -> str | None:
        section = self._load().get(namespace)
        if not isinstance(section, dict):
            return None
        value = section.get(key)
        return None if value is None else str(value)

    def set(self, namespace: str, key: str, value: str) -> None:
        data = self._load()
        if not isinstance(data.get(namespace), dict):
            data[namespace] = {}
        data[namespace][key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def _load(self) -> dict[str, dict[str, str]]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as exc:
            logger.warning("ignoring unreadable settings file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return data
