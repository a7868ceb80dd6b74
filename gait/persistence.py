"""Persisted key-value surface for UI state.

Values are plain strings under fixed key names, the same contract a browser
key-value store offers, so the engine's persistence policy does not depend
on where the bytes end up.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import suppress
from enum import Enum
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class StorageKey(str, Enum):
    SELECTED_COMMIT = "gait_selected_commit"
    EXPANDED_FILES = "gait_expanded_files"
    PANEL_WIDTH = "gait_panel_width"
    SIDEBAR_WIDTH = "gait_sidebar_width"
    SIDEBAR_COLLAPSED = "gait_sidebar_collapsed"
    COLLAPSED_SECTIONS = "gait_collapsed_sections"
    COMMIT_INFO_COLLAPSED = "gait_commit_info_collapsed"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Key-value store backed by a single JSON object on disk.

    The file is re-read on every access and rewritten atomically on every
    write, so several stores pointed at the same path see each other's
    updates and the last writer wins.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable state file, starting fresh", path=str(self._path))
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(dict(sorted(data.items())), f, indent=2)
                f.write("\n")
            os.replace(tmp, self._path)
        except BaseException:
            with suppress(OSError):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class Preferences:
    """Typed accessors over the fixed-name keys that are not expansion state."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # Selected commit

    def selected_commit(self) -> str | None:
        value = self._store.get(StorageKey.SELECTED_COMMIT.value)
        return value or None

    def save_selected_commit(self, commit_hash: str | None) -> None:
        if commit_hash:
            self._store.set(StorageKey.SELECTED_COMMIT.value, commit_hash)
        else:
            self._store.remove(StorageKey.SELECTED_COMMIT.value)

    # Panel geometry, stored as percentages of the container width

    def _get_percentage(self, key: StorageKey) -> float | None:
        value = self._store.get(key.value)
        if value is None:
            return None
        try:
            pct = float(value)
        except ValueError:
            return None
        return pct if 0 < pct <= 100 else None

    def panel_width(self) -> float | None:
        return self._get_percentage(StorageKey.PANEL_WIDTH)

    def save_panel_width(self, percentage: float) -> None:
        self._store.set(StorageKey.PANEL_WIDTH.value, str(percentage))

    def sidebar_width(self) -> float | None:
        return self._get_percentage(StorageKey.SIDEBAR_WIDTH)

    def save_sidebar_width(self, percentage: float) -> None:
        self._store.set(StorageKey.SIDEBAR_WIDTH.value, str(percentage))

    # Collapse flags

    def _get_flag(self, key: StorageKey) -> bool:
        return self._store.get(key.value) == "true"

    def _set_flag(self, key: StorageKey, value: bool) -> None:
        self._store.set(key.value, "true" if value else "false")

    def sidebar_collapsed(self) -> bool:
        return self._get_flag(StorageKey.SIDEBAR_COLLAPSED)

    def save_sidebar_collapsed(self, collapsed: bool) -> None:
        self._set_flag(StorageKey.SIDEBAR_COLLAPSED, collapsed)

    def commit_info_collapsed(self) -> bool:
        return self._get_flag(StorageKey.COMMIT_INFO_COLLAPSED)

    def save_commit_info_collapsed(self, collapsed: bool) -> None:
        self._set_flag(StorageKey.COMMIT_INFO_COLLAPSED, collapsed)

    def collapsed_sections(self) -> set[str]:
        raw = self._store.get(StorageKey.COLLAPSED_SECTIONS.value)
        if not raw:
            return set()
        try:
            data = json.loads(raw)
        except ValueError:
            return set()
        if not isinstance(data, list):
            return set()
        return {str(item) for item in data}

    def set_section_collapsed(self, section: str, collapsed: bool) -> None:
        sections = self.collapsed_sections()
        if collapsed:
            sections.add(section)
        else:
            sections.discard(section)
        self._store.set(StorageKey.COLLAPSED_SECTIONS.value, json.dumps(sorted(sections)))
