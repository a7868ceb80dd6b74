"""Durable record of which file diff panels are open.

A key is ``(scope_id, path)`` where the scope is a commit hash, the
``uncommitted`` token, or a tag-qualified ``<hash>@<tag>`` scope. The store
is the single source of truth for "is this panel expanded"; panels render
from it, never the other way round.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from gait.models import UNCOMMITTED_SCOPE
from gait.persistence import KeyValueStore, StorageKey
from gait.settings import settings

logger = structlog.get_logger(__name__)

TAG_SCOPE_SEPARATOR = "@"


def tag_scope(commit_hash: str, tag: str) -> str:
    """Scope for a commit viewed through tag mode."""
    return f"{commit_hash}{TAG_SCOPE_SEPARATOR}{tag}"


def scope_commit(scope_id: str) -> str:
    """Commit hash (or uncommitted token) a scope refers to."""
    return scope_id.split(TAG_SCOPE_SEPARATOR, 1)[0]


@dataclass(frozen=True, order=True)
class ExpansionKey:
    scope_id: str
    path: str


def _parse_entry(entry: object) -> ExpansionKey | None:
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        scope, path = entry
        if isinstance(scope, str) and isinstance(path, str) and scope and path:
            return ExpansionKey(scope, path)
        return None
    if isinstance(entry, dict):
        scope, path = entry.get("scope"), entry.get("path")
        if isinstance(scope, str) and isinstance(path, str) and scope and path:
            return ExpansionKey(scope, path)
        return None
    if isinstance(entry, str) and "-" in entry:
        # Legacy "<scope>-<path>" entries; hashes and the uncommitted token
        # never contain a dash, so the first one separates the two parts.
        scope, path = entry.split("-", 1)
        if scope and path:
            return ExpansionKey(scope, path)
    return None


def decode_keys(raw: str | None) -> set[ExpansionKey]:
    """Decode a persisted key set. Anything unreadable counts as empty."""
    if not raw:
        return set()
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Corrupt expansion state, treating as empty")
        return set()
    if not isinstance(data, list):
        logger.warning("Unexpected expansion state shape, treating as empty")
        return set()
    keys: set[ExpansionKey] = set()
    for entry in data:
        key = _parse_entry(entry)
        if key is not None:
            keys.add(key)
    return keys


def encode_keys(keys: Iterable[ExpansionKey]) -> str:
    return json.dumps([[k.scope_id, k.path] for k in sorted(keys)])


class ExpansionStateStore:
    """Set of expanded (scope, path) keys, flushed after every mutation.

    Every mutation reads the full persisted snapshot, applies its change and
    writes the result back, so a restore-on-load and a user toggle landing
    on the same tick cannot drop each other's updates.

    Args:
        storage: Key-value store holding the snapshot.
        gc_threshold: Loaded-window size below which GC never evicts.
    """

    def __init__(self, storage: KeyValueStore, *, gc_threshold: int | None = None) -> None:
        self._storage = storage
        self._gc_threshold = settings.gc_threshold() if gc_threshold is None else gc_threshold
        self._keys: set[ExpansionKey] = set()
        self._hydrated = False

    @property
    def gc_threshold(self) -> int:
        return self._gc_threshold

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    def _read_snapshot(self) -> set[ExpansionKey]:
        return decode_keys(self._storage.get(StorageKey.EXPANDED_FILES.value))

    def _mutate(self, change: Callable[[set[ExpansionKey]], None]) -> None:
        snapshot = self._read_snapshot()
        change(snapshot)
        self._keys = snapshot
        self._storage.set(StorageKey.EXPANDED_FILES.value, encode_keys(snapshot))

    def hydrate(self) -> int:
        """Load the persisted snapshot. Returns the number of keys restored."""
        self._keys = self._read_snapshot()
        self._hydrated = True
        logger.debug("Hydrated expansion state", keys=len(self._keys))
        return len(self._keys)

    def keys(self) -> set[ExpansionKey]:
        return set(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def is_expanded(self, scope_id: str, path: str) -> bool:
        return ExpansionKey(scope_id, path) in self._keys

    def paths_for(self, scope_id: str) -> list[str]:
        return sorted(k.path for k in self._keys if k.scope_id == scope_id)

    def set_expanded(self, scope_id: str, path: str, expanded: bool) -> None:
        key = ExpansionKey(scope_id, path)

        def change(snapshot: set[ExpansionKey]) -> None:
            if expanded:
                snapshot.add(key)
            else:
                snapshot.discard(key)

        self._mutate(change)

    def toggle(self, scope_id: str, path: str) -> bool:
        """Flip a key and return the new expanded state.

        The flip is decided against the in-memory view the user is looking
        at, then applied to the durable snapshot.
        """
        expanded = not self.is_expanded(scope_id, path)
        self.set_expanded(scope_id, path, expanded)
        return expanded

    def collapse_all(self, scope_id: str) -> int:
        """Remove every key of a scope. Returns the number removed."""
        removed: list[ExpansionKey] = []

        def change(snapshot: set[ExpansionKey]) -> None:
            for key in [k for k in snapshot if k.scope_id == scope_id]:
                snapshot.discard(key)
                removed.append(key)

        self._mutate(change)
        return len(removed)

    def garbage_collect(self, loaded_scope_ids: Iterable[str]) -> int:
        """Evict keys whose scope is no longer in the loaded window.

        Does nothing while the window is smaller than the threshold: a key
        for a commit that has not been paged in yet is not stale. Keys whose
        scope, or the commit behind a tag-qualified scope, is loaded are
        always kept. The uncommitted scope is never evicted.
        """
        loaded = set(loaded_scope_ids)
        if len(loaded) < self._gc_threshold:
            return 0
        loaded_commits = {scope_commit(scope) for scope in loaded}

        def is_stale(key: ExpansionKey) -> bool:
            if key.scope_id in loaded or key.scope_id == UNCOMMITTED_SCOPE:
                return False
            return scope_commit(key.scope_id) not in loaded_commits

        if not any(is_stale(k) for k in self._keys | self._read_snapshot()):
            return 0

        removed: list[ExpansionKey] = []

        def change(snapshot: set[ExpansionKey]) -> None:
            for key in [k for k in snapshot if is_stale(k)]:
                snapshot.discard(key)
                removed.append(key)

        self._mutate(change)
        if removed:
            logger.info("Evicted stale expansion keys", count=len(removed), loaded=len(loaded))
        return len(removed)

    # Serialization

    def to_json(self) -> str:
        return encode_keys(self._keys)

    @classmethod
    def from_json(
        cls, raw: str, storage: KeyValueStore, *, gc_threshold: int | None = None
    ) -> ExpansionStateStore:
        """Build a store whose storage is seeded with a serialized snapshot."""
        storage.set(StorageKey.EXPANDED_FILES.value, encode_keys(decode_keys(raw)))
        store = cls(storage, gc_threshold=gc_threshold)
        store.hydrate()
        return store
