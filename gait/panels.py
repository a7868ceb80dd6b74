"""Per-file diff panels.

A panel never remembers on its own whether it is open: it asks the
expansion store. What it holds is the diff fetched for the current render
pass and the view the user picked.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

import structlog

from gait.errors import BackendError
from gait.expansion import ExpansionStateStore, scope_commit
from gait.layout import DiffRow, SplitView, to_split_view, to_unified_view
from gait.models import Commit, FileDiff
from gait.status import StatusReporter

logger = structlog.get_logger(__name__)


class DiffSource(Protocol):
    async def get_file_diff(self, commit_hash: str, file_path: str) -> FileDiff: ...


class DiffViewType(str, Enum):
    SPLIT = "split"
    UNIFIED = "unified"


@dataclass(frozen=True)
class PanelRender:
    """Everything needed to draw one panel."""

    scope_id: str
    path: str
    expanded: bool
    view: DiffViewType
    loading: bool = False
    wrap: bool = True
    error: str | None = None
    split: SplitView | None = None
    unified: list[DiffRow] | None = None


class DiffPanelController:
    """Open/closed state and rendering for one (scope, file) panel.

    Args:
        scope_id: Expansion scope (commit hash, ``uncommitted`` or tag scope).
        path: File path within the scope.
        store: Expansion store deciding whether the panel is open.
        source: Where diffs are fetched from.
        status: Status reporter for fetch failures.
        view: Initial layout.
    """

    def __init__(
        self,
        scope_id: str,
        path: str,
        *,
        store: ExpansionStateStore,
        source: DiffSource,
        status: StatusReporter,
        view: DiffViewType = DiffViewType.SPLIT,
    ) -> None:
        self.scope_id = scope_id
        self.path = path
        self._store = store
        self._source = source
        self._status = status
        self.view = view
        self.wrap = True
        self._diff: FileDiff | None = None
        self._error: str | None = None
        self._loading = False

    @property
    def expanded(self) -> bool:
        return self._store.is_expanded(self.scope_id, self.path)

    @property
    def diff(self) -> FileDiff | None:
        return self._diff

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    async def _ensure_diff(self) -> None:
        if self._diff is not None or self._loading:
            return
        self._loading = True
        try:
            diff = await self._source.get_file_diff(scope_commit(self.scope_id), self.path)
        except BackendError as exc:
            self._error = exc.message
            self._status.error(f"Failed to load diff: {exc.message}")
            return
        finally:
            self._loading = False
        self._diff = diff
        self._error = None
        logger.debug("Loaded diff", scope=self.scope_id, path=self.path, lines=diff.line_count)

    async def toggle(self) -> bool:
        """Flip the panel; fetches the diff when it opens. Returns the new state."""
        expanded = self._store.toggle(self.scope_id, self.path)
        if expanded:
            await self._ensure_diff()
        return expanded

    async def expand(self) -> None:
        if not self.expanded:
            self._store.set_expanded(self.scope_id, self.path, True)
        await self._ensure_diff()

    def collapse(self) -> None:
        self._store.set_expanded(self.scope_id, self.path, False)

    async def restore(self) -> bool:
        """Eagerly fetch the diff if the store says this panel is open."""
        if not self.expanded:
            return False
        await self._ensure_diff()
        return True

    def switch_view(self, view: DiffViewType | str) -> None:
        self.view = DiffViewType(view)

    def toggle_wrap(self) -> bool:
        self.wrap = not self.wrap
        return self.wrap

    def invalidate(self) -> None:
        """Forget the fetched diff; the next expand or restore re-fetches."""
        self._diff = None
        self._error = None

    def render(self) -> PanelRender:
        expanded = self.expanded
        render = PanelRender(
            scope_id=self.scope_id,
            path=self.path,
            expanded=expanded,
            view=self.view,
            loading=self._loading,
            wrap=self.wrap,
            error=self._error if expanded else None,
        )
        if not expanded or self._diff is None:
            return render
        if self.view == DiffViewType.SPLIT:
            return replace(render, split=to_split_view(self._diff))
        return replace(render, unified=to_unified_view(self._diff))


class CommitPanels:
    """The panels of one commit's files, in file order."""

    def __init__(
        self,
        commit: Commit,
        scope_id: str,
        *,
        store: ExpansionStateStore,
        source: DiffSource,
        status: StatusReporter,
    ) -> None:
        self.commit = commit
        self.scope_id = scope_id
        self._store = store
        self.panels = [
            DiffPanelController(
                scope_id, change.path, store=store, source=source, status=status
            )
            for change in commit.file_changes
        ]

    def __iter__(self):
        return iter(self.panels)

    def __len__(self) -> int:
        return len(self.panels)

    def get(self, path: str) -> DiffPanelController | None:
        for panel in self.panels:
            if panel.path == path:
                return panel
        return None

    async def restore_all(self) -> int:
        """Fetch diffs for every panel the store has open. Returns how many."""
        results = await asyncio.gather(*(panel.restore() for panel in self.panels))
        restored = sum(1 for opened in results if opened)
        if restored:
            logger.info("Restored expanded files", scope=self.scope_id, count=restored)
        return restored

    def collapse_all(self) -> int:
        return self._store.collapse_all(self.scope_id)

    def invalidate(self) -> None:
        for panel in self.panels:
            panel.invalidate()

    def switch_view(self, view: DiffViewType | str) -> None:
        for panel in self.panels:
            panel.switch_view(view)
