"""Commit feed: the paginated, mode-aware list of loaded commits.

The feed owns the materialized commit window, the pagination cursor, the
browsing mode and the selected commit. Page loads are serialized through one
lock and stamped with the generation they were issued under, so a page that
lands after a mode switch is dropped instead of being appended to the wrong
list.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from gait.api.client import GitBackendClient
from gait.api.fallback import FallbackChain, FallbackResult, Strategy
from gait.errors import BackendError, FallbackExhaustedError
from gait.expansion import ExpansionStateStore, tag_scope
from gait.models import (
    UNCOMMITTED_SCOPE,
    Branch,
    Commit,
    CommitPage,
    FeedCursor,
    FeedMode,
    FileChange,
    Remote,
    RepositorySnapshot,
    Stash,
    Tag,
)
from gait.persistence import Preferences
from gait.search import DEFAULT_FILTERS, SearchFilters, filter_commits
from gait.settings import settings
from gait.status import StatusReporter

logger = structlog.get_logger(__name__)


def uncommitted_commit(changes: list[FileChange]) -> Commit:
    """Synthetic commit standing in for the working tree."""
    return Commit(
        hash=UNCOMMITTED_SCOPE,
        short_hash="",
        message="Uncommitted changes",
        file_changes=list(changes),
        is_uncommitted=True,
    )


@dataclass
class _SearchBase:
    """Window and cursor to return to when a search is cleared."""

    commits: list[Commit]
    cursor: FeedCursor
    html_fragments: list[str] = field(default_factory=list)


class CommitFeed:
    """Ordered, deduplicated commit window with normal/tag/search modes.

    Args:
        client: Git backend client.
        expansion: Expansion store, garbage-collected after normal-mode loads.
        preferences: Persisted preferences holding the remembered selection.
        status: Where user-visible status messages go.
        page_limit: Commits per page (defaults to GAIT_PAGE_LIMIT).
        use_ssr: Try the server-rendered page variant first.
    """

    def __init__(
        self,
        client: GitBackendClient,
        expansion: ExpansionStateStore,
        preferences: Preferences,
        status: StatusReporter,
        *,
        page_limit: int | None = None,
        use_ssr: bool | None = None,
    ) -> None:
        self._client = client
        self._expansion = expansion
        self._preferences = preferences
        self._status = status
        limit = page_limit if page_limit is not None else settings.page_limit()
        self.cursor = FeedCursor(limit=limit if limit > 0 else 50)
        self._ssr_enabled = settings.use_ssr() if use_ssr is None else use_ssr

        self._commits: list[Commit] = []
        self._hashes: set[str] = set()
        self._html_fragments: list[str] = []
        self._uncommitted: list[FileChange] = []
        self.branches: list[Branch] = []
        self.tags: list[Tag] = []
        self.stashes: list[Stash] = []
        self.remotes: list[Remote] = []

        self._search_base: _SearchBase | None = None
        self._search_filters: SearchFilters = DEFAULT_FILTERS
        self._search_results: list[Commit] = []

        self._selected: str | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def mode(self) -> FeedMode:
        return self.cursor.mode

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._lock.locked()

    @property
    def ssr_enabled(self) -> bool:
        return self._ssr_enabled

    @property
    def commits(self) -> list[Commit]:
        """The loaded commit window (the base window while searching)."""
        return list(self._commits)

    @property
    def uncommitted_changes(self) -> list[FileChange]:
        return list(self._uncommitted)

    @property
    def html(self) -> str:
        """Server-rendered markup for the loaded pages, when SSR produced it."""
        return "".join(self._html_fragments)

    @property
    def search_filters(self) -> SearchFilters:
        return self._search_filters

    @property
    def selected(self) -> str | None:
        return self._selected

    def _window_mode(self) -> FeedMode:
        if self.cursor.mode.is_search and self._search_base is not None:
            return self._search_base.cursor.mode
        return self.cursor.mode

    def entries(self) -> list[Commit]:
        """Rows currently visible, head first."""
        if self.cursor.mode.is_search:
            return list(self._search_results)
        rows = list(self._commits)
        if self.cursor.mode.is_normal and self._uncommitted:
            rows.insert(0, uncommitted_commit(self._uncommitted))
        return rows

    def is_loaded(self, commit_hash: str) -> bool:
        return any(commit.hash == commit_hash for commit in self.entries())

    def scope_for(self, commit_hash: str) -> str:
        """Expansion scope of a commit under the current mode."""
        if commit_hash == UNCOMMITTED_SCOPE:
            return UNCOMMITTED_SCOPE
        mode = self._window_mode()
        if mode.is_tag and mode.tag:
            return tag_scope(commit_hash, mode.tag)
        return commit_hash

    def loaded_scope_ids(self) -> set[str]:
        return {self.scope_for(commit.hash) for commit in self._commits}

    # ------------------------------------------------------------------
    # Internal state helpers
    # ------------------------------------------------------------------

    def _bump_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_stale(self, generation: int, what: str) -> bool:
        if generation == self._generation:
            return False
        logger.debug(
            "Discarding stale response",
            what=what,
            issued_generation=generation,
            current_generation=self._generation,
        )
        return True

    def _replace(self, commits: list[Commit], html: str | None = None) -> None:
        self._commits = []
        self._hashes = set()
        self._html_fragments = []
        self._append(commits, html)

    def _append(self, commits: list[Commit], html: str | None = None) -> int:
        added = 0
        for commit in commits:
            if commit.hash in self._hashes:
                continue
            self._hashes.add(commit.hash)
            self._commits.append(commit)
            added += 1
        if html:
            self._html_fragments.append(html)
        return added

    def _enter_mode(self, mode: FeedMode) -> int:
        """Switch modes synchronously and return the new generation."""
        generation = self._bump_generation()
        self.cursor.reset(mode)
        self._search_base = None
        self._search_results = []
        return generation

    def _collect_garbage(self) -> None:
        if self.cursor.mode.is_normal:
            self._expansion.garbage_collect(self.loaded_scope_ids())

    # ------------------------------------------------------------------
    # Fetch strategies
    # ------------------------------------------------------------------

    async def _fetch_batched(self) -> RepositorySnapshot:
        return await self._client.get_all_data(self.cursor.limit)

    async def _fetch_per_resource(self) -> RepositorySnapshot:
        commits, branches, tags, stashes, remotes, changes = await asyncio.gather(
            self._client.get_commits(self.cursor.limit, 0),
            self._client.get_branches(),
            self._client.get_tags(),
            self._client.get_stashes(),
            self._client.get_remotes(),
            self._client.get_uncommitted_changes(),
        )
        return RepositorySnapshot(
            commits=commits,
            branches=branches,
            tags=tags,
            stashes=stashes,
            remotes=remotes,
            uncommitted_changes=changes,
            has_more=len(commits) == self.cursor.limit,
        )

    def _initial_chain(self) -> FallbackChain[RepositorySnapshot]:
        return FallbackChain(
            "load_initial",
            [
                Strategy("batched", self._fetch_batched),
                Strategy("per-resource", self._fetch_per_resource),
            ],
        )

    async def _fetch_commits(self, mode: FeedMode, offset: int) -> list[Commit]:
        if mode.is_tag and mode.tag:
            return await self._client.get_commits_by_tag(mode.tag, self.cursor.limit, offset)
        return await self._client.get_commits(self.cursor.limit, offset)

    async def _fetch_html(self, mode: FeedMode, offset: int) -> str:
        if mode.is_tag and mode.tag:
            return await self._client.get_commits_by_tag_html(mode.tag, self.cursor.limit, offset)
        return await self._client.get_commits_html(self.cursor.limit, offset)

    def _page_chain(self, mode: FeedMode, offset: int) -> FallbackChain[CommitPage]:
        async def ssr() -> CommitPage:
            html = await self._fetch_html(mode, offset)
            commits = await self._fetch_commits(mode, offset)
            return CommitPage(commits=commits, html=html, strategy="ssr")

        async def json_only() -> CommitPage:
            return CommitPage(commits=await self._fetch_commits(mode, offset), strategy="json")

        strategies: list[Strategy[CommitPage]] = []
        if self._ssr_enabled:
            strategies.append(Strategy("ssr", ssr))
        strategies.append(Strategy("json", json_only))
        return FallbackChain("load_page", strategies)

    async def _run_page_chain(self, mode: FeedMode, offset: int) -> FallbackResult[CommitPage]:
        result = await self._page_chain(mode, offset).run()
        if self._ssr_enabled and result.failed("ssr"):
            self._ssr_enabled = False
            logger.warning("Server-rendered pages unavailable, using JSON for this session")
        return result

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_initial(self) -> bool:
        """Reset to normal mode and load the first page plus sidebar data.

        Returns True when the feed was (re)populated by this call.
        """
        generation = self._enter_mode(FeedMode.normal())
        async with self._lock:
            if self._is_stale(generation, "load_initial"):
                return False
            return await self._load_initial_locked(generation)

    async def _load_initial_locked(self, generation: int) -> bool:
        try:
            result = await self._initial_chain().run()
        except FallbackExhaustedError as exc:
            if self._is_stale(generation, "load_initial"):
                return False
            self._replace([])
            self._uncommitted = []
            self.cursor.has_more = False
            self._status.error(f"Failed to load data: {_describe(exc)}")
            return False
        if self._is_stale(generation, "load_initial"):
            return False

        snapshot = result.value
        self._replace(snapshot.commits)
        self._uncommitted = list(snapshot.uncommitted_changes)
        self.branches = list(snapshot.branches)
        self.tags = list(snapshot.tags)
        self.stashes = list(snapshot.stashes)
        self.remotes = list(snapshot.remotes)
        self.cursor.offset = len(snapshot.commits)
        self.cursor.has_more = snapshot.has_more or len(snapshot.commits) == self.cursor.limit

        logger.info(
            "Loaded initial page",
            strategy=result.strategy,
            commits=len(snapshot.commits),
            has_more=self.cursor.has_more,
        )
        suffix = " (fallback)" if result.failures else ""
        self._status.success(f"Data loaded successfully{suffix}")
        self._collect_garbage()
        self.restore_selection()
        return True

    async def load_more(self) -> bool:
        """Append the next page for the current mode.

        Dropped (returns False without a request) while another page load is
        in flight, when there is nothing more to load, or while searching.
        """
        if self._lock.locked():
            logger.debug("Page load already in flight, dropping load_more")
            return False
        if not self.cursor.has_more or self.cursor.mode.is_search:
            return False

        async with self._lock:
            if not self.cursor.has_more or self.cursor.mode.is_search:
                return False
            generation = self._generation
            mode = self.cursor.mode
            offset = self.cursor.offset
            try:
                result = await self._run_page_chain(mode, offset)
            except FallbackExhaustedError as exc:
                if not self._is_stale(generation, "load_more"):
                    self._status.error(f"Failed to load more commits: {_describe(exc)}")
                return False
            if self._is_stale(generation, "load_more"):
                return False

            page = result.value
            returned = len(page.commits)
            added = self._append(page.commits, page.html)
            self.cursor.offset += returned
            self.cursor.has_more = returned == self.cursor.limit
            logger.info(
                "Loaded page",
                mode=mode.kind.value,
                strategy=result.strategy,
                offset=offset,
                returned=returned,
                added=added,
            )
            if returned:
                self._status.success(f"Loaded {returned} more commits")
            else:
                self._status.success("All commits loaded")

            self._collect_garbage()
            if self._selected is None:
                remembered = self._preferences.selected_commit()
                if remembered and any(commit.hash == remembered for commit in page.commits):
                    self.restore_selection()
            return True

    # ------------------------------------------------------------------
    # Mode switches
    # ------------------------------------------------------------------

    async def enter_tag_mode(self, tag: str) -> bool:
        """Show only commits reachable from ``tag``.

        The selection is cleared: a commit selected in another mode may not
        be part of the tag's history.
        """
        generation = self._enter_mode(FeedMode.for_tag(tag))
        self.clear_selection()
        self._replace([])
        async with self._lock:
            if self._is_stale(generation, "enter_tag_mode"):
                return False
            try:
                result = await self._run_page_chain(self.cursor.mode, 0)
            except FallbackExhaustedError as exc:
                if not self._is_stale(generation, "enter_tag_mode"):
                    self.cursor.has_more = False
                    self._status.error(f"Failed to load commits for tag {tag}: {_describe(exc)}")
                return False
            if self._is_stale(generation, "enter_tag_mode"):
                return False

            page = result.value
            self._replace(page.commits, page.html)
            self.cursor.offset = len(page.commits)
            self.cursor.has_more = len(page.commits) == self.cursor.limit
            logger.info("Entered tag mode", tag=tag, commits=len(page.commits))
            self._status.success(f"Loaded commits for tag {tag}")
            return True

    async def enter_search_mode(self, query: str, filters: SearchFilters | None = None) -> list[Commit]:
        """Filter the loaded window; an empty query leaves search mode.

        The window and cursor of the mode being searched are kept aside and
        come back untouched when the search is cleared. A page load already
        in flight lands before the window is captured.
        """
        if not query.strip():
            self._leave_search()
            return self.entries()

        requested = self._generation
        async with self._lock:
            if self._is_stale(requested, "search"):
                return self.entries()
            if self._search_base is None:
                self._search_base = _SearchBase(
                    commits=list(self._commits),
                    cursor=self.cursor.model_copy(deep=True),
                    html_fragments=list(self._html_fragments),
                )
            self._bump_generation()
            self.cursor.reset(FeedMode.for_search(query))
            if filters is not None:
                self._search_filters = filters
            self._search_results = filter_commits(self._commits, query, self._search_filters)
            if self._selected is not None and not any(
                commit.hash == self._selected for commit in self._search_results
            ):
                # Hidden, not forgotten: the persisted selection stays.
                self._selected = None
            logger.info("Search applied", query=query, results=len(self._search_results))
            return list(self._search_results)

    async def search(self, query: str, filters: SearchFilters | None = None) -> list[Commit]:
        return await self.enter_search_mode(query, filters)

    def _leave_search(self) -> None:
        base = self._search_base
        if base is None:
            return
        self._bump_generation()
        self._search_base = None
        self._search_results = []
        self._commits = list(base.commits)
        self._hashes = {commit.hash for commit in self._commits}
        self._html_fragments = list(base.html_fragments)
        self.cursor.offset = base.cursor.offset
        self.cursor.limit = base.cursor.limit
        self.cursor.has_more = base.cursor.has_more
        self.cursor.mode = base.cursor.mode
        logger.info("Search cleared", mode=self.cursor.mode.kind.value, commits=len(self._commits))
        self.restore_selection()

    async def exit_to_normal_mode(self) -> bool:
        """Leave tag or search mode with a full reload of the normal history."""
        return await self.load_initial()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, commit_hash: str) -> bool:
        if not self.is_loaded(commit_hash):
            logger.warning("Cannot select commit that is not loaded", hash=commit_hash)
            return False
        self._selected = commit_hash
        self._preferences.save_selected_commit(commit_hash)
        return True

    def clear_selection(self) -> None:
        self._selected = None
        self._preferences.save_selected_commit(None)

    def restore_selection(self) -> str | None:
        """Re-select the remembered commit if it is currently loaded.

        A remembered commit that is not loaded leaves the selection empty;
        the remembered hash is kept so a later page can still restore it.
        """
        if self._selected is not None and self.is_loaded(self._selected):
            return self._selected
        self._selected = None
        remembered = self._preferences.selected_commit()
        if remembered and self.is_loaded(remembered):
            self._selected = remembered
            logger.debug("Restored selected commit", hash=remembered)
        return self._selected

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    async def fetch_details(self, commit_hash: str) -> Commit | None:
        """Commit with its file changes, or None after reporting the error."""
        if commit_hash == UNCOMMITTED_SCOPE:
            return uncommitted_commit(self._uncommitted)
        try:
            return await self._client.get_commit(commit_hash)
        except BackendError as exc:
            self._status.error(f"Failed to load commit details: {exc.message}")
            return None

    async def refresh_uncommitted(self) -> bool:
        try:
            changes = await self._client.get_uncommitted_changes()
        except BackendError as exc:
            self._status.error(f"Failed to load uncommitted changes: {exc.message}")
            return False
        self._uncommitted = list(changes)
        logger.debug("Refreshed uncommitted changes", count=len(changes))
        return True


def _describe(exc: FallbackExhaustedError) -> str:
    last = exc.last_error
    if isinstance(last, BackendError):
        return last.message
    return str(last) if last is not None else str(exc)
