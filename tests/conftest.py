"""Shared pytest fixtures for gait-feed tests."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
import structlog

# Keep developer environment settings out of the tests.
for k in list(os.environ):
    if k.startswith("GAIT_"):
        os.environ.pop(k, None)

from gait.errors import BackendError
from gait.expansion import ExpansionStateStore
from gait.feed import CommitFeed
from gait.models import (
    Author,
    Branch,
    Commit,
    FileChange,
    FileDiff,
    Remote,
    RepositorySnapshot,
    Stash,
    Tag,
)
from gait.persistence import MemoryStore, Preferences
from gait.status import StatusReporter


@pytest.fixture
def anyio_backend() -> str:
    """Force the AnyIO pytest plugin to run tests under asyncio.

    The engine uses asyncio primitives directly (asyncio.Lock,
    asyncio.create_task), which do not run under trio.
    """
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_logging():
    """Detach handlers installed by configure_logging() during a test."""
    yield
    for name in (None, "httpx", "httpcore", "aiohttp"):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
                log.removeHandler(handler)
    structlog.reset_defaults()


def make_commit(i: int, message: str | None = None, *, author: str = "Ada", files=()) -> Commit:
    return Commit(
        hash=f"h{i:04d}",
        short_hash=f"h{i:04d}"[:7],
        message=message if message is not None else f"Commit {i}",
        author=Author(name=author, email=f"{author.lower()}@example.com"),
        date=f"2024-03-{(i % 28) + 1:02d}T12:00:00Z",
        file_changes=[FileChange(path=p) for p in files],
    )


def make_commits(n: int, start: int = 0) -> list[Commit]:
    return [make_commit(i) for i in range(start, start + n)]


async def wait_until(predicate, attempts: int = 200) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class FakeBackend:
    """In-memory git backend that records every call.

    ``fail`` holds method names that raise a BackendError. While ``gate`` is
    set to an unset asyncio.Event, page and diff fetches block on it.
    """

    def __init__(self, commits: list[Commit] | None = None) -> None:
        self.commits: list[Commit] = list(commits or [])
        self.tag_commits: dict[str, list[Commit]] = {}
        self.uncommitted: list[FileChange] = []
        self.branches = [Branch(name="main", is_current=True)]
        self.tags = [Tag(name="v1.0")]
        self.stashes: list[Stash] = []
        self.remotes = [Remote(name="origin")]
        self.diffs: dict[tuple[str, str], FileDiff] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, str] = {}
        self.gate: asyncio.Event | None = None

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise BackendError("HTTP_ERROR", self.fail[name], 500)

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    # Reads

    async def get_all_data(self, limit: int) -> RepositorySnapshot:
        self._record("get_all_data", limit)
        await self._wait()
        return RepositorySnapshot(
            commits=self.commits[:limit],
            branches=self.branches,
            tags=self.tags,
            stashes=self.stashes,
            remotes=self.remotes,
            uncommitted_changes=self.uncommitted,
            has_more=len(self.commits) > limit,
        )

    async def get_commits(self, limit: int, offset: int) -> list[Commit]:
        self._record("get_commits", limit, offset)
        await self._wait()
        return self.commits[offset:offset + limit]

    async def get_commits_html(self, limit: int, offset: int) -> str:
        self._record("get_commits_html", limit, offset)
        await self._wait()
        return f"<ul data-offset='{offset}'></ul>"

    async def get_commits_by_tag(self, tag: str, limit: int, offset: int) -> list[Commit]:
        self._record("get_commits_by_tag", tag, limit, offset)
        await self._wait()
        return self.tag_commits.get(tag, [])[offset:offset + limit]

    async def get_commits_by_tag_html(self, tag: str, limit: int, offset: int) -> str:
        self._record("get_commits_by_tag_html", tag, limit, offset)
        await self._wait()
        return f"<ul data-tag='{tag}' data-offset='{offset}'></ul>"

    async def get_commit(self, commit_hash: str) -> Commit:
        self._record("get_commit", commit_hash)
        for commit in self.commits + [c for cs in self.tag_commits.values() for c in cs]:
            if commit.hash == commit_hash:
                return commit
        raise BackendError("HTTP_ERROR", "commit not found", 404)

    async def get_file_diff(self, commit_hash: str, file_path: str) -> FileDiff:
        self._record("get_file_diff", commit_hash, file_path)
        await self._wait()
        return self.diffs.get((commit_hash, file_path), FileDiff(path=file_path))

    async def get_uncommitted_changes(self) -> list[FileChange]:
        self._record("get_uncommitted_changes")
        return list(self.uncommitted)

    async def get_branches(self) -> list[Branch]:
        self._record("get_branches")
        return list(self.branches)

    async def get_tags(self) -> list[Tag]:
        self._record("get_tags")
        return list(self.tags)

    async def get_stashes(self) -> list[Stash]:
        self._record("get_stashes")
        return list(self.stashes)

    async def get_remotes(self) -> list[Remote]:
        self._record("get_remotes")
        return list(self.remotes)

    # Mutations

    async def checkout_branch(self, branch: str) -> dict:
        self._record("checkout_branch", branch)
        await self._wait()
        return {"message": f"Switched to {branch}"}

    async def stage_file(self, file_path: str) -> dict:
        self._record("stage_file", file_path)
        return {}

    async def delete_tag(self, tag: str) -> dict:
        self._record("delete_tag", tag)
        return {}

    async def aclose(self) -> None:
        self._record("aclose")


class FakeChannel:
    """Push channel that replays scripted connections.

    Each entry of ``sessions`` is either a list of frames delivered on one
    connection or an exception raised when connecting.
    """

    def __init__(self, sessions: list | None = None) -> None:
        self.sessions = list(sessions or [])
        self.connects = 0
        self.idle = asyncio.Event()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncIterator[str]]:
        self.connects += 1
        if not self.sessions:
            # Nothing scripted: stay connected until cancelled.
            self.idle.set()
            await asyncio.Event().wait()
        session = self.sessions.pop(0)
        if isinstance(session, BaseException):
            raise session

        async def frames() -> AsyncIterator[str]:
            for frame in session:
                yield frame

        yield frames()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(make_commits(5))


@pytest.fixture
def storage() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def preferences(storage: MemoryStore) -> Preferences:
    return Preferences(storage)


@pytest.fixture
def expansion(storage: MemoryStore) -> ExpansionStateStore:
    store = ExpansionStateStore(storage, gc_threshold=20)
    store.hydrate()
    return store


@pytest.fixture
def status() -> StatusReporter:
    return StatusReporter()


@pytest.fixture
def make_feed(backend, expansion, preferences, status):
    def _make(page_limit: int = 2, use_ssr: bool = False, client=None) -> CommitFeed:
        return CommitFeed(
            client or backend,
            expansion,
            preferences,
            status,
            page_limit=page_limit,
            use_ssr=use_ssr,
        )

    return _make
