"""Pydantic models for backend payloads and feed state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNCOMMITTED_SCOPE = "uncommitted"


class _WireModel(BaseModel):
    """Immutable record parsed from the backend's camelCase JSON."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Author(_WireModel):
    name: str = ""
    email: str = ""


class FileStatus(str, Enum):
    """Change status of a file within a commit or the working tree."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    UNTRACKED = "untracked"
    STAGED = "staged"
    UNSTAGED = "unstaged"


_STATUS_CODES = {
    "A": FileStatus.ADDED,
    "M": FileStatus.MODIFIED,
    "D": FileStatus.DELETED,
    "R": FileStatus.RENAMED,
    "C": FileStatus.COPIED,
    "?": FileStatus.UNTRACKED,
    "??": FileStatus.UNTRACKED,
}


class FileChange(_WireModel):
    """A changed file, scoped to a commit or to the uncommitted pseudo-commit."""

    path: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    old_path: str | None = Field(default=None, alias="oldPath")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            code = value.strip()
            if code.upper() in _STATUS_CODES:
                return _STATUS_CODES[code.upper()]
            # git reports renames/copies with a similarity score, e.g. R087.
            if code[:1].upper() in ("R", "C") and code[1:].isdigit():
                return _STATUS_CODES[code[:1].upper()]
            return code.lower()
        return value


class Commit(_WireModel):
    """Immutable commit record. Identity is the full hash."""

    hash: str
    short_hash: str = Field(default="", alias="shortHash")
    message: str = ""
    author: Author = Field(default_factory=Author)
    date: datetime | None = None
    parent_hashes: list[str] = Field(default_factory=list, alias="parents")
    refs: list[str] = Field(default_factory=list)
    file_changes: list[FileChange] = Field(default_factory=list, alias="fileChanges")
    is_uncommitted: bool = Field(default=False, alias="isUncommitted")

    @field_validator("parent_hashes", "refs", "file_changes", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    @property
    def display_hash(self) -> str:
        return self.short_hash or self.hash[:7]

    @property
    def subject(self) -> str:
        """First line of the commit message."""
        return self.message.split("\n", 1)[0]


_LINE_MARKERS = {"context": " ", "addition": "+", "deletion": "-"}


class DiffLine(_WireModel):
    type: Literal["context", "addition", "deletion"]
    content: str = ""

    @property
    def marker(self) -> str:
        return _LINE_MARKERS[self.type]

    @property
    def text(self) -> str:
        """Line content without its leading diff marker, if it carries one."""
        if self.content.startswith(self.marker):
            return self.content[1:]
        return self.content


class DiffHunk(_WireModel):
    """Contiguous block of a diff sharing one old/new starting line pair."""

    header: str = ""
    old_start: int = Field(default=0, alias="oldStart")
    old_lines: int = Field(default=0, alias="oldLines")
    new_start: int = Field(default=0, alias="newStart")
    new_lines: int = Field(default=0, alias="newLines")
    lines: list[DiffLine] = Field(default_factory=list)

    @field_validator("lines", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class FileDiff(_WireModel):
    path: str = ""
    old_path: str | None = Field(default=None, alias="oldPath")
    status: str = ""
    additions: int = 0
    deletions: int = 0
    hunks: list[DiffHunk] = Field(default_factory=list)

    @field_validator("hunks", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    @property
    def line_count(self) -> int:
        return sum(len(hunk.lines) for hunk in self.hunks)


class Branch(_WireModel):
    name: str
    hash: str = ""
    is_remote: bool = Field(default=False, alias="isRemote")
    is_current: bool = Field(default=False, alias="isCurrent")
    upstream: str | None = None


class Tag(_WireModel):
    name: str
    hash: str = ""
    type: str = "lightweight"
    message: str | None = None
    target_hash: str | None = Field(default=None, alias="targetHash")


class Stash(_WireModel):
    index: int
    message: str = ""
    branch: str = ""
    hash: str = ""
    date: datetime | None = None


class Remote(_WireModel):
    name: str
    fetch_url: str = Field(default="", alias="fetchUrl")
    push_url: str = Field(default="", alias="pushUrl")


class RepositorySnapshot(_WireModel):
    """Everything the batched ``/api/all`` endpoint returns for the first page."""

    commits: list[Commit] = Field(default_factory=list)
    branches: list[Branch] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    stashes: list[Stash] = Field(default_factory=list)
    remotes: list[Remote] = Field(default_factory=list)
    uncommitted_changes: list[FileChange] = Field(
        default_factory=list, alias="uncommittedChanges"
    )
    has_more: bool = Field(default=False, alias="hasMore")

    @field_validator(
        "commits", "branches", "tags", "stashes", "remotes", "uncommitted_changes",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class CommitPage(BaseModel):
    """One page of commits, optionally with its server-rendered markup."""

    commits: list[Commit]
    html: str | None = None
    strategy: str = "json"


# ---------------------------------------------------------------------------
# Feed state
# ---------------------------------------------------------------------------


class FeedModeKind(str, Enum):
    NORMAL = "normal"
    TAG = "tag"
    SEARCH = "search"


class FeedMode(BaseModel):
    """Browsing mode. Exactly one is active at a time."""

    model_config = ConfigDict(frozen=True)

    kind: FeedModeKind = FeedModeKind.NORMAL
    tag: str | None = None
    query: str | None = None

    @classmethod
    def normal(cls) -> FeedMode:
        return cls()

    @classmethod
    def for_tag(cls, tag: str) -> FeedMode:
        return cls(kind=FeedModeKind.TAG, tag=tag)

    @classmethod
    def for_search(cls, query: str) -> FeedMode:
        return cls(kind=FeedModeKind.SEARCH, query=query)

    @property
    def is_normal(self) -> bool:
        return self.kind == FeedModeKind.NORMAL

    @property
    def is_tag(self) -> bool:
        return self.kind == FeedModeKind.TAG

    @property
    def is_search(self) -> bool:
        return self.kind == FeedModeKind.SEARCH


class FeedCursor(BaseModel):
    """Pagination cursor, mutated in place by every load and mode switch."""

    offset: int = 0
    limit: int = 50
    has_more: bool = True
    mode: FeedMode = Field(default_factory=FeedMode.normal)

    def reset(self, mode: FeedMode) -> None:
        self.offset = 0
        self.has_more = True
        self.mode = mode


class ErrorDetail(BaseModel):
    """Structured error payload surfaced to the user."""
    code: str
    message: str
    details: dict | None = None
