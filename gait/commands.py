"""Repository mutations run as commands against the git backend.

A command either succeeds, in which case the feed is reloaded from scratch,
or fails, in which case the backend's message is shown as-is and nothing
local changes. Commands of one category never overlap: a second one
requested while the first is running is dropped.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from gait.api.client import GitBackendClient
from gait.errors import BackendError
from gait.feed import CommitFeed
from gait.models import ErrorDetail
from gait.status import StatusReporter

logger = structlog.get_logger(__name__)


class CommandCategory(str, Enum):
    BRANCH = "branch"
    COMMIT = "commit"
    FILE = "file"
    STASH = "stash"
    TAG = "tag"
    REMOTE = "remote"


class CommandRunner:
    def __init__(self, client: GitBackendClient, feed: CommitFeed, status: StatusReporter) -> None:
        self._client = client
        self._feed = feed
        self._status = status
        self._in_flight: set[CommandCategory] = set()
        self.last_error: ErrorDetail | None = None

    def is_running(self, category: CommandCategory) -> bool:
        return category in self._in_flight

    async def run(
        self,
        category: CommandCategory,
        action: Callable[[], Awaitable[dict]],
        *,
        progress: str,
        success: str,
    ) -> bool:
        """Run one command. Returns True on success (after the reload)."""
        if category in self._in_flight:
            self._status.info(f"{category.value.capitalize()} operation already in progress...")
            return False
        self._in_flight.add(category)
        try:
            self._status.info(progress)
            try:
                await action()
            except BackendError as exc:
                self.last_error = exc.detail()
                logger.warning(
                    "Command failed",
                    category=category.value,
                    code=exc.code,
                    status_code=exc.status_code,
                )
                self._status.error(exc.message)
                return False
            self.last_error = None
            self._status.success(success)
            await self._feed.load_initial()
            return True
        finally:
            self._in_flight.discard(category)

    # Branches

    async def checkout_branch(self, branch: str) -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.checkout_branch(branch),
            progress=f"Checking out {branch}...",
            success=f"Checked out {branch}",
        )

    async def create_branch(self, branch: str, start_point: str = "") -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.create_branch(branch, start_point),
            progress=f"Creating branch {branch}...",
            success=f"Branch {branch} created and checked out",
        )

    async def delete_branch(self, branch: str, force: bool = False) -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.delete_branch(branch, force),
            progress=f"Deleting branch {branch}...",
            success=f"Branch {branch} force deleted" if force else f"Branch {branch} deleted",
        )

    async def merge_branch(self, branch: str, no_fast_forward: bool = False) -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.merge_branch(branch, no_fast_forward),
            progress=f"Merging {branch}...",
            success=f"Branch {branch} merged successfully",
        )

    async def rename_branch(self, old_name: str, new_name: str) -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.rename_branch(old_name, new_name),
            progress=f"Renaming branch {old_name}...",
            success=f"Branch renamed from {old_name} to {new_name}",
        )

    async def reset_branch(self, commit_hash: str, reset_type: str = "mixed") -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.reset_branch(commit_hash, reset_type),
            progress=f"Resetting to {commit_hash[:7]}...",
            success=f"Branch reset to {commit_hash[:7]} ({reset_type})",
        )

    async def rebase_branch(self, target_branch: str, interactive: bool = False) -> bool:
        return await self.run(
            CommandCategory.BRANCH,
            lambda: self._client.rebase_branch(target_branch, interactive),
            progress=f"Rebasing onto {target_branch}...",
            success=f"Successfully rebased onto {target_branch}",
        )

    # Commits

    async def create_commit(self, message: str, *, amend: bool = False, signoff: bool = False) -> bool:
        return await self.run(
            CommandCategory.COMMIT,
            lambda: self._client.create_commit(message, amend=amend, signoff=signoff),
            progress="Amending commit..." if amend else "Creating commit...",
            success="Commit amended" if amend else "Commit created",
        )

    async def cherry_pick(self, commit_hash: str) -> bool:
        return await self.run(
            CommandCategory.COMMIT,
            lambda: self._client.cherry_pick(commit_hash),
            progress=f"Cherry-picking {commit_hash[:7]}...",
            success=f"Cherry-picked {commit_hash[:7]}",
        )

    async def revert_commit(self, commit_hash: str, no_commit: bool = False) -> bool:
        return await self.run(
            CommandCategory.COMMIT,
            lambda: self._client.revert_commit(commit_hash, no_commit),
            progress=f"Reverting {commit_hash[:7]}...",
            success=f"Reverted {commit_hash[:7]}",
        )

    # Working tree

    async def stage_file(self, path: str) -> bool:
        return await self.run(
            CommandCategory.FILE,
            lambda: self._client.stage_file(path),
            progress=f"Staging {path}...",
            success=f"Staged {path}",
        )

    async def unstage_file(self, path: str) -> bool:
        return await self.run(
            CommandCategory.FILE,
            lambda: self._client.unstage_file(path),
            progress=f"Unstaging {path}...",
            success=f"Unstaged {path}",
        )

    async def discard_file_changes(self, path: str) -> bool:
        return await self.run(
            CommandCategory.FILE,
            lambda: self._client.discard_file_changes(path),
            progress=f"Discarding changes in {path}...",
            success=f"Discarded changes in {path}",
        )

    # Stashes

    async def create_stash(self, message: str = "", include_untracked: bool = False) -> bool:
        return await self.run(
            CommandCategory.STASH,
            lambda: self._client.create_stash(message, include_untracked),
            progress="Stashing changes...",
            success="Changes stashed",
        )

    async def apply_stash(self, index: int) -> bool:
        return await self.run(
            CommandCategory.STASH,
            lambda: self._client.apply_stash(index),
            progress=f"Applying stash {index}...",
            success=f"Stash {index} applied successfully",
        )

    async def pop_stash(self, index: int) -> bool:
        return await self.run(
            CommandCategory.STASH,
            lambda: self._client.pop_stash(index),
            progress=f"Popping stash {index}...",
            success=f"Stash {index} popped successfully",
        )

    async def drop_stash(self, index: int) -> bool:
        return await self.run(
            CommandCategory.STASH,
            lambda: self._client.drop_stash(index),
            progress=f"Dropping stash {index}...",
            success=f"Stash {index} dropped successfully",
        )

    # Tags

    async def create_tag(
        self, tag: str, commit_hash: str = "", message: str = "", annotated: bool = False
    ) -> bool:
        return await self.run(
            CommandCategory.TAG,
            lambda: self._client.create_tag(tag, commit_hash, message, annotated),
            progress=f"Creating tag {tag}...",
            success=f"Tag {tag} created successfully",
        )

    async def delete_tag(self, tag: str) -> bool:
        return await self.run(
            CommandCategory.TAG,
            lambda: self._client.delete_tag(tag),
            progress=f"Deleting tag {tag}...",
            success=f"Tag {tag} deleted successfully",
        )

    async def push_tag(self, tag: str, remote: str = "origin") -> bool:
        return await self.run(
            CommandCategory.TAG,
            lambda: self._client.push_tag(tag, remote),
            progress=f"Pushing tag {tag} to {remote}...",
            success=f"Tag {tag} pushed to {remote} successfully",
        )

    # Remotes

    async def fetch_remote(self, remote: str = "", prune: bool = False) -> bool:
        target = remote or "all remotes"
        return await self.run(
            CommandCategory.REMOTE,
            lambda: self._client.fetch_remote(remote, prune),
            progress=f"Fetching from {target}...",
            success=f"Fetched from {target} successfully",
        )

    async def pull(self, remote: str, branch: str) -> bool:
        return await self.run(
            CommandCategory.REMOTE,
            lambda: self._client.pull(remote, branch),
            progress=f"Pulling {branch} from {remote}...",
            success=f"Pulled from {remote} successfully",
        )

    async def push(self, remote: str, branch: str, force: bool = False) -> bool:
        return await self.run(
            CommandCategory.REMOTE,
            lambda: self._client.push(remote, branch, force),
            progress=f"Pushing {branch} to {remote}...",
            success=f"Pushed to {remote} successfully",
        )
