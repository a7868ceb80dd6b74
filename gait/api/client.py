"""Async HTTP client for the git backend's REST API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from gait.diff import parse_file_diff
from gait.errors import BackendError
from gait.models import (
    Branch,
    Commit,
    FileChange,
    FileDiff,
    Remote,
    RepositorySnapshot,
    Stash,
    Tag,
)
from gait.settings import settings

logger = structlog.get_logger(__name__)

_commit_list = TypeAdapter(list[Commit])
_change_list = TypeAdapter(list[FileChange])
_branch_list = TypeAdapter(list[Branch])
_tag_list = TypeAdapter(list[Tag])
_stash_list = TypeAdapter(list[Stash])
_remote_list = TypeAdapter(list[Remote])


def _error_message(response: httpx.Response) -> tuple[str, str]:
    """Extract (code, message) from a backend error response.

    The git backend answers ``{"error": "text"}``; structured
    ``{"error": {"code", "message"}}`` payloads are accepted too.
    """
    default = f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return "HTTP_ERROR", text or default
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return "HTTP_ERROR", error
        if isinstance(error, dict):
            return str(error.get("code") or "HTTP_ERROR"), str(error.get("message") or default)
        message = data.get("message")
        if isinstance(message, str) and message:
            return "HTTP_ERROR", message
    return "HTTP_ERROR", default


class BaseClient:
    """Shared httpx plumbing for the backend clients.

    Args:
        base_url: Backend base URL (e.g. "http://localhost:8080").
        token: Bearer token; empty string disables the header.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url if base_url is not None else settings.base_url()).rstrip("/")
        token = settings.token() if token is None else token
        headers: dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds(),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Backend request failed", method=method, path=path, error=str(exc))
            raise BackendError("NETWORK_ERROR", str(exc) or exc.__class__.__name__) from exc
        if response.is_error:
            code, message = _error_message(response)
            logger.warning(
                "Backend returned error",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise BackendError(code, message, response.status_code)
        return response

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError("INVALID_RESPONSE", f"Invalid JSON from {path}") from exc

    async def _get_text(self, path: str, params: dict[str, Any] | None = None) -> str:
        response = await self._request("GET", path, params=params)
        return response.text

    @staticmethod
    def _parse(adapter: TypeAdapter, data: Any, path: str) -> Any:
        try:
            return adapter.validate_python([] if data is None else data)
        except ValidationError as exc:
            raise BackendError("INVALID_RESPONSE", f"Unexpected payload from {path}") from exc

    async def _command(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict:
        response = await self._request(method, path, json=payload)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text}
        return data if isinstance(data, dict) else {"result": data}


class GitBackendClient(BaseClient):
    """Request/response client for commit, diff and mutation endpoints."""

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def get_all_data(self, limit: int) -> RepositorySnapshot:
        """Fetch the first commit page plus sidebar data in one call."""
        data = await self._get_json("/api/all", {"limit": limit})
        try:
            return RepositorySnapshot.model_validate(data or {})
        except ValidationError as exc:
            raise BackendError("INVALID_RESPONSE", "Unexpected payload from /api/all") from exc

    async def get_commits(self, limit: int, offset: int) -> list[Commit]:
        data = await self._get_json("/api/commits", {"limit": limit, "offset": offset})
        return self._parse(_commit_list, data, "/api/commits")

    async def get_commits_html(self, limit: int, offset: int) -> str:
        return await self._get_text("/api/commits/html", {"limit": limit, "offset": offset})

    async def get_commits_by_tag(self, tag: str, limit: int, offset: int) -> list[Commit]:
        path = f"/api/commits/tag/{quote(tag, safe='')}"
        data = await self._get_json(path, {"limit": limit, "offset": offset})
        return self._parse(_commit_list, data, path)

    async def get_commits_by_tag_html(self, tag: str, limit: int, offset: int) -> str:
        path = f"/api/commits/tag/{quote(tag, safe='')}/html"
        return await self._get_text(path, {"limit": limit, "offset": offset})

    async def get_commit(self, commit_hash: str) -> Commit:
        """Fetch a commit with its file changes."""
        path = f"/api/commit/{quote(commit_hash, safe='')}"
        data = await self._get_json(path)
        try:
            return Commit.model_validate(data)
        except ValidationError as exc:
            raise BackendError("INVALID_RESPONSE", f"Unexpected payload from {path}") from exc

    async def get_file_diff(self, commit_hash: str, file_path: str) -> FileDiff:
        """Fetch the diff of one file; ``uncommitted`` selects the working tree.

        Backends that answer with a raw ``patch`` string instead of hunks are
        parsed client-side.
        """
        data = await self._get_json("/api/diff", {"hash": commit_hash, "file": file_path})
        if isinstance(data, dict) and not data.get("hunks") and isinstance(data.get("patch"), str):
            return parse_file_diff(data["patch"], path=file_path)
        try:
            return FileDiff.model_validate(data or {"path": file_path})
        except ValidationError as exc:
            raise BackendError("INVALID_RESPONSE", "Unexpected payload from /api/diff") from exc

    async def get_uncommitted_changes(self) -> list[FileChange]:
        data = await self._get_json("/api/uncommitted")
        return self._parse(_change_list, data, "/api/uncommitted")

    # ------------------------------------------------------------------
    # Sidebar resources
    # ------------------------------------------------------------------

    async def get_branches(self) -> list[Branch]:
        return self._parse(_branch_list, await self._get_json("/api/branches"), "/api/branches")

    async def get_tags(self) -> list[Tag]:
        return self._parse(_tag_list, await self._get_json("/api/tags"), "/api/tags")

    async def get_stashes(self) -> list[Stash]:
        return self._parse(_stash_list, await self._get_json("/api/stashes"), "/api/stashes")

    async def get_remotes(self) -> list[Remote]:
        return self._parse(_remote_list, await self._get_json("/api/remotes"), "/api/remotes")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def checkout_branch(self, branch: str) -> dict:
        return await self._command("POST", "/api/branch/checkout", {"branch": branch})

    async def create_branch(self, branch: str, start_point: str = "") -> dict:
        return await self._command(
            "POST", "/api/branch/create", {"branchName": branch, "startPoint": start_point}
        )

    async def delete_branch(self, branch: str, force: bool = False) -> dict:
        return await self._command("POST", "/api/branch/delete", {"branchName": branch, "force": force})

    async def merge_branch(self, branch: str, no_fast_forward: bool = False) -> dict:
        return await self._command(
            "POST", "/api/branch/merge", {"branchName": branch, "noFastForward": no_fast_forward}
        )

    async def rename_branch(self, old_name: str, new_name: str) -> dict:
        return await self._command("POST", "/api/branch/rename", {"oldName": old_name, "newName": new_name})

    async def reset_branch(self, commit_hash: str, reset_type: str = "mixed") -> dict:
        return await self._command(
            "POST", "/api/branch/reset", {"commitHash": commit_hash, "resetType": reset_type}
        )

    async def rebase_branch(self, target_branch: str, interactive: bool = False) -> dict:
        return await self._command(
            "POST", "/api/branch/rebase", {"targetBranch": target_branch, "interactive": interactive}
        )

    async def create_commit(self, message: str, *, amend: bool = False, signoff: bool = False) -> dict:
        return await self._command(
            "POST", "/api/commit/create", {"message": message, "amend": amend, "signoff": signoff}
        )

    async def cherry_pick(self, commit_hash: str) -> dict:
        return await self._command("POST", "/api/commit/cherry-pick", {"commitHash": commit_hash})

    async def revert_commit(self, commit_hash: str, no_commit: bool = False) -> dict:
        return await self._command(
            "POST", "/api/commit/revert", {"commitHash": commit_hash, "noCommit": no_commit}
        )

    async def stage_file(self, file_path: str) -> dict:
        return await self._command("POST", "/api/stage", {"filePath": file_path})

    async def unstage_file(self, file_path: str) -> dict:
        return await self._command("POST", "/api/unstage", {"filePath": file_path})

    async def discard_file_changes(self, file_path: str) -> dict:
        return await self._command("POST", "/api/discard", {"filePath": file_path})

    async def create_stash(self, message: str = "", include_untracked: bool = False) -> dict:
        return await self._command(
            "POST", "/api/stash/create", {"message": message, "includeUntracked": include_untracked}
        )

    async def apply_stash(self, index: int) -> dict:
        return await self._command("POST", "/api/stash/apply", {"index": index})

    async def pop_stash(self, index: int) -> dict:
        return await self._command("POST", "/api/stash/pop", {"index": index})

    async def drop_stash(self, index: int) -> dict:
        return await self._command("POST", "/api/stash/drop", {"index": index})

    async def create_tag(
        self, tag: str, commit_hash: str = "", message: str = "", annotated: bool = False
    ) -> dict:
        return await self._command(
            "POST",
            "/api/tag/create",
            {"tagName": tag, "commitHash": commit_hash, "message": message, "annotated": annotated},
        )

    async def delete_tag(self, tag: str) -> dict:
        return await self._command("DELETE", f"/api/tag/{quote(tag, safe='')}")

    async def push_tag(self, tag: str, remote: str = "origin") -> dict:
        return await self._command("POST", "/api/tag/push", {"tagName": tag, "remote": remote})

    async def fetch_remote(self, remote: str = "", prune: bool = False) -> dict:
        return await self._command("POST", "/api/fetch", {"remote": remote, "prune": prune})

    async def pull(self, remote: str, branch: str) -> dict:
        return await self._command("POST", "/api/remote/pull", {"remote": remote, "branch": branch})

    async def push(self, remote: str, branch: str, force: bool = False) -> dict:
        return await self._command(
            "POST", "/api/remote/push", {"remote": remote, "branch": branch, "force": force}
        )
