"""Helpers for parsing unified diffs into the hunk model."""

from __future__ import annotations

import re

from gait.models import DiffHunk, DiffLine, FileDiff

_FILE_HEADER = re.compile(r"diff --git a/(.+?) b/(.+)")
_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

_LINE_TYPES = {"+": "addition", "-": "deletion", " ": "context"}


def _parse_hunk_header(line: str) -> dict[str, object] | None:
    match = _HUNK_HEADER.match(line)
    if not match:
        return None
    old_start, old_lines, new_start, new_lines = match.groups()
    return {
        "header": line,
        "old_start": int(old_start),
        "old_lines": int(old_lines) if old_lines is not None else 1,
        "new_start": int(new_start),
        "new_lines": int(new_lines) if new_lines is not None else 1,
        "lines": [],
    }


def _status_for(entry: dict[str, object]) -> str:
    if entry.get("new_file"):
        return "added"
    if entry.get("deleted_file"):
        return "deleted"
    if entry.get("old_path") and entry["old_path"] != entry["path"]:
        return "renamed"
    return "modified"


def parse_git_diff(raw: str) -> list[FileDiff]:
    """Parse a multi-file unified diff into per-file hunk models.

    Line content keeps its leading marker, matching what the backend sends.
    Text before the first ``diff --git`` header is treated as a single
    anonymous file so bare patches (``diff -u`` output) still parse.

    Args:
        raw: Unified diff text.
    """
    files: list[dict[str, object]] = []
    current: dict[str, object] | None = None
    hunk: dict[str, object] | None = None

    for line in raw.splitlines():
        if line.startswith("diff --git "):
            # Start a new file section when a diff header appears.
            match = _FILE_HEADER.match(line)
            current = {
                "path": match.group(2) if match else "unknown",
                "old_path": match.group(1) if match else None,
                "hunks": [],
            }
            files.append(current)
            hunk = None
            continue
        if current is None:
            current = {"path": "unknown", "old_path": None, "hunks": []}
            files.append(current)
        if hunk is None:
            if line.startswith("new file mode"):
                current["new_file"] = True
            elif line.startswith("deleted file mode"):
                current["deleted_file"] = True
            elif line.startswith("rename from "):
                current["old_path"] = line[len("rename from "):]
            elif line.startswith("+++ ") and current["path"] == "unknown":
                target = line[4:].strip()
                current["path"] = target[2:] if target.startswith("b/") else target
        parsed = _parse_hunk_header(line) if line.startswith("@@") else None
        if parsed is not None:
            hunk = parsed
            current["hunks"].append(hunk)
            continue
        if hunk is None:
            continue
        line_type = _LINE_TYPES.get(line[:1])
        if line_type is None:
            # "\ No newline at end of file" and other annotations.
            continue
        hunk["lines"].append(DiffLine(type=line_type, content=line))

    results: list[FileDiff] = []
    for entry in files:
        if entry["path"] == "unknown" and not entry["hunks"]:
            # Preamble such as `git show` commit headers.
            continue
        hunks = [DiffHunk(**h) for h in entry["hunks"]]
        additions = sum(1 for h in hunks for ln in h.lines if ln.type == "addition")
        deletions = sum(1 for h in hunks for ln in h.lines if ln.type == "deletion")
        old_path = entry.get("old_path")
        results.append(
            FileDiff(
                path=str(entry["path"]),
                old_path=old_path if old_path != entry["path"] else None,
                status=_status_for(entry),
                additions=additions,
                deletions=deletions,
                hunks=hunks,
            )
        )
    return results


def parse_file_diff(raw: str, *, path: str = "") -> FileDiff:
    """Parse a single-file patch. An empty patch yields a diff with no hunks."""
    files = parse_git_diff(raw)
    if not files:
        return FileDiff(path=path)
    diff = files[0]
    if path and diff.path in ("", "unknown"):
        diff = diff.model_copy(update={"path": path})
    return diff
