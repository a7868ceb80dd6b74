"""Pure transforms from a hunk-based diff to split and unified row sets.

Nothing here performs I/O or keeps state: the same diff always yields the
same rows, which is what lets panels re-render from cached diffs when the
user switches views.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gait.models import DiffLine, FileDiff

NO_CHANGES_SPLIT = "No changes"
NO_CHANGES_UNIFIED = "No changes to display"


class RowKind(str, Enum):
    LINE = "line"
    FILLER = "filler"
    HUNK_HEADER = "hunk_header"
    EMPTY = "empty"


@dataclass(frozen=True)
class DiffRow:
    """One rendered row. Line numbers are 1-based; None means "not shown"."""

    kind: RowKind
    content: str = ""
    line_type: str | None = None
    old_number: int | None = None
    new_number: int | None = None

    @property
    def is_filler(self) -> bool:
        return self.kind == RowKind.FILLER


@dataclass(frozen=True)
class SplitView:
    left: list[DiffRow]
    right: list[DiffRow]

    def __len__(self) -> int:
        return len(self.left)

    def pairs(self) -> list[tuple[DiffRow, DiffRow]]:
        return list(zip(self.left, self.right))


_FILLER = DiffRow(kind=RowKind.FILLER)


def _line_row(line: DiffLine, *, old_number: int | None, new_number: int | None) -> DiffRow:
    return DiffRow(
        kind=RowKind.LINE,
        content=line.text,
        line_type=line.type,
        old_number=old_number,
        new_number=new_number,
    )


def to_split_view(diff: FileDiff) -> SplitView:
    """Lay a diff out as two vertically aligned columns.

    Non-addition lines land in the left (old) column, non-deletion lines in
    the right (new) column; the opposite column gets a filler row so both
    columns always have the same length.
    """
    if not diff.hunks:
        empty = DiffRow(kind=RowKind.EMPTY, content=NO_CHANGES_SPLIT)
        return SplitView(left=[empty], right=[empty])

    left: list[DiffRow] = []
    right: list[DiffRow] = []
    for hunk in diff.hunks:
        old_line = hunk.old_start or 1
        new_line = hunk.new_start or 1
        for line in hunk.lines:
            if line.type != "addition":
                left.append(_line_row(line, old_number=old_line, new_number=None))
                old_line += 1
            else:
                left.append(_FILLER)
            if line.type != "deletion":
                right.append(_line_row(line, old_number=None, new_number=new_line))
                new_line += 1
            else:
                right.append(_FILLER)
    return SplitView(left=left, right=right)


def to_unified_view(diff: FileDiff) -> list[DiffRow]:
    """Lay a diff out as a single column with old/new line numbers.

    Each hunk is preceded by a header row carrying its header text verbatim.
    """
    if not diff.hunks:
        return [DiffRow(kind=RowKind.EMPTY, content=NO_CHANGES_UNIFIED)]

    rows: list[DiffRow] = []
    for hunk in diff.hunks:
        rows.append(DiffRow(kind=RowKind.HUNK_HEADER, content=hunk.header))
        old_line = hunk.old_start or 1
        new_line = hunk.new_start or 1
        for line in hunk.lines:
            if line.type == "context":
                rows.append(_line_row(line, old_number=old_line, new_number=new_line))
                old_line += 1
                new_line += 1
            elif line.type == "deletion":
                rows.append(_line_row(line, old_number=old_line, new_number=None))
                old_line += 1
            else:
                rows.append(_line_row(line, old_number=None, new_number=new_line))
                new_line += 1
    return rows


# ---------------------------------------------------------------------------
# Plain-text rendering (CLI)
# ---------------------------------------------------------------------------

_MARKERS = {"context": " ", "addition": "+", "deletion": "-"}


def _num(value: int | None, width: int) -> str:
    return str(value).rjust(width) if value is not None else " " * width


def _cell(row: DiffRow, number: int | None, width: int, column: int) -> str:
    if row.kind == RowKind.FILLER:
        return " " * (width + 3 + column)
    marker = _MARKERS.get(row.line_type or "", " ")
    text = row.content.expandtabs(4)
    if len(text) > column:
        text = text[: column - 1] + "…"
    return f"{_num(number, width)} {marker} {text.ljust(column)}"


def render_unified_text(rows: list[DiffRow]) -> str:
    """Render unified rows as `old new marker text` lines."""
    width = max(
        (len(str(n)) for r in rows for n in (r.old_number, r.new_number) if n is not None),
        default=1,
    )
    out: list[str] = []
    for row in rows:
        if row.kind in (RowKind.HUNK_HEADER, RowKind.EMPTY):
            out.append(row.content)
            continue
        marker = _MARKERS.get(row.line_type or "", " ")
        out.append(
            f"{_num(row.old_number, width)} {_num(row.new_number, width)} {marker}{row.content}"
        )
    return "\n".join(out)


def render_split_text(view: SplitView, *, column: int = 60) -> str:
    """Render a split view as two side-by-side columns."""
    numbers = [r.old_number for r in view.left] + [r.new_number for r in view.right]
    width = max((len(str(n)) for n in numbers if n is not None), default=1)
    out: list[str] = []
    for left, right in view.pairs():
        if left.kind == RowKind.EMPTY:
            out.append(left.content)
            continue
        out.append(
            f"{_cell(left, left.old_number, width, column)} │ "
            f"{_cell(right, right.new_number, width, column)}".rstrip()
        )
    return "\n".join(out)
