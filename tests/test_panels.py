"""Tests for DiffPanelController and CommitPanels."""

from __future__ import annotations

import asyncio

import pytest

from gait.models import DiffHunk, DiffLine, FileDiff
from gait.panels import CommitPanels, DiffPanelController, DiffViewType

from conftest import make_commit, wait_until


@pytest.fixture
def diff() -> FileDiff:
    return FileDiff(
        path="src/app.py",
        hunks=[
            DiffHunk(
                header="@@ -1,2 +1,2 @@",
                old_start=1,
                new_start=1,
                lines=[
                    DiffLine(type="context", content=" keep"),
                    DiffLine(type="deletion", content="-old"),
                    DiffLine(type="addition", content="+new"),
                ],
            )
        ],
    )


@pytest.fixture
def panel(backend, expansion, status, diff) -> DiffPanelController:
    backend.diffs[("h0001", "src/app.py")] = diff
    return DiffPanelController(
        "h0001", "src/app.py", store=expansion, source=backend, status=status
    )


class TestToggle:
    @pytest.mark.anyio
    async def test_expand_fetches_diff(self, panel, backend, expansion) -> None:
        assert await panel.toggle() is True

        assert expansion.is_expanded("h0001", "src/app.py")
        assert backend.count("get_file_diff") == 1
        render = panel.render()
        assert render.expanded
        assert render.split is not None
        assert len(render.split.left) == 3

    @pytest.mark.anyio
    async def test_collapse_keeps_diff_for_render_pass(self, panel, backend) -> None:
        await panel.toggle()
        await panel.toggle()
        assert panel.render().expanded is False
        assert panel.render().split is None

        await panel.toggle()
        assert backend.count("get_file_diff") == 1

    @pytest.mark.anyio
    async def test_invalidate_forces_refetch(self, panel, backend) -> None:
        await panel.toggle()
        panel.invalidate()

        assert await panel.restore() is True
        assert backend.count("get_file_diff") == 2

    @pytest.mark.anyio
    async def test_tag_scope_fetches_underlying_commit(self, backend, expansion, status, diff) -> None:
        backend.diffs[("h0001", "src/app.py")] = diff
        panel = DiffPanelController(
            "h0001@v1.0", "src/app.py", store=expansion, source=backend, status=status
        )
        await panel.expand()

        assert backend.calls[-1] == ("get_file_diff", "h0001", "src/app.py")
        assert expansion.is_expanded("h0001@v1.0", "src/app.py")

    @pytest.mark.anyio
    async def test_concurrent_restore_fetches_once(self, panel, backend, expansion) -> None:
        expansion.set_expanded("h0001", "src/app.py", True)
        backend.gate = asyncio.Event()

        first = asyncio.create_task(panel.restore())
        await wait_until(lambda: panel.loading)
        await panel.restore()
        backend.gate.set()
        await first

        assert backend.count("get_file_diff") == 1


class TestErrors:
    @pytest.mark.anyio
    async def test_fetch_error_stays_expanded_with_message(self, panel, backend, status) -> None:
        backend.fail["get_file_diff"] = "bad revision"

        assert await panel.toggle() is True

        render = panel.render()
        assert render.expanded
        assert render.error == "bad revision"
        assert render.split is None
        assert status.last.text == "Failed to load diff: bad revision"


class TestViews:
    @pytest.mark.anyio
    async def test_switch_view_renders_without_fetch(self, panel, backend) -> None:
        await panel.toggle()
        panel.switch_view("unified")

        render = panel.render()
        assert render.view == DiffViewType.UNIFIED
        assert render.split is None
        assert [r.content for r in render.unified] == ["@@ -1,2 +1,2 @@", "keep", "old", "new"]
        assert backend.count("get_file_diff") == 1

    def test_wrap_toggle(self, panel) -> None:
        assert panel.toggle_wrap() is False
        assert panel.render().wrap is False


class TestCommitPanels:
    @pytest.mark.anyio
    async def test_restore_all_opens_remembered_panels(self, backend, expansion, status) -> None:
        commit = make_commit(1, files=("a.py", "b.py", "c.py"))
        expansion.set_expanded("h0001", "a.py", True)
        expansion.set_expanded("h0001", "c.py", True)
        panels = CommitPanels(commit, "h0001", store=expansion, source=backend, status=status)

        assert await panels.restore_all() == 2
        assert sorted(c[2] for c in backend.calls if c[0] == "get_file_diff") == ["a.py", "c.py"]
        assert panels.get("b.py").render().expanded is False

    def test_collapse_all(self, backend, expansion, status) -> None:
        commit = make_commit(1, files=("a.py", "b.py"))
        expansion.set_expanded("h0001", "a.py", True)
        expansion.set_expanded("h0001", "b.py", True)
        expansion.set_expanded("h0002", "a.py", True)
        panels = CommitPanels(commit, "h0001", store=expansion, source=backend, status=status)

        assert panels.collapse_all() == 2
        assert not any(p.expanded for p in panels)
        assert expansion.is_expanded("h0002", "a.py")
