"""Tests for push events, aggregate views and the reconnect loop."""

from __future__ import annotations

import asyncio
import json
from datetime import date

import pytest

from gait.errors import BackendError
from gait.realtime.aggregates import AggregateViews
from gait.realtime.channel import websocket_url
from gait.realtime.events import (
    AnalyticsEvent,
    CommitEvent,
    DashboardEvent,
    NotificationEvent,
    parse_event,
)
from gait.realtime.reconciler import ConnectionState, RealtimeReconciler

from conftest import FakeChannel, make_commits, wait_until


def frame(type_: str, payload=None) -> str:
    return json.dumps({"type": type_, "payload": payload if payload is not None else {}})


class TestParseEvent:
    def test_commit(self) -> None:
        event = parse_event(frame("commit", {"hash": "abcdef123", "message": "Fix"}))
        assert isinstance(event, CommitEvent)
        assert event.payload.short_hash == "abcdef1"

    def test_analytics(self) -> None:
        event = parse_event(frame("analytics", {"totalCommits": 10}))
        assert isinstance(event, AnalyticsEvent)
        assert event.payload == {"totalCommits": 10}

    def test_dashboard_snapshots(self) -> None:
        assert isinstance(parse_event(frame("initial_data", {"a": 1})), DashboardEvent)
        assert isinstance(parse_event(frame("update", {"a": 2})), DashboardEvent)

    def test_notification(self) -> None:
        event = parse_event(frame("notification", {"type": "success", "title": "Done"}))
        assert isinstance(event, NotificationEvent)
        assert event.payload.title == "Done"

    @pytest.mark.parametrize(
        "raw",
        [
            frame("knowledge_graph", {"nodes": []}),
            "not json",
            json.dumps([1, 2]),
            json.dumps({"payload": {}}),
            frame("analytics", ["not", "an", "object"]),
        ],
    )
    def test_unknown_or_malformed_is_ignored(self, raw) -> None:
        assert parse_event(raw) is None

    def test_missing_payload_defaults(self) -> None:
        event = parse_event(json.dumps({"type": "commit"}))
        assert isinstance(event, CommitEvent)
        assert event.payload.hash == ""


class TestAggregateViews:
    def test_bump_commit_same_day(self) -> None:
        views = AggregateViews()
        views.bump_commit(date(2024, 5, 1))
        views.bump_commit(date(2024, 5, 1))
        views.bump_commit(date(2024, 5, 2))
        assert [(b.day.day, b.count) for b in views.commit_trend] == [(1, 2), (2, 1)]

    @pytest.mark.anyio
    async def test_refresh_keeps_panels_that_fail(self) -> None:
        class Analytics:
            async def get_dashboard(self):
                return {"repos": 1}

            async def get_insights(self):
                raise BackendError("HTTP_ERROR", "insights down", 503)

            async def get_analytics(self):
                return {"commits": 5}

        views = AggregateViews()
        views.insights = {"old": True}

        assert await views.refresh(Analytics()) is False
        assert views.dashboard == {"repos": 1}
        assert views.analytics == {"commits": 5}
        assert views.insights == {"old": True}


@pytest.fixture
def feed(make_feed):
    return make_feed()


@pytest.fixture
def reconciler(feed, status):
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)
        await asyncio.sleep(0)

    r = RealtimeReconciler(
        FakeChannel(), feed, AggregateViews(), status, reconnect_delay=5.0, sleep=fake_sleep
    )
    r.sleeps = sleeps
    return r


class TestApply:
    @pytest.mark.anyio
    async def test_commit_bumps_trend_without_touching_list(
        self, reconciler, feed, backend, status
    ) -> None:
        await feed.load_initial()
        before = [c.hash for c in feed.entries()]
        backend.calls.clear()

        assert reconciler.handle_frame(frame("commit", {"hash": "f00ba4", "message": "New"}))

        assert sum(b.count for b in reconciler.views.commit_trend) == 1
        assert [c.hash for c in feed.entries()] == before
        assert backend.calls == []
        assert status.last.text == "New commit: f00ba4: New"

    @pytest.mark.anyio
    async def test_commit_outside_normal_mode_leaves_trend(self, reconciler, feed, backend) -> None:
        backend.tag_commits["v1.0"] = make_commits(1)
        await feed.enter_tag_mode("v1.0")

        reconciler.handle_frame(frame("commit", {"hash": "f00ba4", "message": "New"}))

        assert reconciler.views.commit_trend == []

    def test_analytics_is_idempotent(self, reconciler) -> None:
        raw = frame("analytics", {"totalCommits": 10, "authors": ["a"]})
        reconciler.handle_frame(raw)
        once = reconciler.views.snapshot()
        reconciler.handle_frame(raw)
        assert reconciler.views.snapshot() == once

    def test_insight_replaced_wholesale(self, reconciler) -> None:
        reconciler.handle_frame(frame("insight", {"title": "A", "extra": 1}))
        reconciler.handle_frame(frame("insight", {"title": "B"}))
        assert reconciler.views.insights == {"title": "B"}

    @pytest.mark.anyio
    async def test_insight_event_and_refresh_share_one_panel(self, reconciler) -> None:
        class Analytics:
            async def get_dashboard(self):
                return {}

            async def get_insights(self):
                return {"title": "fetched"}

            async def get_analytics(self):
                return {}

        await reconciler.views.refresh(Analytics())
        reconciler.handle_frame(frame("insight", {"title": "pushed"}))

        assert reconciler.views.insights == {"title": "pushed"}
        assert "insight" not in reconciler.views.snapshot()

    def test_unknown_event_ignored(self, reconciler) -> None:
        before = reconciler.views.snapshot()
        assert reconciler.handle_frame(frame("knowledge_graph", {"nodes": [1]})) is False
        assert reconciler.views.snapshot() == before
        assert reconciler.applied == 0

    def test_notification_forwarded(self, reconciler, status) -> None:
        reconciler.handle_frame(
            frame("notification", {"type": "error", "title": "Push", "message": "rejected"})
        )
        assert status.last.level == "error"
        assert status.last.text == "Push: rejected"


class TestConnectionLoop:
    @pytest.mark.anyio
    async def test_reconnects_with_fixed_delay(self, feed, status) -> None:
        channel = FakeChannel(
            [ConnectionError("refused"), ConnectionError("refused"), [frame("analytics", {"n": 1})]]
        )
        sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        reconciler = RealtimeReconciler(
            channel, feed, AggregateViews(), status, reconnect_delay=5.0, sleep=fake_sleep
        )
        reconciler.start()
        await wait_until(lambda: channel.idle.is_set())

        assert reconciler.state == ConnectionState.CONNECTING
        assert channel.connects == 4
        assert sleeps == [5.0, 5.0, 5.0]
        assert reconciler.views.analytics == {"n": 1}

        await reconciler.stop()
        assert reconciler.state == ConnectionState.DISCONNECTED
        assert reconciler.active is False

    @pytest.mark.anyio
    async def test_connected_state_while_streaming(self, feed, status) -> None:
        gate = asyncio.Event()

        class HoldingChannel(FakeChannel):
            def connect(self):
                channel = self

                class _Conn:
                    async def __aenter__(self):
                        channel.connects += 1

                        async def frames():
                            yield frame("insight", {"title": "live"})
                            await gate.wait()

                        return frames()

                    async def __aexit__(self, *exc):
                        return False

                return _Conn()

        reconciler = RealtimeReconciler(
            HoldingChannel(), feed, AggregateViews(), status, reconnect_delay=5.0
        )
        reconciler.start()
        await wait_until(lambda: reconciler.views.insights is not None)

        assert reconciler.state == ConnectionState.CONNECTED
        await reconciler.stop()
        assert reconciler.state == ConnectionState.DISCONNECTED


def test_websocket_url() -> None:
    assert websocket_url("http://localhost:8080", "/ws/dashboard") == "ws://localhost:8080/ws/dashboard"
    assert websocket_url("https://gait.dev/", "ws/dashboard") == "wss://gait.dev/ws/dashboard"
