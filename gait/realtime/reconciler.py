"""Applies push events to the feed's aggregate views and keeps the channel up."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from gait.feed import CommitFeed
from gait.realtime.aggregates import AggregateViews
from gait.realtime.channel import PushChannel
from gait.realtime.events import (
    AnalyticsEvent,
    CommitEvent,
    DashboardEvent,
    InsightEvent,
    NotificationEvent,
    PushEvent,
    parse_event,
)
from gait.settings import settings
from gait.status import StatusReporter

logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RealtimeReconciler:
    """Consumes the push channel and patches state in place.

    While active, a dropped or failed connection is retried after a fixed
    delay, forever. There is no backoff and no attempt limit.

    Args:
        channel: Push channel transport.
        feed: Feed whose mode decides whether commit events count.
        views: Aggregate panels patched by events.
        status: Status reporter for user-facing notifications.
        reconnect_delay: Seconds between attempts (defaults to
            GAIT_RECONNECT_DELAY_SECONDS).
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        channel: PushChannel,
        feed: CommitFeed,
        views: AggregateViews,
        status: StatusReporter,
        *,
        reconnect_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._channel = channel
        self._feed = feed
        self.views = views
        self._status = status
        self.reconnect_delay = (
            settings.reconnect_delay_seconds() if reconnect_delay is None else reconnect_delay
        )
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED
        self._active = False
        self._task: asyncio.Task | None = None
        self.attempts = 0
        self.applied = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._active

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug("Push channel state", previous=self._state.value, state=state.value)
            self._state = state

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def apply(self, event: PushEvent) -> None:
        if isinstance(event, CommitEvent):
            # The paginated list is never spliced; only the trend moves.
            if self._feed.mode.is_normal:
                self.views.bump_commit()
            payload = event.payload
            label = f"{payload.short_hash}: {payload.message}" if payload.hash else payload.message
            self._status.info(f"New commit: {label}")
        elif isinstance(event, InsightEvent):
            self.views.replace_insights(event.payload)
        elif isinstance(event, AnalyticsEvent):
            self.views.replace_analytics(event.payload)
        elif isinstance(event, DashboardEvent):
            self.views.replace_dashboard(event.payload)
        elif isinstance(event, NotificationEvent):
            payload = event.payload
            text = f"{payload.title}: {payload.message}" if payload.title else payload.message
            level = payload.type if payload.type in ("success", "error") else "info"
            self._status.report(level, text)
        self.applied += 1

    def handle_frame(self, raw: str | bytes) -> bool:
        """Parse and apply one frame. Returns False when it was ignored."""
        event = parse_event(raw)
        if event is None:
            return False
        try:
            self.apply(event)
        except Exception:
            logger.exception("Failed to apply push event", type=event.type)
            return False
        return True

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._active = True
        self._task = asyncio.create_task(self._run())
        logger.info("Realtime reconciler started", reconnect_delay=self.reconnect_delay)

    async def stop(self) -> None:
        self._active = False
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Realtime reconciler stopped")

    async def _run(self) -> None:
        while self._active:
            self.attempts += 1
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self._channel.connect() as frames:
                    self._set_state(ConnectionState.CONNECTED)
                    async for raw in frames:
                        self.handle_frame(raw)
                logger.info("Push channel closed")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Push channel failed", error=str(exc), attempt=self.attempts)
            finally:
                self._set_state(ConnectionState.DISCONNECTED)
            if not self._active:
                break
            await self._sleep(self.reconnect_delay)
