"""Application root: builds and owns every engine component."""

from __future__ import annotations

import structlog

from gait.api.analytics import AnalyticsClient
from gait.api.client import GitBackendClient
from gait.commands import CommandRunner
from gait.expansion import ExpansionStateStore
from gait.feed import CommitFeed
from gait.panels import CommitPanels
from gait.persistence import JsonFileStore, KeyValueStore, Preferences
from gait.realtime.aggregates import AggregateViews
from gait.realtime.channel import PushChannel, WebSocketChannel
from gait.realtime.reconciler import RealtimeReconciler
from gait.settings import settings
from gait.status import StatusReporter

logger = structlog.get_logger(__name__)


class GaitApp:
    """Wires the feed, expansion store, clients and reconciler together.

    Every collaborator can be passed in, which is how tests run several
    independent instances side by side.
    """

    def __init__(
        self,
        *,
        client: GitBackendClient | None = None,
        analytics: AnalyticsClient | None = None,
        storage: KeyValueStore | None = None,
        channel: PushChannel | None = None,
        status: StatusReporter | None = None,
        page_limit: int | None = None,
        use_ssr: bool | None = None,
        gc_threshold: int | None = None,
        realtime: bool | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self.status = status or StatusReporter()
        self.storage = storage if storage is not None else JsonFileStore(settings.state_file())
        self.preferences = Preferences(self.storage)
        self.expansion = ExpansionStateStore(self.storage, gc_threshold=gc_threshold)
        self.client = client or GitBackendClient()
        self.analytics = analytics or AnalyticsClient()
        self.feed = CommitFeed(
            self.client,
            self.expansion,
            self.preferences,
            self.status,
            page_limit=page_limit,
            use_ssr=use_ssr,
        )
        self.commands = CommandRunner(self.client, self.feed, self.status)
        self.views = AggregateViews()
        self.reconciler = RealtimeReconciler(
            channel or WebSocketChannel(),
            self.feed,
            self.views,
            self.status,
            reconnect_delay=reconnect_delay,
        )
        self.realtime = settings.realtime_enabled() if realtime is None else realtime
        self.panels: CommitPanels | None = None

    async def start(self) -> bool:
        """Hydrate, load, restore the remembered commit and go live.

        Expansion state is hydrated before the first load so the restored
        commit can reopen its panels.
        """
        restored = self.expansion.hydrate()
        logger.info("Starting", expansion_keys=restored, realtime=self.realtime)
        loaded = await self.feed.load_initial()
        if self.feed.selected is not None:
            await self.open_commit(self.feed.selected)
        if self.realtime:
            self.reconciler.start()
        return loaded

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.client.aclose()
        await self.analytics.aclose()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def open_commit(self, commit_hash: str) -> CommitPanels | None:
        """Select a loaded commit and reopen the panels remembered for it."""
        if not self.feed.select(commit_hash):
            return None
        commit = await self.feed.fetch_details(commit_hash)
        if commit is None:
            return None
        panels = CommitPanels(
            commit,
            self.feed.scope_for(commit_hash),
            store=self.expansion,
            source=self.client,
            status=self.status,
        )
        await panels.restore_all()
        self.panels = panels
        return panels

    async def refresh_analytics(self) -> bool:
        return await self.views.refresh(self.analytics)
