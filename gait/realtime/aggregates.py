"""Aggregate panels patched by push events."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import structlog

from gait.api.analytics import AnalyticsClient
from gait.errors import BackendError

logger = structlog.get_logger(__name__)


@dataclass
class TrendBucket:
    day: date
    count: int = 0


class AggregateViews:
    """Commit trend plus the snapshot panels of the insights dashboard.

    Snapshot panels (insights, analytics, dashboard) are replaced wholesale,
    so applying the same snapshot twice leaves them unchanged. The commit
    trend is the only counter and only ever grows its latest bucket.
    """

    def __init__(self) -> None:
        self.commit_trend: list[TrendBucket] = []
        self.insights: dict[str, Any] | None = None
        self.analytics: dict[str, Any] | None = None
        self.dashboard: dict[str, Any] | None = None

    def bump_commit(self, today: date | None = None) -> TrendBucket:
        """Count one new commit in today's bucket, opening it if needed."""
        today = today or datetime.now().date()
        if self.commit_trend and self.commit_trend[-1].day == today:
            bucket = self.commit_trend[-1]
            bucket.count += 1
        else:
            bucket = TrendBucket(day=today, count=1)
            self.commit_trend.append(bucket)
        return bucket

    def replace_insights(self, payload: dict[str, Any]) -> None:
        self.insights = dict(payload)

    def replace_analytics(self, payload: dict[str, Any]) -> None:
        self.analytics = dict(payload)

    def replace_dashboard(self, payload: dict[str, Any]) -> None:
        self.dashboard = dict(payload)

    def snapshot(self) -> dict[str, Any]:
        return {
            "commit_trend": [(b.day.isoformat(), b.count) for b in self.commit_trend],
            "insights": self.insights,
            "analytics": self.analytics,
            "dashboard": self.dashboard,
        }

    async def refresh(self, client: AnalyticsClient) -> bool:
        """Hydrate the snapshot panels from the analytics backend.

        Panels whose request fails keep their previous data. Returns True
        when every request succeeded.
        """
        results = await asyncio.gather(
            client.get_dashboard(),
            client.get_insights(),
            client.get_analytics(),
            return_exceptions=True,
        )
        ok = True
        for name, result in zip(("dashboard", "insights", "analytics"), results):
            if isinstance(result, BaseException):
                if not isinstance(result, BackendError):
                    raise result
                logger.warning("Analytics refresh failed", panel=name, error=result.message)
                ok = False
                continue
            setattr(self, name, dict(result))
        return ok
