"""Client for the analytics (ADES) backend's snapshot endpoints."""

from __future__ import annotations

from typing import Any

from gait.api.client import BaseClient


class AnalyticsClient(BaseClient):
    """Snapshot GETs for the dashboard, insights and pattern panels.

    Payloads are opaque JSON documents; the engine only replaces panel data
    with them wholesale.
    """

    async def _snapshot(self, path: str, params: dict[str, Any] | None = None) -> dict:
        data = await self._get_json(path, params)
        return data if isinstance(data, dict) else {"items": data or []}

    async def get_dashboard(self) -> dict:
        return await self._snapshot("/api/ades/dashboard")

    async def get_insights(self) -> dict:
        return await self._snapshot("/api/ades/insights")

    async def get_analytics(self) -> dict:
        return await self._snapshot("/api/ades/analytics")

    async def get_metrics(self) -> dict:
        return await self._snapshot("/api/ades/metrics")

    async def get_patterns(self, pattern_type: str | None = None, limit: int | None = None) -> dict:
        params: dict[str, Any] = {}
        if pattern_type:
            params["type"] = pattern_type
        if limit:
            params["limit"] = limit
        return await self._snapshot("/api/ades/patterns", params or None)
