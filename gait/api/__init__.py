"""Backend clients and fetch-strategy helpers."""

from gait.api.analytics import AnalyticsClient
from gait.api.client import BaseClient, GitBackendClient
from gait.api.fallback import FallbackChain, FallbackResult, Strategy

__all__ = [
    "AnalyticsClient",
    "BaseClient",
    "FallbackChain",
    "FallbackResult",
    "GitBackendClient",
    "Strategy",
]
