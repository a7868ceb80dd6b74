"""Live updates from the backend push channel."""

from gait.realtime.aggregates import AggregateViews, TrendBucket
from gait.realtime.channel import PushChannel, WebSocketChannel
from gait.realtime.events import PushEvent, parse_event
from gait.realtime.reconciler import ConnectionState, RealtimeReconciler

__all__ = [
    "AggregateViews",
    "ConnectionState",
    "PushChannel",
    "PushEvent",
    "RealtimeReconciler",
    "TrendBucket",
    "WebSocketChannel",
    "parse_event",
]
