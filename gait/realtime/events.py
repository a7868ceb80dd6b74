"""Push-channel event model.

Every frame is ``{"type": ..., "payload": {...}}``. Known types parse into
one member of :data:`PushEvent`; anything else is dropped by
:func:`parse_event`.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, Literal, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = structlog.get_logger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


class CommitEventPayload(_Payload):
    hash: str = ""
    message: str = ""

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class NotificationPayload(_Payload):
    type: str = "info"
    title: str = ""
    message: str = ""


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    timestamp: datetime | None = None


class CommitEvent(_Event):
    type: Literal["commit"]
    payload: CommitEventPayload = Field(default_factory=CommitEventPayload)


class InsightEvent(_Event):
    type: Literal["insight"]
    payload: dict[str, Any] = Field(default_factory=dict)


class AnalyticsEvent(_Event):
    type: Literal["analytics"]
    payload: dict[str, Any] = Field(default_factory=dict)


class DashboardEvent(_Event):
    """Full dashboard snapshot, sent on connect and periodically."""

    type: Literal["initial_data", "update"]
    payload: dict[str, Any] = Field(default_factory=dict)


class NotificationEvent(_Event):
    type: Literal["notification"]
    payload: NotificationPayload = Field(default_factory=NotificationPayload)


PushEvent = Annotated[
    Union[CommitEvent, InsightEvent, AnalyticsEvent, DashboardEvent, NotificationEvent],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[PushEvent] = TypeAdapter(PushEvent)

KNOWN_EVENT_TYPES = frozenset(
    {"commit", "insight", "analytics", "initial_data", "update", "notification"}
)


def parse_event(raw: str | bytes | dict) -> PushEvent | None:
    """Parse one frame. Returns None for unknown or malformed events."""
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON push frame", frame=str(raw)[:100])
            return None
    if not isinstance(data, dict):
        logger.warning("Ignoring push frame that is not an object")
        return None
    event_type = data.get("type")
    if event_type not in KNOWN_EVENT_TYPES:
        logger.debug("Ignoring unknown push event", type=event_type)
        return None
    if data.get("payload") is None:
        data = {**data, "payload": {}}
    try:
        return _event_adapter.validate_python(data)
    except ValidationError as exc:
        logger.warning("Ignoring malformed push event", type=event_type, error=str(exc))
        return None
