"""User-visible status messages."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

import structlog

logger = structlog.get_logger(__name__)

StatusLevel = Literal["info", "success", "error"]


@dataclass(frozen=True)
class StatusMessage:
    level: StatusLevel
    text: str
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


StatusListener = Callable[[StatusMessage], None]


class StatusReporter:
    """Collects status messages and fans them out to listeners.

    Listener failures are logged and never propagate to the caller that
    reported the status.
    """

    def __init__(self, history: int = 50) -> None:
        self._history = history
        self._messages: list[StatusMessage] = []
        self._listeners: list[StatusListener] = []

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def messages(self) -> list[StatusMessage]:
        return list(self._messages)

    @property
    def last(self) -> StatusMessage | None:
        return self._messages[-1] if self._messages else None

    def report(self, level: StatusLevel, text: str) -> StatusMessage:
        message = StatusMessage(level=level, text=text)
        self._messages.append(message)
        del self._messages[: -self._history]
        log = logger.error if level == "error" else logger.info
        log("Status", level=level, text=text)
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Status listener failed")
        return message

    def info(self, text: str) -> StatusMessage:
        return self.report("info", text)

    def success(self, text: str) -> StatusMessage:
        return self.report("success", text)

    def error(self, text: str) -> StatusMessage:
        return self.report("error", text)
