"""Exception types raised by the backend clients and fetch strategies."""

from __future__ import annotations

from gait.models import ErrorDetail


class GaitError(Exception):
    """Base class for errors raised by the feed engine."""


class BackendError(GaitError):
    """A backend request failed (transport error or non-2xx response).

    ``message`` is the backend's own error text when it sent one, so it can
    be shown to the user verbatim.
    """

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def detail(self) -> ErrorDetail:
        details = {"status_code": self.status_code} if self.status_code else None
        return ErrorDetail(code=self.code, message=self.message, details=details)


class FallbackExhaustedError(GaitError):
    """Every strategy of a fallback chain failed."""

    def __init__(self, chain: str, failures: list[tuple[str, BaseException]]) -> None:
        names = ", ".join(name for name, _ in failures) or "none"
        super().__init__(f"All strategies failed for {chain} ({names})")
        self.chain = chain
        self.failures = failures

    @property
    def last_error(self) -> BaseException | None:
        return self.failures[-1][1] if self.failures else None
