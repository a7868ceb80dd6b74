"""Ordered fetch strategies tried in sequence until one succeeds."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

from gait.errors import FallbackExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """A named way of producing a result."""

    name: str
    run: Callable[[], Awaitable[T]]


@dataclass
class FallbackResult(Generic[T]):
    """Outcome of a chain run: the value, who produced it, and who failed first."""

    value: T
    strategy: str
    failures: list[tuple[str, BaseException]] = field(default_factory=list)

    def failed(self, name: str) -> bool:
        return any(failed_name == name for failed_name, _ in self.failures)


class FallbackChain(Generic[T]):
    """Try each strategy once, in order, returning the first success.

    The policy lives in the list itself, so callers can test "SSR first,
    then JSON" or "batched first, then per-resource" without mocking
    nested error handling.
    """

    def __init__(self, name: str, strategies: list[Strategy[T]]) -> None:
        if not strategies:
            raise ValueError("FallbackChain needs at least one strategy")
        self.name = name
        self.strategies = list(strategies)

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self.strategies]

    async def run(self) -> FallbackResult[T]:
        """Run strategies in order.

        Raises:
            FallbackExhaustedError: when every strategy raised.
        """
        failures: list[tuple[str, BaseException]] = []
        for strategy in self.strategies:
            try:
                value = await strategy.run()
            except Exception as exc:
                logger.warning(
                    "Fetch strategy failed",
                    chain=self.name,
                    strategy=strategy.name,
                    error=str(exc),
                )
                failures.append((strategy.name, exc))
                continue
            if failures:
                logger.info(
                    "Fetch strategy recovered",
                    chain=self.name,
                    strategy=strategy.name,
                    failed=[name for name, _ in failures],
                )
            return FallbackResult(value=value, strategy=strategy.name, failures=failures)
        raise FallbackExhaustedError(self.name, failures)
