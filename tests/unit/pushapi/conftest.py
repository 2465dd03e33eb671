"""
Shared fixtures for push API tests.

The bus is replaced by FakeBusSession, which records subscribe/unsubscribe calls
and lets a test publish payloads straight into the registered handlers.
"""

from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from poloniex.config import PushConfig, RetryPolicy
from poloniex.pushapi.registry import TopicRegistry
from poloniex.pushapi.transport import TransportSession


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBusSession:
    """Stand-in for WampSession."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.open = AsyncMock()
        self.close = AsyncMock()
        self.subscribe = AsyncMock(side_effect=self._subscribe)
        self.unsubscribe = AsyncMock(side_effect=self._unsubscribe)

    async def _subscribe(self, topic: str, handler: Any) -> int:
        self.handlers[topic] = handler
        return len(self.handlers)

    async def _unsubscribe(self, topic: str) -> None:
        self.handlers.pop(topic, None)

    async def publish(
        self, topic: str, args: list[Any], kwargs: Optional[dict[str, Any]] = None
    ) -> None:
        await self.handlers[topic](args, kwargs or {})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> TopicRegistry:
    return TopicRegistry(clock=clock)


@pytest.fixture
def push_config() -> PushConfig:
    """Fast config: default timeouts, no reconnect delay."""
    return PushConfig(timeout_s=60.0, topic_timeout_s=600.0, retry=RetryPolicy(delay_s=0.0))


@pytest.fixture
def sessions() -> list[FakeBusSession]:
    """Every session the transport opened, oldest first."""
    return []


@pytest.fixture
def transport(push_config: PushConfig, sessions: list[FakeBusSession]) -> TransportSession:
    def factory() -> FakeBusSession:
        session = FakeBusSession()
        sessions.append(session)
        return session

    return TransportSession(
        push_config,
        session_factory=factory,  # type: ignore[arg-type]
        sleep=AsyncMock(),
    )
