"""
Transport session for the push API.

Owns the single authoritative bus session handle:
- connect/close of the current WampSession
- subscribe/unsubscribe pass-through under a shared lock
- reconnect under an exclusive lock with a configurable retry policy
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from poloniex.config import PushConfig
from poloniex.errors import ConnectionError, SubscribeError
from poloniex.pushapi.session import EventHandler, WampSession
from poloniex.pushapi.types import SessionState

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], WampSession]


class SessionGate:
    """
    Shared/exclusive lock around the session handle.

    Any number of holders may share it (bus calls); the exclusive holder (reconnect)
    waits for them to finish and blocks new ones until it releases. Waiting writers
    take precedence over new readers.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def locked_exclusive(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class TransportSession:
    """
    Holds the authoritative WampSession and replaces it on reconnect.

    Subscribe and unsubscribe may run concurrently with each other and with event
    delivery; reconnect excludes them. Closing does not forget subscriptions: the
    topic registry keeps them so they can be re-established after reconnect.

    Usage:
        transport = TransportSession(PushConfig())
        await transport.connect()
        await transport.subscribe("ticker", handler)
    """

    def __init__(
        self,
        config: PushConfig,
        session_factory: Optional[SessionFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "push",
    ) -> None:
        """
        Initialize the session holder.

        Args:
            config: Push configuration (URI, realm, timeouts, retry policy)
            session_factory: Builds a new bus session; defaults to a WampSession
            sleep: Awaitable sleep used between reconnect attempts
            name: Name for logging purposes
        """
        self._config = config
        self._session_factory = session_factory or self._default_session
        self._sleep = sleep
        self._name = name

        self._gate = SessionGate()
        self._session: Optional[WampSession] = None
        self._state = SessionState.DISCONNECTED
        self._reconnect_count = 0

    def _default_session(self) -> WampSession:
        return WampSession(
            self._config.wss_uri,
            self._config.realm,
            connect_timeout_s=self._config.connect_timeout_s,
            request_timeout_s=self._config.request_timeout_s,
            name=self._name,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[WampSession]:
        """Current authoritative session handle (None before connect)."""
        return self._session

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def gate(self) -> SessionGate:
        return self._gate

    async def connect(self) -> None:
        """
        Open a new bus session and make it authoritative.

        Raises:
            ConnectionError: If the session cannot be established or joined
        """
        async with self._gate.exclusive():
            self._state = SessionState.CONNECTING
            try:
                await self._open_session()
            except ConnectionError:
                self._state = SessionState.DISCONNECTED
                raise

    async def _open_session(self) -> None:
        """Open a fresh session. Caller holds the exclusive lock."""
        session = self._session_factory()
        await session.open()
        self._session = session
        self._state = SessionState.CONNECTED

    async def close(self) -> None:
        """
        Close the current session.

        Raises:
            ConnectionError: If the underlying close fails
        """
        async with self._gate.shared():
            session = self._session
            if session is None:
                return
            try:
                await session.close()
            finally:
                self._state = SessionState.CLOSED

    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        """
        Subscribe `handler` to `topic` on the current session.

        Raises:
            SubscribeError: If there is no session or the bus rejects the call
        """
        async with self._gate.shared():
            if self._session is None:
                raise SubscribeError(
                    "Transport is not connected",
                    topic=topic,
                    component="TransportSession",
                )
            await self._session.subscribe(topic, handler)

    async def unsubscribe(self, topic: str) -> None:
        """
        Unsubscribe `topic` on the current session.

        Raises:
            SubscribeError: If there is no session or the bus rejects the call
        """
        async with self._gate.shared():
            if self._session is None:
                raise SubscribeError(
                    "Transport is not connected",
                    topic=topic,
                    component="TransportSession",
                )
            await self._session.unsubscribe(topic)

    async def reconnect(self) -> int:
        """
        Replace the current session with a new one.

        Closes the old session (failures are logged), then retries connect under the
        exclusive lock, waiting per the retry policy before every attempt. With the
        default policy this never gives up.

        Returns:
            Number of attempts it took

        Raises:
            ConnectionError: If the retry policy's attempt budget runs out
        """
        try:
            await self.close()
        except ConnectionError as e:
            logger.error(f"[{self._name}] Closing stale session failed: {e}")

        policy = self._config.retry
        async with self._gate.exclusive():
            self._state = SessionState.RECONNECTING
            attempt = 0
            while True:
                attempt += 1
                await self._sleep(policy.delay_for(attempt))
                try:
                    await self._open_session()
                    break
                except ConnectionError as e:
                    logger.error(f"[{self._name}] Reconnect attempt {attempt} failed: {e}")
                    if policy.exhausted(attempt):
                        self._state = SessionState.DISCONNECTED
                        raise ConnectionError(
                            f"Giving up after {attempt} reconnect attempts",
                            url=self._config.wss_uri,
                            attempt=attempt,
                            component="TransportSession",
                        ) from e

        self._reconnect_count += 1
        logger.info(f"[{self._name}] Reconnected after {attempt} attempt(s)")
        return attempt
