"""
Push API client - top-level orchestration.

Coordinates all push components:
- TransportSession for the bus session and reconnects
- TopicRegistry for subscribed topics and their activity
- LivenessMonitor for staleness detection and recovery
- Topic channels (ticker, trollbox, markets) for decoding and delivery
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Optional

from poloniex.config import PushConfig
from poloniex.errors import ConnectionError, RegistryMiss
from poloniex.pushapi.channels import (
    MarketChannel,
    TickerChannel,
    TopicChannel,
    TopicSubscription,
    TrollboxChannel,
)
from poloniex.pushapi.health import LivenessMonitor
from poloniex.pushapi.registry import TopicRegistry
from poloniex.pushapi.transport import TransportSession
from poloniex.pushapi.types import ClientState, MarketUpdates, Tick, TrollboxMessage

logger = logging.getLogger(__name__)


class PushClient:
    """
    Client for the Poloniex push API.

    One bus session is kept alive for the lifetime of the client. Subscriptions
    survive reconnects: the caller keeps reading the same TopicSubscription and
    only sees a gap in delivery while the session is re-established.

    State Machine:
        [STOPPED] --start()--> [STARTING] --connected--> [RUNNING]
                                   |                        |
                              (error) -> [STOPPED]    [STOPPING] --> [STOPPED]

    Usage:
        async with PushClient(PushConfig()) as client:
            ticks = await client.subscribe_ticker()
            async for tick in ticks:
                print(tick.currency_pair, tick.last)
    """

    def __init__(
        self,
        config: Optional[PushConfig] = None,
        transport: Optional[TransportSession] = None,
        registry: Optional[TopicRegistry] = None,
        name: str = "push",
    ) -> None:
        """
        Initialize the push client.

        Args:
            config: Push configuration (defaults to PushConfig())
            transport: Session holder to use instead of one built from config
            registry: Topic registry to use instead of a fresh one
            name: Name for logging purposes
        """
        self._config = config if config is not None else PushConfig()
        self._name = name

        self._registry = registry if registry is not None else TopicRegistry()
        self._transport = (
            transport if transport is not None else TransportSession(self._config, name=name)
        )
        self._monitor = LivenessMonitor(self._config, self._transport, self._registry, name=name)

        self._state = ClientState.STOPPED
        self._ticker: Optional[TickerChannel] = None
        self._trollbox: Optional[TrollboxChannel] = None
        self._markets: dict[str, MarketChannel] = {}

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def config(self) -> PushConfig:
        return self._config

    @property
    def registry(self) -> TopicRegistry:
        return self._registry

    @property
    def transport(self) -> TransportSession:
        return self._transport

    @property
    def monitor(self) -> LivenessMonitor:
        return self._monitor

    async def __aenter__(self) -> PushClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """
        Connect to the bus and start liveness monitoring.

        Raises:
            ConnectionError: If the first session cannot be established
        """
        if self._state != ClientState.STOPPED:
            logger.warning(f"[{self._name}] Cannot start from state: {self._state.value}")
            return

        logger.info(f"[{self._name}] Starting push client...")
        self._state = ClientState.STARTING
        try:
            await self._transport.connect()
        except ConnectionError:
            self._state = ClientState.STOPPED
            raise

        self._registry.mark_alive()
        await self._monitor.start()
        self._state = ClientState.RUNNING
        logger.info(f"[{self._name}] Push client started")

    async def stop(self) -> None:
        """End every subscription, stop monitoring and close the session."""
        if self._state in (ClientState.STOPPED, ClientState.STOPPING):
            return

        logger.info(f"[{self._name}] Stopping push client...")
        self._state = ClientState.STOPPING

        await self._monitor.stop()

        for channel in self._channels():
            await channel.shutdown()
        self._markets.clear()

        try:
            await self._transport.close()
        except ConnectionError as e:
            logger.warning(f"[{self._name}] Error closing session: {e}")

        self._state = ClientState.STOPPED
        logger.info(f"[{self._name}] Push client stopped")

    def _channels(self) -> list[TopicChannel[Any]]:
        channels: list[TopicChannel[Any]] = list(self._markets.values())
        if self._ticker is not None:
            channels.append(self._ticker)
        if self._trollbox is not None:
            channels.append(self._trollbox)
        return channels

    # --- Ticker ---

    async def subscribe_ticker(self) -> TopicSubscription[Tick]:
        """
        Subscribe to ticker updates for all markets.

        Raises:
            SubscribeError: If the bus rejects the subscription
        """
        if self._ticker is None:
            self._ticker = TickerChannel(
                self._transport, self._registry, self._config.channel_capacity
            )
        return await self._ticker.subscribe()

    async def unsubscribe_ticker(self) -> None:
        """
        Raises:
            SubscribeError: If the bus rejects the unsubscribe
        """
        if self._ticker is None:
            logger.warning(f"[{self._name}] {RegistryMiss('ticker')}")
            return
        await self._ticker.unsubscribe()

    # --- Trollbox ---

    async def subscribe_trollbox(self) -> TopicSubscription[TrollboxMessage]:
        """
        Subscribe to trollbox messages.

        Raises:
            SubscribeError: If the bus rejects the subscription
        """
        if self._trollbox is None:
            self._trollbox = TrollboxChannel(
                self._transport, self._registry, self._config.channel_capacity
            )
        return await self._trollbox.subscribe()

    async def unsubscribe_trollbox(self) -> None:
        """
        Raises:
            SubscribeError: If the bus rejects the unsubscribe
        """
        if self._trollbox is None:
            logger.warning(f"[{self._name}] {RegistryMiss('trollbox')}")
            return
        await self._trollbox.unsubscribe()

    # --- Order book and trades ---

    async def subscribe_market(self, currency_pair: str) -> TopicSubscription[MarketUpdates]:
        """
        Subscribe to order book and trade updates for one market, e.g. "BTC_XMR".

        Batches carry the exchange sequence number; they are delivered in the
        order received and heartbeats are not delivered.

        Raises:
            SubscribeError: If the bus rejects the subscription
        """
        pair = currency_pair.upper()
        channel = self._markets.get(pair)
        if channel is None:
            channel = MarketChannel(
                pair, self._transport, self._registry, self._config.channel_capacity
            )
            self._markets[pair] = channel

        try:
            return await channel.subscribe()
        except Exception:
            if not channel.is_subscribed:
                self._markets.pop(pair, None)
            raise

    async def unsubscribe_market(self, currency_pair: str) -> None:
        """
        Raises:
            SubscribeError: If the bus rejects the unsubscribe
        """
        pair = currency_pair.upper()
        channel = self._markets.get(pair)
        if channel is None:
            logger.warning(f"[{self._name}] {RegistryMiss(pair)}")
            return

        await channel.unsubscribe()
        self._markets.pop(pair, None)

    def get_stats(self) -> dict[str, Any]:
        """Get statistics summary."""
        monitor = self._monitor.stats
        stats: dict[str, Any] = {
            "state": self._state.value,
            "session_state": self._transport.state.value,
            "topics": self._registry.topics,
            "reconnects": monitor.reconnects,
            "reconnect_failures": monitor.reconnect_failures,
            "resubscribes": monitor.resubscribes,
            "resubscribe_failures": monitor.resubscribe_failures,
            "channels": {},
        }
        for channel in self._channels():
            stats["channels"][channel.topic] = {
                "received": channel.stats.messages_received,
                "delivered": channel.stats.events_delivered,
                "abandoned": channel.stats.events_abandoned,
                "heartbeats": channel.stats.heartbeats,
                "decode_errors": channel.stats.decode_errors,
            }
        return stats
