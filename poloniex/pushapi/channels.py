"""
Topic channel adapters for the push API.

Each adapter owns one topic: it decodes the bus payload, stamps liveness and
hands the event to the caller through a TopicSubscription. A subscription pairs
the delivery queue with an unsubscribed signal, so a handler blocked on a full
queue gives up as soon as the caller unsubscribes.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from poloniex.errors import DecodeError, RegistryMiss
from poloniex.pushapi.handlers import decode_market_updates, decode_ticker, decode_trollbox
from poloniex.pushapi.registry import TopicRegistry
from poloniex.pushapi.transport import TransportSession
from poloniex.pushapi.types import TICKER, TROLLBOX, MarketUpdates, Tick, TrollboxMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TopicSubscription(Generic[T]):
    """
    Caller's handle on one subscribed topic.

    Events are read with get() or `async for`. When the topic is unsubscribed a
    single None is queued as the end marker; iteration stops there.
    """

    def __init__(self, topic: str, capacity: int = 1) -> None:
        """
        Args:
            topic: Bus topic this subscription reads
            capacity: Queue size; deliveries wait while it is full
        """
        self.topic = topic
        self.queue: asyncio.Queue[Optional[T]] = asyncio.Queue(maxsize=capacity)
        self._unsubscribed = asyncio.Event()
        # Serializes deliveries against the end marker
        self._lock = asyncio.Lock()
        self._ended = False

        self.delivered = 0
        self.abandoned = 0

    @property
    def closed(self) -> bool:
        """True once unsubscribed."""
        return self._unsubscribed.is_set()

    def __aiter__(self) -> TopicSubscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._ended:
            raise StopAsyncIteration
        item = await self.get()
        if item is None:
            self._ended = True
            raise StopAsyncIteration
        return item

    async def get(self) -> Optional[T]:
        """Await the next event; None means the topic was unsubscribed."""
        item = await self.queue.get()
        self.queue.task_done()
        return item

    def depth(self) -> int:
        return self.queue.qsize()

    async def wait_closed(self) -> None:
        await self._unsubscribed.wait()

    async def deliver(self, event: T) -> bool:
        """
        Queue an event, waiting for room unless the topic gets unsubscribed first.

        Returns:
            True if queued, False if abandoned because of unsubscribe
        """
        async with self._lock:
            if self._unsubscribed.is_set():
                self.abandoned += 1
                return False

            put = asyncio.ensure_future(self.queue.put(event))
            closed = asyncio.ensure_future(self._unsubscribed.wait())
            try:
                await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                closed.cancel()
                if not put.done():
                    put.cancel()
                try:
                    await put
                except asyncio.CancelledError:
                    pass

            if put.cancelled():
                self.abandoned += 1
                return False

            self.delivered += 1
            return True

    async def close(self) -> None:
        """
        Fire the unsubscribed signal, then queue the end marker (idempotent).

        A full queue loses its oldest unread event to make room for the marker.
        That event is moved from the delivered count to the abandoned count, so
        the consumer still sees the newer events followed by the end marker.
        """
        if self._unsubscribed.is_set():
            return
        self._unsubscribed.set()

        async with self._lock:
            try:
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                try:
                    victim = self.queue.get_nowait()
                    self.queue.task_done()
                    self.delivered -= 1
                    self.abandoned += 1
                    logger.debug(f"[{self.topic}] Evicted {victim!r:.80} for the end marker")
                except asyncio.QueueEmpty:
                    pass
                self.queue.put_nowait(None)


@dataclass
class ChannelStats:
    """Statistics for a topic channel."""

    messages_received: int = 0
    events_delivered: int = 0
    events_abandoned: int = 0
    heartbeats: int = 0
    decode_errors: int = 0


class TopicChannel(ABC, Generic[T]):
    """
    Base adapter binding one bus topic to a TopicSubscription.

    Each subscribe() after an unsubscribe() starts a new TopicSubscription, so a
    fired unsubscribed signal is never carried into the next subscription.
    """

    def __init__(
        self,
        topic: str,
        transport: TransportSession,
        registry: TopicRegistry,
        capacity: int = 1,
        name: str = "channel",
    ) -> None:
        """
        Initialize the channel adapter.

        Args:
            topic: Bus topic (e.g. "ticker" or "BTC_XMR")
            transport: Session holder used for bus calls
            registry: Registry the topic is recorded in while subscribed
            capacity: Queue size of each TopicSubscription
            name: Name for logging purposes
        """
        self._topic = topic
        self._transport = transport
        self._registry = registry
        self._capacity = capacity
        self._name = name

        self._subscription: TopicSubscription[T] = TopicSubscription(topic, capacity)
        self._subscribed = False
        self._stats = ChannelStats()

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    @property
    def subscription(self) -> TopicSubscription[T]:
        return self._subscription

    @property
    def stats(self) -> ChannelStats:
        return self._stats

    async def handle(self, args: list[Any], kwargs: dict[str, Any]) -> None:
        """Bus handler: decode, stamp liveness, deliver."""
        self._stats.messages_received += 1

        try:
            event = self._decode(args, kwargs)
        except DecodeError as e:
            self._stats.decode_errors += 1
            logger.warning(f"[{self._name}] Dropping message: {e}")
            return

        self._registry.touch(self._topic)

        if event is None:
            self._stats.heartbeats += 1
            return

        if await self._subscription.deliver(event):
            self._stats.events_delivered += 1
        else:
            self._stats.events_abandoned += 1

    @abstractmethod
    def _decode(self, args: list[Any], kwargs: dict[str, Any]) -> Optional[T]:
        """Decode a bus message. Return None for messages that only prove liveness."""
        ...

    async def subscribe(self) -> TopicSubscription[T]:
        """
        Subscribe the topic on the bus and register it for resubscription.

        Calling it while already subscribed returns the current subscription.

        Raises:
            SubscribeError: If the bus rejects the subscription
        """
        if self._subscribed:
            return self._subscription

        if self._subscription.closed:
            self._subscription = TopicSubscription(self._topic, self._capacity)

        await self._transport.subscribe(self._topic, self.handle)
        self._registry.add(self._topic, self._resubscribe)
        self._subscribed = True
        return self._subscription

    async def _resubscribe(self) -> None:
        # A snapshot taken before unsubscribe() may still hold this action
        if not self._subscribed:
            logger.debug(f"[{self._name}] Skipping resubscribe of unsubscribed {self._topic}")
            return

        await self._transport.subscribe(self._topic, self.handle)

        if not self._subscribed:
            # unsubscribe() ran while the subscribe call was in flight
            await self._transport.unsubscribe(self._topic)

    async def unsubscribe(self) -> None:
        """
        Unsubscribe on the bus, forget the topic and end the subscription.

        Unsubscribing a topic that is not subscribed logs a warning and does nothing.

        Raises:
            SubscribeError: If the bus rejects the unsubscribe
        """
        if not self._subscribed:
            logger.warning(f"[{self._name}] {RegistryMiss(self._topic)}")
            return

        self._subscribed = False
        try:
            await self._transport.unsubscribe(self._topic)
        except Exception:
            self._subscribed = True
            raise
        self._release()
        await self._subscription.close()

    async def shutdown(self) -> None:
        """End the subscription without talking to the bus (client shutdown)."""
        if self._subscribed:
            self._subscribed = False
            self._release()
        await self._subscription.close()

    def _release(self) -> None:
        try:
            self._registry.remove(self._topic)
        except RegistryMiss as e:
            logger.warning(f"[{self._name}] {e}")


class TickerChannel(TopicChannel[Tick]):
    """Adapter for the "ticker" topic."""

    def __init__(
        self,
        transport: TransportSession,
        registry: TopicRegistry,
        capacity: int = 1,
    ) -> None:
        super().__init__(TICKER, transport, registry, capacity, name="TickerChannel")

    def _decode(self, args: list[Any], kwargs: dict[str, Any]) -> Optional[Tick]:
        return decode_ticker(args)


class TrollboxChannel(TopicChannel[TrollboxMessage]):
    """Adapter for the "trollbox" topic."""

    def __init__(
        self,
        transport: TransportSession,
        registry: TopicRegistry,
        capacity: int = 1,
    ) -> None:
        super().__init__(TROLLBOX, transport, registry, capacity, name="TrollboxChannel")

    def _decode(self, args: list[Any], kwargs: dict[str, Any]) -> Optional[TrollboxMessage]:
        return decode_trollbox(args)


class MarketChannel(TopicChannel[MarketUpdates]):
    """
    Adapter for one currency pair's order book and trade topic (e.g. "BTC_XMR").

    Batches are delivered in bus order; heartbeats (no sub-events) only stamp
    liveness.
    """

    def __init__(
        self,
        currency_pair: str,
        transport: TransportSession,
        registry: TopicRegistry,
        capacity: int = 1,
    ) -> None:
        """
        Args:
            currency_pair: Market topic, already upper-cased (e.g. "BTC_XMR")
            transport: Session holder used for bus calls
            registry: Registry the topic is recorded in while subscribed
            capacity: Queue size of each TopicSubscription
        """
        super().__init__(
            currency_pair, transport, registry, capacity, name=f"MarketChannel:{currency_pair}"
        )

    def _decode(self, args: list[Any], kwargs: dict[str, Any]) -> Optional[MarketUpdates]:
        batch = decode_market_updates(self._topic, args, kwargs)
        if batch.is_heartbeat:
            return None
        return batch
