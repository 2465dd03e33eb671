"""
Liveness monitor for the push API.

Runs for the lifetime of the client and, once per global timeout period:
- reconnects the transport and resubscribes every registered topic when no
  message arrived on any topic for longer than the global timeout
- otherwise resubscribes, one by one, topics silent for longer than the
  per-topic timeout

Staleness is recomputed from the registry's timestamps on every cycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from poloniex.config import PushConfig
from poloniex.errors import ConnectionError
from poloniex.pushapi.registry import SubscriptionRecord, TopicRegistry
from poloniex.pushapi.transport import TransportSession
from poloniex.pushapi.types import LivenessAction

logger = logging.getLogger(__name__)


@dataclass
class LivenessStats:
    """Counters for the liveness monitor."""

    checks: int = 0
    reconnects: int = 0
    reconnect_failures: int = 0
    resubscribes: int = 0
    resubscribe_failures: int = 0


class LivenessMonitor:
    """
    Watches global and per-topic activity and drives recovery.

    Per cycle:
        [healthy] --global stale--> reconnect + resubscribe all --> [healthy]
        [healthy] --topic stale--> resubscribe that topic ---------> [healthy]
    """

    def __init__(
        self,
        config: PushConfig,
        transport: TransportSession,
        registry: TopicRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "push",
    ) -> None:
        """
        Initialize the liveness monitor.

        Args:
            config: Push configuration; timeout_s is both the cycle period and
                the global staleness limit
            transport: Session holder to reconnect
            registry: Registry whose timestamps decide staleness
            sleep: Awaitable sleep between cycles
            name: Name for logging purposes
        """
        self._config = config
        self._transport = transport
        self._registry = registry
        self._sleep = sleep
        self._name = name

        self._stats = LivenessStats()
        self._monitor_task: Optional[asyncio.Task[None]] = None

    @property
    def stats(self) -> LivenessStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def start(self) -> None:
        """Start the monitoring loop."""
        if self.is_running:
            logger.warning(f"[{self._name}] Liveness monitor already running")
            return

        self._monitor_task = asyncio.create_task(
            self._monitor_loop(), name=f"{self._name}_liveness"
        )
        logger.info(f"[{self._name}] Liveness monitor started")

    async def stop(self) -> None:
        """Stop the monitoring loop."""
        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        logger.info(f"[{self._name}] Liveness monitor stopped")

    async def _monitor_loop(self) -> None:
        try:
            while True:
                await self._sleep(self._config.timeout_s)
                try:
                    await self.check()
                except Exception as e:
                    logger.error(f"[{self._name}] Liveness check failed: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Liveness loop cancelled")
            raise

    async def check(self) -> LivenessAction:
        """Run one check cycle and report what it did."""
        self._stats.checks += 1

        idle_s = self._registry.global_idle_s()
        if idle_s > self._config.timeout_s:
            logger.warning(f"[{self._name}] No message for {idle_s:.1f}s, auto reconnecting...")
            return await self._reconnect()

        stale = self._registry.stale_topics(self._config.topic_timeout_s)
        if not stale:
            return LivenessAction.HEALTHY

        records = self._registry.snapshot()
        for topic, topic_idle_s in stale.items():
            record = records.get(topic)
            if record is None:
                continue
            logger.info(
                f"[{self._name}] {topic}: no update for {topic_idle_s:.1f}s, resubscribing..."
            )
            await self._resubscribe(record)

        return LivenessAction.RESUBSCRIBED

    async def _reconnect(self) -> LivenessAction:
        # Topics present now are the ones restored after the reconnect
        records = self._registry.snapshot()

        try:
            await self._transport.reconnect()
        except ConnectionError as e:
            self._stats.reconnect_failures += 1
            logger.error(f"[{self._name}] Auto reconnect failed: {e}")
            return LivenessAction.RECONNECT_FAILED

        self._stats.reconnects += 1
        self._registry.mark_alive()

        logger.info(f"[{self._name}] Resubscribing {len(records)} topics")
        for topic, record in records.items():
            if topic not in self._registry:
                logger.debug(f"[{self._name}] {topic} unsubscribed during reconnect, skipping")
                continue
            await self._resubscribe(record)

        return LivenessAction.RECONNECTED

    async def _resubscribe(self, record: SubscriptionRecord) -> None:
        """Replay one topic's subscribe call; failures are logged, not raised."""
        try:
            await record.resubscribe()
        except Exception as e:
            self._stats.resubscribe_failures += 1
            logger.error(f"[{self._name}] Resubscribing {record.topic} failed: {e}")
            return

        self._stats.resubscribes += 1
        self._registry.touch(record.topic)
