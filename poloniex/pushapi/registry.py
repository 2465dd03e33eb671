"""
Topic registry for the push API.

Remembers, per subscribed topic, how to subscribe it again and when it last
delivered a message, plus the last activity across all topics.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

from poloniex.errors import RegistryMiss

logger = logging.getLogger(__name__)

Resubscribe = Callable[[], Awaitable[None]]


@dataclass
class SubscriptionRecord:
    """Registry entry for one topic."""

    topic: str
    resubscribe: Resubscribe
    last_activity: float  # clock() time

    def idle_s(self, now: float) -> float:
        return now - self.last_activity


class TopicRegistry:
    """
    Topic name -> SubscriptionRecord, plus a global last-activity stamp.

    Every method takes the same lock and never awaits while holding it, so the
    receive path and the liveness monitor can use it from any task or thread.
    Entries survive reconnects; only remove() deletes them.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            clock: Monotonic time source for activity stamps
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, SubscriptionRecord] = {}
        self._last_activity = clock()

    def __contains__(self, topic: object) -> bool:
        with self._lock:
            return topic in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def topics(self) -> list[str]:
        with self._lock:
            return list(self._records)

    @property
    def last_activity(self) -> float:
        with self._lock:
            return self._last_activity

    def add(self, topic: str, resubscribe: Resubscribe) -> None:
        """Record (or overwrite) a topic and stamp it active now."""
        with self._lock:
            self._records[topic] = SubscriptionRecord(
                topic=topic,
                resubscribe=resubscribe,
                last_activity=self._clock(),
            )
        logger.debug(f"Registered topic: {topic}")

    def remove(self, topic: str) -> None:
        """
        Forget a topic.

        Raises:
            RegistryMiss: If the topic is not registered
        """
        with self._lock:
            if self._records.pop(topic, None) is None:
                raise RegistryMiss(topic, component="TopicRegistry")
        logger.debug(f"Removed topic: {topic}")

    def touch(self, topic: str) -> None:
        """Stamp global activity and, if registered, the topic's activity."""
        now = self._clock()
        with self._lock:
            self._last_activity = now
            record = self._records.get(topic)
            if record is not None:
                record.last_activity = now

    def mark_alive(self) -> None:
        """Stamp global activity only (e.g. right after a reconnect)."""
        now = self._clock()
        with self._lock:
            self._last_activity = now

    def get(self, topic: str) -> SubscriptionRecord:
        """
        Copy of one topic's record.

        Raises:
            RegistryMiss: If the topic is not registered
        """
        with self._lock:
            record = self._records.get(topic)
            if record is None:
                raise RegistryMiss(topic, component="TopicRegistry")
            return replace(record)

    def snapshot(self) -> dict[str, SubscriptionRecord]:
        """Copies of all records, safe to iterate while the registry changes."""
        with self._lock:
            return {topic: replace(record) for topic, record in self._records.items()}

    def global_idle_s(self) -> float:
        """Seconds since any topic delivered a message."""
        now = self._clock()
        with self._lock:
            return now - self._last_activity

    def stale_topics(self, threshold_s: float) -> dict[str, float]:
        """Topics idle for longer than `threshold_s`, with their idle seconds."""
        now = self._clock()
        with self._lock:
            return {
                topic: record.idle_s(now)
                for topic, record in self._records.items()
                if record.idle_s(now) > threshold_s
            }

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
