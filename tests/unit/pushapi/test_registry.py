"""
Unit tests for TopicRegistry.
"""

from unittest.mock import AsyncMock

import pytest

from poloniex.errors import RegistryMiss
from poloniex.pushapi.registry import TopicRegistry


class TestTopicRegistry:
    """Tests for TopicRegistry."""

    def test_add_stamps_now(self, registry: TopicRegistry, clock) -> None:
        """Test adding a topic records the current time."""
        registry.add("ticker", AsyncMock())

        assert "ticker" in registry
        assert len(registry) == 1
        assert registry.get("ticker").last_activity == clock.now

    def test_add_overwrites(self, registry: TopicRegistry, clock) -> None:
        """Test re-adding a topic replaces its action and timestamp."""
        first, second = AsyncMock(), AsyncMock()
        registry.add("ticker", first)
        clock.advance(10)
        registry.add("ticker", second)

        record = registry.get("ticker")
        assert record.resubscribe is second
        assert record.last_activity == clock.now
        assert len(registry) == 1

    def test_remove(self, registry: TopicRegistry) -> None:
        """Test removing a topic deletes its entry."""
        registry.add("BTC_XMR", AsyncMock())
        registry.remove("BTC_XMR")

        assert "BTC_XMR" not in registry
        assert registry.topics == []

    def test_remove_unknown_raises(self, registry: TopicRegistry) -> None:
        """Test removing an unregistered topic raises RegistryMiss."""
        with pytest.raises(RegistryMiss) as exc_info:
            registry.remove("trollbox")

        assert exc_info.value.topic == "trollbox"
        assert "Topic not registered: trollbox" in str(exc_info.value)

    def test_touch_stamps_topic_and_global(self, registry: TopicRegistry, clock) -> None:
        """Test touch updates both the topic and the global timestamp."""
        registry.add("ticker", AsyncMock())
        clock.advance(30)

        registry.touch("ticker")

        assert registry.get("ticker").last_activity == clock.now
        assert registry.last_activity == clock.now
        assert registry.global_idle_s() == 0

    def test_touch_unregistered_only_global(self, registry: TopicRegistry, clock) -> None:
        """Test touching an unknown topic proves liveness without creating an entry."""
        clock.advance(30)
        registry.touch("BTC_ETH")

        assert "BTC_ETH" not in registry
        assert registry.last_activity == clock.now

    def test_mark_alive_leaves_topics(self, registry: TopicRegistry, clock) -> None:
        """Test mark_alive stamps only the global timestamp."""
        registry.add("ticker", AsyncMock())
        added_at = clock.now
        clock.advance(100)

        registry.mark_alive()

        assert registry.global_idle_s() == 0
        assert registry.get("ticker").last_activity == added_at

    def test_stale_topics(self, registry: TopicRegistry, clock) -> None:
        """Test stale_topics reports topics idle beyond the threshold."""
        registry.add("ticker", AsyncMock())
        clock.advance(400)
        registry.add("trollbox", AsyncMock())
        clock.advance(300)

        stale = registry.stale_topics(600.0)

        assert stale == {"ticker": 700.0}

    def test_snapshot_is_a_copy(self, registry: TopicRegistry, clock) -> None:
        """Test snapshot entries do not change when the registry does."""
        registry.add("ticker", AsyncMock())
        snapshot = registry.snapshot()

        clock.advance(5)
        registry.touch("ticker")
        registry.remove("ticker")

        assert snapshot["ticker"].last_activity == clock.now - 5

    def test_get_unknown_raises(self, registry: TopicRegistry) -> None:
        """Test get on an unregistered topic raises RegistryMiss."""
        with pytest.raises(RegistryMiss):
            registry.get("BTC_XMR")

    def test_clear(self, registry: TopicRegistry) -> None:
        """Test clear forgets every topic."""
        registry.add("ticker", AsyncMock())
        registry.add("trollbox", AsyncMock())
        registry.clear()

        assert len(registry) == 0
