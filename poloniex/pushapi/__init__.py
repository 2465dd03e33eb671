"""
Poloniex Push API Module.

Streams ticker, trollbox, and order book/trade updates from the Poloniex push
API (WAMP over websocket) and keeps subscriptions alive across silent
disconnects.

Components:
- PushClient: Top-level orchestration and lifecycle management
- TransportSession: Authoritative bus session, shared/exclusive locking, reconnects
- WampSession: One websocket session (join, subscribe, event dispatch)
- TopicRegistry: Subscribed topics, resubscribe actions, activity timestamps
- LivenessMonitor: Global/per-topic staleness detection and recovery
- Channels: TickerChannel, TrollboxChannel, MarketChannel decoding and delivery

Usage:
    from poloniex.pushapi import PushClient, PushConfig

    async with PushClient(PushConfig()) as client:
        books = await client.subscribe_market("BTC_XMR")
        async for batch in books:
            print(batch.sequence, batch.updates)
"""

from poloniex.config import PushConfig, RetryPolicy
from poloniex.errors import (
    ConnectionError,
    DecodeError,
    PoloniexError,
    RegistryMiss,
    SubscribeError,
)
from poloniex.pushapi.channels import TopicSubscription
from poloniex.pushapi.client import PushClient
from poloniex.pushapi.types import (
    TICKER,
    TROLLBOX,
    BookSide,
    MarketUpdates,
    NewTrade,
    OrderBookModify,
    OrderBookRemove,
    Tick,
    TradeSide,
    TrollboxMessage,
    UnknownUpdate,
)

__all__ = [
    # Main entry point
    "PushClient",
    "PushConfig",
    "RetryPolicy",
    "TopicSubscription",
    # Events
    "TICKER",
    "TROLLBOX",
    "Tick",
    "TrollboxMessage",
    "MarketUpdates",
    "OrderBookModify",
    "OrderBookRemove",
    "NewTrade",
    "UnknownUpdate",
    "BookSide",
    "TradeSide",
    # Errors
    "PoloniexError",
    "ConnectionError",
    "SubscribeError",
    "DecodeError",
    "RegistryMiss",
]
