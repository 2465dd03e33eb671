"""
Shared types, enums, and event structures for the push API.

Decoded events are immutable snapshots of one bus message. Market updates are a
tagged union over the sub-event kinds the exchange sends in one message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

# Fixed topic names
TICKER = "ticker"
TROLLBOX = "trollbox"

# Reputation reported when the trollbox message carries none
NO_REPUTATION = -1


class ClientState(str, Enum):
    """Lifecycle of a PushClient."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SessionState(str, Enum):
    """State of the bus session held by the transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class LivenessAction(str, Enum):
    """Outcome of one liveness check cycle."""

    HEALTHY = "healthy"
    RECONNECTED = "reconnected"
    RECONNECT_FAILED = "reconnect_failed"
    RESUBSCRIBED = "resubscribed"


class MarketUpdateType(str, Enum):
    """Type discriminator of a market sub-event."""

    ORDER_BOOK_MODIFY = "orderBookModify"
    ORDER_BOOK_REMOVE = "orderBookRemove"
    NEW_TRADE = "newTrade"


class BookSide(str, Enum):
    BID = "bid"
    ASK = "ask"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True, slots=True)
class Tick:
    """One ticker update: [pair, last, lowestAsk, highestBid, percentChange,
    baseVolume, quoteVolume, isFrozen, high24hr, low24hr]."""

    currency_pair: str
    last: float
    lowest_ask: float
    highest_bid: float
    percent_change: float
    base_volume: float
    quote_volume: float
    is_frozen: bool
    high_24hr: float
    low_24hr: float


@dataclass(frozen=True, slots=True)
class TrollboxMessage:
    """One trollbox message: [type, messageNumber, username, message, reputation?]."""

    message_type: str
    message_number: int
    username: str
    message: str
    reputation: int = NO_REPUTATION


@dataclass(frozen=True, slots=True)
class OrderBookModify:
    """Resting amount at `rate` is now `amount` (replaces, not a delta)."""

    rate: float
    side: BookSide
    amount: float

    @property
    def type(self) -> str:
        return MarketUpdateType.ORDER_BOOK_MODIFY.value


@dataclass(frozen=True, slots=True)
class OrderBookRemove:
    """Price level `rate` left the book."""

    rate: float
    side: BookSide

    @property
    def type(self) -> str:
        return MarketUpdateType.ORDER_BOOK_REMOVE.value


@dataclass(frozen=True, slots=True)
class NewTrade:
    """A trade printed on the market. `timestamp` is Unix seconds (UTC)."""

    trade_id: int
    rate: float
    amount: float
    total: float
    side: TradeSide
    timestamp: int

    @property
    def type(self) -> str:
        return MarketUpdateType.NEW_TRADE.value


@dataclass(frozen=True, slots=True)
class UnknownUpdate:
    """Sub-event with a discriminator this client does not know; kept raw."""

    type: str
    data: Mapping[str, Any]


MarketUpdate = Union[OrderBookModify, OrderBookRemove, NewTrade, UnknownUpdate]


@dataclass(frozen=True, slots=True)
class MarketUpdates:
    """
    One market message: exchange sequence number plus its sub-events in wire order.

    Batches are delivered in the order the bus delivered them, which is not
    necessarily sequence order.
    """

    currency_pair: str
    sequence: int
    updates: tuple[MarketUpdate, ...]

    @property
    def is_heartbeat(self) -> bool:
        return not self.updates
