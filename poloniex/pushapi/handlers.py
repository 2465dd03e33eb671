"""
Payload decoders for push API topics.

The bus sends positional arrays (ticker, trollbox) or lists of typed sub-events
(markets). Numbers arrive as decimal strings except for a few integer flags.
Every decoder raises DecodeError on the first field that does not fit, so the
whole message is dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from poloniex.errors import DecodeError
from poloniex.pushapi.types import (
    NO_REPUTATION,
    TICKER,
    TROLLBOX,
    BookSide,
    MarketUpdate,
    MarketUpdates,
    MarketUpdateType,
    NewTrade,
    OrderBookModify,
    OrderBookRemove,
    Tick,
    TradeSide,
    TrollboxMessage,
    UnknownUpdate,
)

logger = logging.getLogger(__name__)

TICKER_FIELDS = 10
TRADE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _string(value: Any, field_name: str, topic: Optional[str] = None) -> str:
    if not isinstance(value, str):
        raise DecodeError(
            f"Invalid string value for {field_name}: {value!r}",
            topic=topic,
            expected_type="str",
        )
    return value


def _decimal_string(value: Any, field_name: str, topic: Optional[str] = None) -> float:
    """Parse a number the exchange sends as a decimal string."""
    text = _string(value, field_name, topic)
    try:
        return float(text)
    except ValueError as e:
        raise DecodeError(
            f"Invalid decimal string for {field_name}: {value!r}",
            topic=topic,
            expected_type="float",
        ) from e


def _number(value: Any, field_name: str, topic: Optional[str] = None) -> float:
    """Accept a JSON number (bool is not a number here)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(
            f"Invalid number for {field_name}: {value!r}",
            topic=topic,
            expected_type="number",
        )
    return value


def _integer_string(value: Any, field_name: str, topic: Optional[str] = None) -> int:
    text = _string(value, field_name, topic)
    try:
        return int(text)
    except ValueError as e:
        raise DecodeError(
            f"Invalid integer string for {field_name}: {value!r}",
            topic=topic,
            expected_type="int",
        ) from e


def _trade_timestamp(value: Any, topic: Optional[str] = None) -> int:
    """'YYYY-MM-DD HH:MM:SS' in UTC -> Unix seconds."""
    text = _string(value, "date", topic)
    try:
        parsed = datetime.strptime(text, TRADE_DATE_FORMAT)
    except ValueError as e:
        raise DecodeError(
            f"Invalid trade date: {value!r}",
            topic=topic,
            expected_type="datetime",
        ) from e
    return int(parsed.replace(tzinfo=timezone.utc).timestamp())


def _field(data: Mapping[str, Any], key: str, topic: Optional[str]) -> Any:
    try:
        return data[key]
    except KeyError as e:
        raise DecodeError(
            f"Missing required field: {key}",
            topic=topic,
            expected_type="field",
        ) from e


# --- Ticker ---


def decode_ticker(args: list[Any]) -> Tick:
    """
    Decode one ticker update.

    Format:
        [currencyPair, last, lowestAsk, highestBid, percentChange,
         baseVolume, quoteVolume, isFrozen, 24hrHigh, 24hrLow]

    Example:
        ['BTC_BBR', '0.00069501', '0.00074346', '0.00069501', '-0.00742634',
         '8.63286802', '11983.47150109', 0, '0.00107920', '0.00045422']
    """
    if len(args) != TICKER_FIELDS:
        raise DecodeError(
            f"Ticker update has {len(args)} fields, expected {TICKER_FIELDS}",
            topic=TICKER,
            expected_type="ticker",
        )

    return Tick(
        currency_pair=_string(args[0], "currency_pair", TICKER),
        last=_decimal_string(args[1], "last", TICKER),
        lowest_ask=_decimal_string(args[2], "lowest_ask", TICKER),
        highest_bid=_decimal_string(args[3], "highest_bid", TICKER),
        percent_change=_decimal_string(args[4], "percent_change", TICKER),
        base_volume=_decimal_string(args[5], "base_volume", TICKER),
        quote_volume=_decimal_string(args[6], "quote_volume", TICKER),
        is_frozen=_number(args[7], "is_frozen", TICKER) != 0,
        high_24hr=_decimal_string(args[8], "high_24hr", TICKER),
        low_24hr=_decimal_string(args[9], "low_24hr", TICKER),
    )


# --- Trollbox ---


def decode_trollbox(args: list[Any]) -> TrollboxMessage:
    """
    Decode one trollbox message.

    Format:
        [type, messageNumber, username, message, reputation]

    Reputation is optional; without it the message reports NO_REPUTATION (-1).
    """
    if len(args) not in (4, 5):
        raise DecodeError(
            f"Trollbox message has {len(args)} fields, expected 4 or 5",
            topic=TROLLBOX,
            expected_type="trollbox",
        )

    reputation = NO_REPUTATION
    if len(args) == 5:
        reputation = int(_number(args[4], "reputation", TROLLBOX))

    return TrollboxMessage(
        message_type=_string(args[0], "message_type", TROLLBOX),
        message_number=int(_number(args[1], "message_number", TROLLBOX)),
        username=_string(args[2], "username", TROLLBOX),
        message=_string(args[3], "message", TROLLBOX),
        reputation=reputation,
    )


# --- Markets ---


def decode_market_updates(
    currency_pair: str,
    args: list[Any],
    kwargs: Mapping[str, Any],
) -> MarketUpdates:
    """
    Decode one market message into a batch.

    The sequence number travels as the keyword argument `seq`; the positional
    arguments are `{"type": ..., "data": {...}}` sub-events. A message without
    sub-events is a heartbeat and decodes to an empty batch.
    """
    seq = kwargs.get("seq")
    if seq is None:
        raise DecodeError(
            "Missing 'seq' keyword argument", topic=currency_pair, expected_type="seq"
        )
    sequence = int(_number(seq, "seq", currency_pair))

    updates = tuple(decode_market_update(raw, currency_pair) for raw in args)
    return MarketUpdates(currency_pair=currency_pair, sequence=sequence, updates=updates)


def decode_market_update(raw: Any, topic: Optional[str] = None) -> MarketUpdate:
    """
    Decode one sub-event by its type discriminator.

    Known types:
        orderBookModify: {rate, type: bid|ask, amount}
        orderBookRemove: {rate, type: bid|ask}
        newTrade: {tradeID, rate, amount, date, total, type: buy|sell}

    Other types are returned as UnknownUpdate with their data untouched.
    """
    if not isinstance(raw, Mapping):
        raise DecodeError(
            f"Market update is not an object: {raw!r}",
            topic=topic,
            expected_type="dict",
        )

    update_type = _string(_field(raw, "type", topic), "type", topic)
    data = _field(raw, "data", topic)
    if not isinstance(data, Mapping):
        raise DecodeError(
            f"Market update data is not an object: {data!r}",
            topic=topic,
            expected_type="dict",
        )

    if update_type == MarketUpdateType.ORDER_BOOK_MODIFY:
        return OrderBookModify(
            rate=_decimal_string(_field(data, "rate", topic), "rate", topic),
            side=_book_side(_field(data, "type", topic), topic),
            amount=_decimal_string(_field(data, "amount", topic), "amount", topic),
        )

    if update_type == MarketUpdateType.ORDER_BOOK_REMOVE:
        return OrderBookRemove(
            rate=_decimal_string(_field(data, "rate", topic), "rate", topic),
            side=_book_side(_field(data, "type", topic), topic),
        )

    if update_type == MarketUpdateType.NEW_TRADE:
        return NewTrade(
            trade_id=_integer_string(_field(data, "tradeID", topic), "trade_id", topic),
            rate=_decimal_string(_field(data, "rate", topic), "rate", topic),
            amount=_decimal_string(_field(data, "amount", topic), "amount", topic),
            total=_decimal_string(_field(data, "total", topic), "total", topic),
            side=_trade_side(_field(data, "type", topic), topic),
            timestamp=_trade_timestamp(_field(data, "date", topic), topic),
        )

    logger.debug(f"Passing through unknown market update type: {update_type}")
    return UnknownUpdate(type=update_type, data=dict(data))


def _book_side(value: Any, topic: Optional[str]) -> BookSide:
    try:
        return BookSide(_string(value, "side", topic))
    except ValueError as e:
        raise DecodeError(
            f"Invalid book side: {value!r}", topic=topic, expected_type="bid|ask"
        ) from e


def _trade_side(value: Any, topic: Optional[str]) -> TradeSide:
    try:
        return TradeSide(_string(value, "side", topic))
    except ValueError as e:
        raise DecodeError(
            f"Invalid trade side: {value!r}", topic=topic, expected_type="buy|sell"
        ) from e
