"""
WAMP v2 message codec (JSON serializer, subscriber role only).

Builds outgoing messages and classifies incoming frames. Only the messages a
subscriber exchanges with a router are covered:

    HELLO        [1, realm, details]
    WELCOME      [2, session_id, details]
    ABORT        [3, details, reason]
    GOODBYE      [6, details, reason]
    ERROR        [8, request_type, request_id, details, error, args?, kwargs?]
    SUBSCRIBE    [32, request_id, options, topic]
    SUBSCRIBED   [33, request_id, subscription_id]
    UNSUBSCRIBE  [34, request_id, subscription_id]
    UNSUBSCRIBED [35, request_id]
    EVENT        [36, subscription_id, publication_id, details, args?, kwargs?]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Union

import orjson

from poloniex.errors import DecodeError

SUBPROTOCOL = "wamp.2.json"

CLOSE_NORMAL = "wamp.close.normal"
CLOSE_SYSTEM_SHUTDOWN = "wamp.close.system_shutdown"
CLOSE_GOODBYE_AND_OUT = "wamp.close.goodbye_and_out"


class WampCode(IntEnum):
    HELLO = 1
    WELCOME = 2
    ABORT = 3
    GOODBYE = 6
    ERROR = 8
    SUBSCRIBE = 32
    SUBSCRIBED = 33
    UNSUBSCRIBE = 34
    UNSUBSCRIBED = 35
    EVENT = 36


@dataclass(frozen=True, slots=True)
class Welcome:
    session_id: int
    details: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Abort:
    reason: str
    details: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Goodbye:
    reason: str
    details: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Error:
    request_type: int
    request_id: int
    error: str
    details: dict[str, Any]
    args: list[Any] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Subscribed:
    request_id: int
    subscription_id: int


@dataclass(frozen=True, slots=True)
class Unsubscribed:
    request_id: int


@dataclass(frozen=True, slots=True)
class Event:
    subscription_id: int
    publication_id: int
    details: dict[str, Any]
    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)


WampMessage = Union[Welcome, Abort, Goodbye, Error, Subscribed, Unsubscribed, Event]


# --- Outgoing ---


def hello(realm: str) -> bytes:
    return encode([WampCode.HELLO, realm, {"roles": {"subscriber": {}}}])


def goodbye(reason: str = CLOSE_SYSTEM_SHUTDOWN) -> bytes:
    return encode([WampCode.GOODBYE, {}, reason])


def subscribe(request_id: int, topic: str) -> bytes:
    return encode([WampCode.SUBSCRIBE, request_id, {}, topic])


def unsubscribe(request_id: int, subscription_id: int) -> bytes:
    return encode([WampCode.UNSUBSCRIBE, request_id, subscription_id])


def encode(message: list[Any]) -> bytes:
    return orjson.dumps([int(message[0]), *message[1:]])


# --- Incoming ---


def parse(raw: Union[str, bytes]) -> Optional[WampMessage]:
    """
    Decode one frame into a typed message.

    Returns None for well-formed messages of a type a subscriber does not handle.

    Raises:
        DecodeError: If the frame is not JSON or not a WAMP message
    """
    try:
        msg = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON frame: {e}", expected_type="wamp") from e

    if not isinstance(msg, list) or not msg or type(msg[0]) is not int:
        raise DecodeError("Frame is not a WAMP message", expected_type="wamp")

    code = msg[0]
    try:
        if code == WampCode.EVENT:
            return Event(
                subscription_id=_int(msg[1]),
                publication_id=_int(msg[2]),
                details=_dict(msg[3]),
                args=_list(msg[4]) if len(msg) > 4 else [],
                kwargs=_dict(msg[5]) if len(msg) > 5 else {},
            )
        if code == WampCode.SUBSCRIBED:
            return Subscribed(request_id=_int(msg[1]), subscription_id=_int(msg[2]))
        if code == WampCode.UNSUBSCRIBED:
            return Unsubscribed(request_id=_int(msg[1]))
        if code == WampCode.ERROR:
            return Error(
                request_type=_int(msg[1]),
                request_id=_int(msg[2]),
                details=_dict(msg[3]),
                error=str(msg[4]),
                args=_list(msg[5]) if len(msg) > 5 else [],
            )
        if code == WampCode.WELCOME:
            return Welcome(session_id=_int(msg[1]), details=_dict(msg[2]))
        if code == WampCode.ABORT:
            return Abort(details=_dict(msg[1]), reason=str(msg[2]))
        if code == WampCode.GOODBYE:
            return Goodbye(details=_dict(msg[1]), reason=str(msg[2]))
    except IndexError as e:
        raise DecodeError(
            f"Truncated WAMP message (code {code})",
            expected_type="wamp",
        ) from e

    return None


def _int(value: Any) -> int:
    if type(value) is not int:
        raise DecodeError(f"Expected integer id, got {value!r}", expected_type="int")
    return value


def _dict(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise DecodeError(f"Expected object, got {type(value).__name__}", expected_type="dict")
    return value


def _list(value: Any) -> list[Any]:
    if not isinstance(value, list):
        raise DecodeError(f"Expected array, got {type(value).__name__}", expected_type="list")
    return value
