"""
WAMP session over an aiohttp websocket.

Handles one bus session:
- Websocket connection and realm join (HELLO/WELCOME)
- Subscribe/unsubscribe request-reply correlation with a timeout
- Serialized event dispatch to per-topic handlers
- Graceful close (GOODBYE)

A WampSession is used once: after close() or after the socket drops it is not
reopened. TransportSession replaces it wholesale on reconnect.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from poloniex.errors import ConnectionError, DecodeError, SubscribeError
from poloniex.pushapi import wamp

logger = logging.getLogger(__name__)

EventHandler = Callable[[list[Any], dict[str, Any]], Awaitable[None]]


class WampSession:
    """
    A single joined WAMP session.

    Incoming frames are read by a receive task. Replies to pending requests resolve
    their futures right away; EVENT messages are queued for a dispatch task that
    awaits handlers one at a time, in arrival order. A handler that blocks therefore
    delays later events but never the replies to subscribe/unsubscribe calls.

    Usage:
        session = WampSession("wss://api.poloniex.com", "realm1")
        await session.open()
        await session.subscribe("ticker", on_ticker)
        ...
        await session.close()
    """

    def __init__(
        self,
        url: str,
        realm: str,
        *,
        connect_timeout_s: float = 30.0,
        request_timeout_s: float = 10.0,
        name: str = "push",
    ) -> None:
        """
        Initialize the bus session (not connected until open()).

        Args:
            url: Router websocket URL
            realm: WAMP realm to join
            connect_timeout_s: Limit for opening the socket and for the join reply
            request_timeout_s: Limit for each subscribe or unsubscribe reply
            name: Name for logging purposes
        """
        self._url = url
        self._realm = realm
        self._connect_timeout_s = connect_timeout_s
        self._request_timeout_s = request_timeout_s
        self._name = name

        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._session_id: Optional[int] = None

        self._request_ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[wamp.WampMessage]] = {}

        # subscription id -> (topic, handler); topic -> subscription id
        self._handlers: dict[int, tuple[str, EventHandler]] = {}
        self._topics: dict[str, int] = {}

        self._events: asyncio.Queue[Optional[tuple[str, EventHandler, wamp.Event]]] = (
            asyncio.Queue()
        )
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._dispatch_task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def session_id(self) -> Optional[int]:
        return self._session_id

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed and not self._closed

    @property
    def topics(self) -> list[str]:
        """Topics subscribed on this session."""
        return list(self._topics)

    async def open(self) -> None:
        """
        Connect the websocket and join the realm.

        Cancelling the call releases the socket and HTTP session before the
        cancellation propagates.

        Raises:
            ConnectionError: If the socket cannot be opened or the join is refused
        """
        try:
            timeout = aiohttp.ClientTimeout(total=self._connect_timeout_s)
            self._http = aiohttp.ClientSession(timeout=timeout)

            logger.info(f"[{self._name}] Connecting to {self._url}")
            self._ws = await self._http.ws_connect(self._url, protocols=(wamp.SUBPROTOCOL,))

            await self._ws.send_bytes(wamp.hello(self._realm))
            reply = await asyncio.wait_for(self._ws.receive(), timeout=self._connect_timeout_s)
            welcome = self._parse_join_reply(reply)

        except ConnectionError:
            await self._teardown()
            raise
        except asyncio.CancelledError:
            await self._teardown()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._teardown()
            raise ConnectionError(
                f"Failed to open bus session: {e}",
                url=self._url,
                component="WampSession",
            ) from e

        self._session_id = welcome.session_id
        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"{self._name}_receive"
        )
        self._dispatch_task = asyncio.create_task(
            self._dispatch_loop(), name=f"{self._name}_dispatch"
        )
        logger.info(f"[{self._name}] Joined realm {self._realm} (session {self._session_id})")

    def _parse_join_reply(self, reply: aiohttp.WSMessage) -> wamp.Welcome:
        if reply.type not in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            raise ConnectionError(
                f"Socket closed while joining realm ({reply.type.name})",
                url=self._url,
                component="WampSession",
            )

        try:
            msg = wamp.parse(reply.data)
        except DecodeError as e:
            raise ConnectionError(
                f"Invalid join reply: {e}",
                url=self._url,
                component="WampSession",
            ) from e

        if isinstance(msg, wamp.Welcome):
            return msg
        if isinstance(msg, wamp.Abort):
            raise ConnectionError(
                f"Router refused realm {self._realm}: {msg.reason}",
                url=self._url,
                component="WampSession",
                details={"realm": self._realm},
            )
        raise ConnectionError(
            f"Unexpected join reply: {msg!r}",
            url=self._url,
            component="WampSession",
        )

    async def subscribe(self, topic: str, handler: EventHandler) -> int:
        """
        Subscribe `handler` to `topic` and return the subscription id.

        Subscribing a topic that already has a handler on this session replaces it.

        Raises:
            SubscribeError: If the router rejects the call, does not answer in time,
                or the session is gone
        """
        if topic in self._topics:
            logger.debug(f"[{self._name}] Replacing subscription to {topic}")
            try:
                await self.unsubscribe(topic)
            except SubscribeError as e:
                logger.warning(f"[{self._name}] Dropping stale subscription to {topic}: {e}")

        request_id = next(self._request_ids)
        reply = await self._request(request_id, wamp.subscribe(request_id, topic), topic)
        if not isinstance(reply, wamp.Subscribed):
            raise SubscribeError(
                f"Unexpected reply to subscribe: {reply!r}",
                topic=topic,
                component="WampSession",
            )

        self._handlers[reply.subscription_id] = (topic, handler)
        self._topics[topic] = reply.subscription_id
        logger.info(f"[{self._name}] Subscribed to: {topic}")
        return reply.subscription_id

    async def unsubscribe(self, topic: str) -> None:
        """
        Unsubscribe `topic`. A topic this session never subscribed is a no-op.

        Raises:
            SubscribeError: If the router rejects the call or does not answer in time
        """
        subscription_id = self._topics.pop(topic, None)
        if subscription_id is None:
            logger.debug(f"[{self._name}] Not subscribed to {topic} on this session")
            return

        # Events already queued for this topic are still dispatched
        self._handlers.pop(subscription_id, None)

        request_id = next(self._request_ids)
        reply = await self._request(
            request_id, wamp.unsubscribe(request_id, subscription_id), topic
        )
        if not isinstance(reply, wamp.Unsubscribed):
            raise SubscribeError(
                f"Unexpected reply to unsubscribe: {reply!r}",
                topic=topic,
                component="WampSession",
            )
        logger.info(f"[{self._name}] Unsubscribed from: {topic}")

    async def _request(self, request_id: int, payload: bytes, topic: str) -> wamp.WampMessage:
        """Send a request and wait for the reply carrying the same request id."""
        if not self.is_open or self._ws is None:
            raise SubscribeError("Bus session is not open", topic=topic, component="WampSession")

        future: asyncio.Future[wamp.WampMessage] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send_bytes(payload)
            return await asyncio.wait_for(future, timeout=self._request_timeout_s)
        except asyncio.TimeoutError as e:
            raise SubscribeError(
                f"No reply within {self._request_timeout_s}s",
                topic=topic,
                component="WampSession",
            ) from e
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise SubscribeError(
                f"Failed to send request: {e}",
                topic=topic,
                component="WampSession",
            ) from e
        finally:
            self._pending.pop(request_id, None)

    async def _receive_loop(self) -> None:
        """Read frames until the socket closes."""
        if self._ws is None:
            return

        try:
            async for msg in self._ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    if not await self._handle_frame(msg.data):
                        break
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"[{self._name}] WebSocket error: {self._ws.exception()}")
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")

        finally:
            self._fail_pending("Bus session closed")
            self._events.put_nowait(None)

        if not self._closed:
            logger.warning(f"[{self._name}] Bus session lost")
        self._closed = True

    async def _handle_frame(self, data: Any) -> bool:
        """Route one frame. Returns False when the router ended the session."""
        try:
            msg = wamp.parse(data)
        except DecodeError as e:
            logger.warning(f"[{self._name}] Dropping frame: {e}")
            return True

        if isinstance(msg, wamp.Event):
            entry = self._handlers.get(msg.subscription_id)
            if entry is None:
                logger.debug(
                    f"[{self._name}] Event for unknown subscription {msg.subscription_id}"
                )
                return True
            topic, handler = entry
            self._events.put_nowait((topic, handler, msg))

        elif isinstance(msg, (wamp.Subscribed, wamp.Unsubscribed)):
            self._resolve(msg.request_id, msg)

        elif isinstance(msg, wamp.Error):
            future = self._pending.get(msg.request_id)
            if future is not None and not future.done():
                future.set_exception(
                    SubscribeError(
                        f"Router error: {msg.error}",
                        component="WampSession",
                        details={"request_type": msg.request_type, "args": msg.args},
                    )
                )

        elif isinstance(msg, wamp.Goodbye):
            logger.info(f"[{self._name}] Router closed session: {msg.reason}")
            if not self._closed and self._ws is not None:
                await self._ws.send_bytes(wamp.goodbye(wamp.CLOSE_GOODBYE_AND_OUT))
            return False

        elif isinstance(msg, wamp.Abort):
            logger.error(f"[{self._name}] Router aborted session: {msg.reason}")
            return False

        else:
            logger.debug(f"[{self._name}] Ignoring message: {data!r:.120}")

        return True

    def _resolve(self, request_id: int, msg: wamp.WampMessage) -> None:
        future = self._pending.get(request_id)
        if future is not None and not future.done():
            future.set_result(msg)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(SubscribeError(reason, component="WampSession"))

    async def _dispatch_loop(self) -> None:
        """Hand queued events to their handlers, one at a time."""
        try:
            while True:
                item = await self._events.get()
                if item is None:
                    break

                topic, handler, event = item
                try:
                    await handler(event.args, event.kwargs)
                except Exception as e:
                    logger.error(f"[{self._name}] Handler error for {topic}: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Dispatch loop cancelled")
            raise

    async def close(self) -> None:
        """
        Leave the realm and close the socket.

        Raises:
            ConnectionError: If the socket fails to close
        """
        if self._closed and self._ws is None:
            return

        was_open = self.is_open
        self._closed = True
        logger.info(f"[{self._name}] Closing bus session")

        try:
            if was_open and self._ws is not None:
                await self._ws.send_bytes(wamp.goodbye())
        except (aiohttp.ClientError, ConnectionResetError) as e:
            logger.debug(f"[{self._name}] GOODBYE not sent: {e}")

        try:
            await self._teardown()
        except (aiohttp.ClientError, OSError) as e:
            raise ConnectionError(
                f"Failed to close bus session: {e}",
                url=self._url,
                component="WampSession",
            ) from e

    async def _teardown(self) -> None:
        """Cancel tasks and release the socket and HTTP session."""
        for task in (self._receive_task, self._dispatch_task):
            if task and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._receive_task = None
        self._dispatch_task = None
        self._fail_pending("Bus session closed")

        try:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
        finally:
            self._ws = None
            if self._http is not None and not self._http.closed:
                await self._http.close()
            self._http = None
