"""Relay channel contract and its WebSocket implementation.

A [RelayChannel][nostrpool.utils.transport.RelayChannel] is one physical
connection to one relay. [RelayPool][nostrpool.core.pool.RelayPool] treats it
as an unreliable collaborator: every call may fail or hang, and the pool
bounds and isolates each one.

Each channel reports to exactly one
[ChannelListener][nostrpool.utils.transport.ChannelListener], handed in at
construction and never swapped, so there is no per-connect handler
registration to get out of sync.

[WebSocketRelayChannel][nostrpool.utils.transport.WebSocketRelayChannel] is
the concrete channel: an ``aiohttp`` WebSocket with a single reader task that
demultiplexes relay frames into per-subscription queues and pending publish
futures. Overlay relays (Tor, I2P) are reached through a SOCKS5 proxy via
``aiohttp_socks``.

See Also:
    [nostrpool.utils.protocol][]: Frame encoding and parsing.
    [nostrpool.core.pool.RelayPool][]: Fans operations out across channels.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

import aiohttp
from aiohttp_socks import ProxyConnector

from nostrpool.exceptions import ConnectivityError, ProtocolError
from nostrpool.models.relay import RelayEndpoint  # noqa: TC001

from .protocol import (
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    encode_close,
    encode_event,
    encode_req,
    new_subscription_id,
    parse_relay_message,
)


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from nostrpool.models.event import Event
    from nostrpool.models.filter import SubscriptionFilter


DEFAULT_TIMEOUT: Final[float] = 10.0

_WS_HEARTBEAT = 30.0
_WS_CLOSE_TIMEOUT = 5.0

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """One relay's answer to a published event.

    Attributes:
        relay_url: Normalized URL of the relay.
        accepted: ``True`` if the relay stored the event (NIP-01 ``OK`` true).
        message: Relay-provided or locally generated reason.
    """

    relay_url: str
    accepted: bool
    message: str = ""


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Aggregated outcomes of a publish fan-out.

    A publish is materially successful when at least one relay accepted it;
    every individual outcome is still reported.
    """

    event_id: str
    outcomes: dict[str, PublishOutcome] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return any(o.accepted for o in self.outcomes.values())

    @property
    def accepted_by(self) -> list[str]:
        return [url for url, o in self.outcomes.items() if o.accepted]

    @property
    def rejected_by(self) -> list[str]:
        return [url for url, o in self.outcomes.items() if not o.accepted]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ChannelListener:
    """Notification sink for a single channel. Default methods do nothing."""

    def on_connection_changed(self, connected: bool) -> None:  # noqa: FBT001
        return None

    def on_notice(self, message: str) -> None:
        return None

    def on_publish_outcome(self, outcome: PublishOutcome) -> None:
        return None


class RelayChannel(ABC):
    """One connection to one relay endpoint.

    Cancellation is asyncio task cancellation: every coroutine below may be
    cancelled and must release what it holds when that happens.

    Args:
        endpoint: The relay this channel talks to.
        listener: The channel's single notification sink.
    """

    def __init__(self, endpoint: RelayEndpoint, listener: ChannelListener | None = None) -> None:
        self._endpoint = endpoint
        self._listener = listener or ChannelListener()

    @property
    def endpoint(self) -> RelayEndpoint:
        return self._endpoint

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def connect(self) -> bool:
        """Open the connection. Returns ``False`` instead of raising on failure."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Idempotent."""

    @abstractmethod
    async def publish(self, event: Event) -> PublishOutcome:
        """Send a signed event and wait for the relay's ``OK``."""

    @abstractmethod
    def subscribe(
        self,
        filters: Sequence[SubscriptionFilter],
        *,
        close_on_eose: bool = True,
    ) -> AsyncIterator[Event]:
        """Open a subscription and yield matching events as they arrive.

        With ``close_on_eose`` the iterator ends at the relay's end of stored
        events; otherwise it keeps yielding live events until closed.

        Raises:
            ConnectivityError: If the channel is not connected.
        """


# ---------------------------------------------------------------------------
# WebSocket implementation
# ---------------------------------------------------------------------------


_END = object()


class WebSocketRelayChannel(RelayChannel):
    """[RelayChannel][nostrpool.utils.transport.RelayChannel] over an aiohttp WebSocket.

    Args:
        endpoint: Relay to connect to.
        listener: Notification sink.
        proxy_url: SOCKS5 proxy URL (e.g. ``socks5://127.0.0.1:9050``).
        connect_timeout: Seconds allowed for the WebSocket handshake.
        publish_timeout: Seconds to wait for an ``OK`` after publishing.
        allow_insecure: Skip TLS certificate verification.

    Warning:
        ``allow_insecure=True`` disables all certificate checks. Only use it
        for relays with self-signed certificates that you trust.
    """

    def __init__(
        self,
        endpoint: RelayEndpoint,
        listener: ChannelListener | None = None,
        *,
        proxy_url: str | None = None,
        connect_timeout: float = DEFAULT_TIMEOUT,
        publish_timeout: float = DEFAULT_TIMEOUT,
        allow_insecure: bool = False,
    ) -> None:
        super().__init__(endpoint, listener)
        self._proxy_url = proxy_url
        self._connect_timeout = connect_timeout
        self._publish_timeout = publish_timeout
        self._allow_insecure = allow_insecure

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._subscriptions: dict[str, asyncio.Queue[object]] = {}
        self._pending_ok: dict[str, asyncio.Future[tuple[bool, str]]] = {}

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _connector(self) -> aiohttp.BaseConnector:
        ssl_context = ssl.create_default_context()
        if self._allow_insecure:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        if self._proxy_url:
            return ProxyConnector.from_url(self._proxy_url, ssl=ssl_context)
        return aiohttp.TCPConnector(ssl=ssl_context)

    async def connect(self) -> bool:
        if self.is_connected:
            return True
        await self._close_stale()

        url = self._endpoint.url
        logger.debug("ws_connecting relay=%s proxy=%s", url, self._proxy_url)
        session = aiohttp.ClientSession(connector=self._connector())
        try:
            ws = await asyncio.wait_for(
                session.ws_connect(url, heartbeat=_WS_HEARTBEAT),
                timeout=self._connect_timeout,
            )
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            await session.close()
            logger.debug("ws_connect_failed relay=%s error=%s", url, str(e) or type(e).__name__)
            self._listener.on_connection_changed(False)
            return False

        self._session = session
        self._ws = ws
        self._reader = asyncio.create_task(self._read_loop(ws), name=f"nostrpool-reader-{url}")
        logger.debug("ws_connected relay=%s", url)
        self._listener.on_connection_changed(True)
        return True

    async def disconnect(self) -> None:
        reader, ws, session = self._reader, self._ws, self._session
        self._reader = self._ws = self._session = None

        if reader is not None:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        # aiohttp can raise ClientError/ServerDisconnectedError during close;
        # teardown must complete regardless.
        if ws is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(ws.close(), timeout=_WS_CLOSE_TIMEOUT)
        if session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(session.close(), timeout=_WS_CLOSE_TIMEOUT)

        if ws is not None:
            self._release_waiters("disconnected")
            logger.debug("ws_disconnected relay=%s", self._endpoint.url)
            self._listener.on_connection_changed(False)

    async def publish(self, event: Event) -> PublishOutcome:
        url = self._endpoint.url
        ws = self._ws
        if ws is None or ws.closed:
            outcome = PublishOutcome(url, False, "not connected")
            self._listener.on_publish_outcome(outcome)
            return outcome

        future: asyncio.Future[tuple[bool, str]] = asyncio.get_running_loop().create_future()
        self._pending_ok[event.id] = future
        try:
            await ws.send_str(encode_event(event))
            accepted, message = await asyncio.wait_for(future, timeout=self._publish_timeout)
        except TimeoutError:
            accepted, message = False, "timeout waiting for OK"
        except (aiohttp.ClientError, ConnectionError) as e:
            accepted, message = False, f"send failed: {e}"
        finally:
            self._pending_ok.pop(event.id, None)

        outcome = PublishOutcome(url, accepted, message)
        self._listener.on_publish_outcome(outcome)
        return outcome

    async def subscribe(
        self,
        filters: Sequence[SubscriptionFilter],
        *,
        close_on_eose: bool = True,
    ) -> AsyncIterator[Event]:
        ws = self._ws
        if ws is None or ws.closed:
            raise ConnectivityError(f"not connected: {self._endpoint.url}")

        subscription_id = new_subscription_id()
        queue: asyncio.Queue[object] = asyncio.Queue()
        self._subscriptions[subscription_id] = queue
        try:
            await ws.send_str(encode_req(subscription_id, filters))
            while True:
                item = await queue.get()
                if item is _END:
                    return
                if isinstance(item, EoseMessage):
                    if close_on_eose:
                        return
                    continue
                yield item  # type: ignore[misc]
        finally:
            self._subscriptions.pop(subscription_id, None)
            if not ws.closed:
                with contextlib.suppress(aiohttp.ClientError, ConnectionError):
                    await ws.send_str(encode_close(subscription_id))

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        url = self._endpoint.url
        try:
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                try:
                    self._dispatch(parse_relay_message(msg.data))
                except ProtocolError as e:
                    logger.debug("relay_frame_invalid relay=%s error=%s", url, e)
        finally:
            if self._ws is ws:
                # The relay dropped us; disconnect() did not run.
                self._ws = None
                self._reader = None
                session, self._session = self._session, None
                self._release_waiters("connection closed")
                logger.debug("ws_dropped relay=%s", url)
                self._listener.on_connection_changed(False)
                if session is not None:
                    with contextlib.suppress(Exception):
                        await asyncio.wait_for(session.close(), timeout=_WS_CLOSE_TIMEOUT)

    async def _close_stale(self) -> None:
        """Release a session and reader left over from a dropped connection."""
        reader, session = self._reader, self._session
        self._reader = self._session = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(session.close(), timeout=_WS_CLOSE_TIMEOUT)

    def _dispatch(self, message: object) -> None:
        if isinstance(message, EventMessage):
            queue = self._subscriptions.get(message.subscription_id)
            if queue is not None:
                queue.put_nowait(message.event)
        elif isinstance(message, EoseMessage):
            queue = self._subscriptions.get(message.subscription_id)
            if queue is not None:
                queue.put_nowait(message)
        elif isinstance(message, ClosedMessage):
            logger.debug(
                "subscription_closed relay=%s sub=%s reason=%s",
                self._endpoint.url,
                message.subscription_id,
                message.message,
            )
            queue = self._subscriptions.get(message.subscription_id)
            if queue is not None:
                queue.put_nowait(_END)
        elif isinstance(message, OkMessage):
            future = self._pending_ok.get(message.event_id)
            if future is not None and not future.done():
                future.set_result((message.accepted, message.message))
        elif isinstance(message, NoticeMessage):
            self._listener.on_notice(message.message)

    def _release_waiters(self, reason: str) -> None:
        for queue in self._subscriptions.values():
            queue.put_nowait(_END)
        for future in self._pending_ok.values():
            if not future.done():
                future.set_result((False, reason))
