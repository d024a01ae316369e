"""
Multi-relay orchestration: fan-out of connect, subscribe and publish across
relay channels, fan-in of results deduplicated by event id.

[RelayPool][nostrpool.core.pool.RelayPool] owns the endpoint-to-channel table.
Every per-relay operation is dispatched concurrently and bounded by its own
timeout, so a slow or dead relay never delays the others. Each channel is
created together with exactly one listener, and both are torn down together.

Two read modes are offered:

* [fetch()][nostrpool.core.pool.RelayPool.fetch]: bounded. Resolves when every
  relay has sent its end-of-stored-events marker, when the timeout elapses, or
  when the caller's ``cancel`` event is set, and returns what was collected.
* [stream()][nostrpool.core.pool.RelayPool.stream]: unbounded. Delivers each
  distinct event as it arrives until cancelled.

Examples:
    ```python
    pool = RelayPool.from_yaml("pool.yaml")

    async with pool:
        events = await pool.fetch([SubscriptionFilter().add_kinds(1).set_limit(20)])
        result = await pool.publish(signed_event)
    ```

See Also:
    [RelayChannel][nostrpool.utils.transport.RelayChannel]: The per-relay
        contract the pool drives.
    [NostrClient][nostrpool.core.client.NostrClient]: High-level facade
        built on this pool.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any

from pydantic import BaseModel, Field, field_validator

from nostrpool.exceptions import ConfigurationError, ConnectivityError
from nostrpool.models.constants import RelayState
from nostrpool.models.event import Event
from nostrpool.models.filter import SubscriptionFilter
from nostrpool.models.relay import RelayEndpoint
from nostrpool.utils.codec import verify
from nostrpool.utils.transport import (
    ChannelListener,
    PublishOutcome,
    PublishResult,
    RelayChannel,
    WebSocketRelayChannel,
)

from .logger import Logger
from .yaml import load_yaml


ChannelFactory = Callable[[RelayEndpoint, ChannelListener], RelayChannel]
EventCallback = Callable[[Event], Awaitable[None] | None]
ConnectedCallback = Callable[[RelayEndpoint], Awaitable[None] | None]


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RelayPoolTimeoutsConfig(BaseModel):
    """Per-relay timeouts (in seconds).

    ``fetch`` bounds a whole fetch call; ``connect`` and ``publish`` bound each
    relay individually.
    """

    connect: float = Field(default=10.0, gt=0.0, description="Handshake timeout per relay")
    fetch: float = Field(default=10.0, gt=0.0, description="Overall fetch timeout")
    publish: float = Field(default=10.0, gt=0.0, description="OK wait per relay")


class RelayPoolConfig(BaseModel):
    """Aggregate configuration for a [RelayPool][nostrpool.core.pool.RelayPool].

    Attributes:
        relays: Relay URLs. Bare hosts are treated as ``wss://``.
        timeouts: See [RelayPoolTimeoutsConfig][nostrpool.core.pool.RelayPoolTimeoutsConfig].
        verify_signatures: Drop received events whose id or signature do not
            check out.
        proxy_url: SOCKS5 proxy for every relay connection.
        allow_insecure: Skip TLS certificate verification.
    """

    relays: list[str] = Field(default_factory=list)
    timeouts: RelayPoolTimeoutsConfig = Field(default_factory=RelayPoolTimeoutsConfig)
    verify_signatures: bool = Field(default=True)
    proxy_url: str | None = Field(default=None, description="e.g. socks5://127.0.0.1:9050")
    allow_insecure: bool = Field(default=False)

    @field_validator("relays")
    @classmethod
    def validate_relays(cls, v: list[str]) -> list[str]:
        """Normalize every relay URL, failing on the first malformed one."""
        return [RelayEndpoint.parse(url).url for url in v]

    @field_validator("proxy_url")
    @classmethod
    def validate_proxy_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("socks5://", "socks5h://", "socks4://", "http://")):
            raise ValueError(f"unsupported proxy scheme: {v}")
        return v


# ---------------------------------------------------------------------------
# Per-channel listener
# ---------------------------------------------------------------------------


class _EndpointListener(ChannelListener):
    """The single listener bound to one channel; inert once detached."""

    def __init__(self, pool: RelayPool, endpoint: RelayEndpoint) -> None:
        self._pool = pool
        self._endpoint = endpoint
        self.detached = False

    def on_connection_changed(self, connected: bool) -> None:  # noqa: FBT001
        if self.detached:
            return
        state = RelayState.CONNECTED if connected else RelayState.DISCONNECTED
        self._pool._set_state(self._endpoint, state)

    def on_notice(self, message: str) -> None:
        if self.detached:
            return
        self._pool._notice(self._endpoint, message)

    def on_publish_outcome(self, outcome: PublishOutcome) -> None:
        if self.detached:
            return
        self._pool._logger.debug(
            "publish_outcome",
            relay=outcome.relay_url,
            accepted=outcome.accepted,
            message=outcome.message,
        )


# ---------------------------------------------------------------------------
# RelayPool
# ---------------------------------------------------------------------------


class RelayPool:
    """Owns the configured relay endpoints and their channels.

    The endpoint table is only mutated under an ``asyncio.Lock``
    ([configure()][nostrpool.core.pool.RelayPool.configure],
    [connect_all()][nostrpool.core.pool.RelayPool.connect_all],
    [disconnect_all()][nostrpool.core.pool.RelayPool.disconnect_all]); reads
    take a snapshot so a concurrent reconfiguration never exposes a partial
    table.

    Args:
        config: Pool configuration; defaults apply when omitted.
        endpoints: Initial endpoints, overriding ``config.relays``.
        channel_factory: Builds a channel for an endpoint and its listener.
            Defaults to [WebSocketRelayChannel][nostrpool.utils.transport.WebSocketRelayChannel]
            configured from ``config``.

    Attributes:
        on_notice: Optional ``(endpoint, message)`` hook for relay notices.
        on_state_changed: Optional ``(endpoint, state)`` hook fired on every
            [RelayState][nostrpool.models.constants.RelayState] transition.
    """

    def __init__(
        self,
        config: RelayPoolConfig | None = None,
        *,
        endpoints: Iterable[RelayEndpoint | str] | None = None,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self._config = config or RelayPoolConfig()
        self._channel_factory = channel_factory or self._websocket_channel
        self._endpoints: dict[str, RelayEndpoint] = {}
        self._channels: dict[str, RelayChannel] = {}
        self._listeners: dict[str, _EndpointListener] = {}
        self._states: dict[str, RelayState] = {}
        self._connection_lock = asyncio.Lock()
        self._logger = Logger("pool")

        self.on_notice: Callable[[RelayEndpoint, str], None] | None = None
        self.on_state_changed: Callable[[RelayEndpoint, RelayState], None] | None = None

        self._replace_endpoints(endpoints if endpoints is not None else self._config.relays)

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> RelayPool:
        """Create a pool from a YAML file holding [RelayPoolConfig][nostrpool.core.pool.RelayPoolConfig] fields.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file is not a YAML mapping.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> RelayPool:
        return cls(config=RelayPoolConfig(**config_dict), **kwargs)

    def _websocket_channel(self, endpoint: RelayEndpoint, listener: ChannelListener) -> RelayChannel:
        return WebSocketRelayChannel(
            endpoint,
            listener,
            proxy_url=self._config.proxy_url,
            connect_timeout=self._config.timeouts.connect,
            publish_timeout=self._config.timeouts.publish,
            allow_insecure=self._config.allow_insecure,
        )

    # -------------------------------------------------------------------------
    # Endpoint table
    # -------------------------------------------------------------------------

    def _replace_endpoints(self, endpoints: Iterable[RelayEndpoint | str]) -> None:
        table: dict[str, RelayEndpoint] = {}
        for item in endpoints:
            endpoint = item if isinstance(item, RelayEndpoint) else RelayEndpoint.parse(item)
            table.setdefault(endpoint.url, endpoint)
        self._endpoints = table
        self._states = dict.fromkeys(table, RelayState.UNCONFIGURED)

    def _set_state(self, endpoint: RelayEndpoint, state: RelayState) -> None:
        if endpoint.url not in self._endpoints or self._states.get(endpoint.url) == state:
            return
        self._states[endpoint.url] = state
        self._logger.debug("relay_state_changed", relay=endpoint.url, state=state)
        if self.on_state_changed is not None:
            self.on_state_changed(endpoint, state)

    def _notice(self, endpoint: RelayEndpoint, message: str) -> None:
        self._logger.info("relay_notice", relay=endpoint.url, message=message)
        if self.on_notice is not None:
            self.on_notice(endpoint, message)

    async def configure(self, endpoints: Iterable[RelayEndpoint | str]) -> None:
        """Replace the endpoint set, tearing down every existing channel first.

        Duplicate URLs collapse to the first occurrence.

        Raises:
            ValueError: If an endpoint URL is malformed. The previous set is
                kept in that case.
        """
        parsed = [e if isinstance(e, RelayEndpoint) else RelayEndpoint.parse(e) for e in endpoints]
        async with self._connection_lock:
            await self._teardown()
            self._replace_endpoints(parsed)
        self._logger.info("relays_configured", count=len(self._endpoints))

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect_all(self, on_each_connected: ConnectedCallback | None = None) -> bool:
        """Connect every configured endpoint concurrently.

        Channels that already exist are reused; disconnected ones are
        reconnected. A relay that fails or exceeds the ``connect`` timeout is
        marked disconnected without affecting the others.

        Args:
            on_each_connected: Called (or awaited) with each endpoint as soon
                as it connects. An exception it raises is logged and
                does not affect the other endpoints.

        Returns:
            ``True`` if at least one endpoint is connected afterwards.

        Raises:
            ConfigurationError: If no endpoints are configured.
        """
        async with self._connection_lock:
            if not self._endpoints:
                raise ConfigurationError("no relays configured")

            endpoints = list(self._endpoints.values())
            self._logger.info("connecting", relays=len(endpoints))
            results = await asyncio.gather(
                *(self._connect_one(endpoint, on_each_connected) for endpoint in endpoints)
            )

        connected = sum(results)
        self._logger.info("connect_completed", connected=connected, total=len(endpoints))
        return connected > 0

    async def _connect_one(
        self,
        endpoint: RelayEndpoint,
        on_connected: ConnectedCallback | None,
    ) -> bool:
        channel = self._channels.get(endpoint.url)
        if channel is None:
            listener = _EndpointListener(self, endpoint)
            channel = self._channel_factory(endpoint, listener)
            self._channels[endpoint.url] = channel
            self._listeners[endpoint.url] = listener
        elif channel.is_connected:
            self._set_state(endpoint, RelayState.CONNECTED)
            return True

        self._set_state(endpoint, RelayState.CONNECTING)
        try:
            ok = await asyncio.wait_for(channel.connect(), timeout=self._config.timeouts.connect)
        except TimeoutError:
            self._logger.warning("relay_connect_timeout", relay=endpoint.url)
            ok = False
        except Exception as e:  # noqa: BLE001 - isolate one relay's failure from the rest
            self._logger.warning("relay_connect_failed", relay=endpoint.url, error=str(e))
            ok = False

        ok = ok and channel.is_connected
        self._set_state(endpoint, RelayState.CONNECTED if ok else RelayState.DISCONNECTED)
        if ok and on_connected is not None:
            try:
                await _maybe_await(on_connected(endpoint))
            except Exception:
                self._logger.exception("connected_callback_failed", relay=endpoint.url)
        return ok

    async def disconnect_all(self) -> None:
        """Close every channel and empty the channel table. Idempotent.

        Endpoints stay configured, so a later
        [connect_all()][nostrpool.core.pool.RelayPool.connect_all] reconnects them.
        """
        async with self._connection_lock:
            await self._teardown()

    async def _teardown(self) -> None:
        channels, listeners = self._channels, self._listeners
        self._channels, self._listeners = {}, {}

        for listener in listeners.values():
            listener.detached = True
        results = await asyncio.gather(
            *(channel.disconnect() for channel in channels.values()),
            return_exceptions=True,
        )
        for url, result in zip(channels, results, strict=True):
            if isinstance(result, Exception):
                self._logger.warning("relay_disconnect_failed", relay=url, error=str(result))

        for endpoint in self._endpoints.values():
            self._set_state(endpoint, RelayState.DISCONNECTED)
        if channels:
            self._logger.info("disconnected", relays=len(channels))

    async def _ensure_connected(self) -> list[tuple[RelayEndpoint, RelayChannel]]:
        """Return the connected channels, connecting first if there are none."""
        if not self.is_connected:
            await self.connect_all()
        channels = self._connected_channels()
        if not channels:
            raise ConnectivityError("no relay could be connected")
        return channels

    def _connected_channels(self) -> list[tuple[RelayEndpoint, RelayChannel]]:
        return [
            (self._endpoints[url], channel)
            for url, channel in list(self._channels.items())
            if url in self._endpoints and channel.is_connected
        ]

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    def _accept(self, event: Event, filters: Sequence[SubscriptionFilter]) -> bool:
        if self._config.verify_signatures and not verify(event):
            self._logger.debug("event_rejected", id=event.id, reason="invalid id or signature")
            return False
        return any(f.matches(event) for f in filters)

    async def fetch(
        self,
        filters: Sequence[SubscriptionFilter],
        timeout: float | None = None,  # noqa: ASYNC109
        *,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, Event]:
        """Query every connected relay and merge the results by event id.

        Resolves when every relay has finished sending stored events, when
        ``timeout`` elapses, or when ``cancel`` is set; in all three cases the
        events collected so far are returned. Events that fail verification
        (when ``verify_signatures`` is on) or match none of ``filters`` are
        dropped. For each filter with a ``limit``, only its newest ``limit``
        matches are kept, whatever the relays sent.

        Args:
            filters: At least one filter.
            timeout: Overall bound in seconds; defaults to ``timeouts.fetch``.
            cancel: Soft stop; partial results are returned once it is set.

        Returns:
            Events keyed by id, in arrival order.

        Raises:
            ValueError: If ``filters`` is empty.
            ConfigurationError: If no relays are configured.
            ConnectivityError: If no relay could be connected.
        """
        filters = list(filters)
        if not filters:
            raise ValueError("fetch requires at least one filter")

        channels = await self._ensure_connected()
        collected: dict[str, Event] = {}

        async def drain(endpoint: RelayEndpoint, channel: RelayChannel) -> None:
            try:
                async for event in channel.subscribe(filters, close_on_eose=True):
                    if event.id not in collected and self._accept(event, filters):
                        collected[event.id] = event
            except Exception as e:  # noqa: BLE001 - one relay failing never fails the fetch
                self._logger.warning("relay_fetch_failed", relay=endpoint.url, error=str(e))

        timed_out = await self._run_until(
            [drain(endpoint, channel) for endpoint, channel in channels],
            timeout if timeout is not None else self._config.timeouts.fetch,
            cancel,
        )
        result = _apply_limits(collected, filters)
        self._logger.debug(
            "fetch_completed",
            relays=len(channels),
            received=len(collected),
            kept=len(result),
            timed_out=timed_out,
        )
        return result

    async def stream(
        self,
        filters: Sequence[SubscriptionFilter],
        on_event: EventCallback,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Deliver every distinct matching event to ``on_event`` as it arrives.

        Runs until ``cancel`` is set, the task is cancelled, or every relay has
        closed its subscription. There is no timeout. Only the set of seen ids
        is retained.

        Raises:
            ValueError: If ``filters`` is empty.
            ConfigurationError: If no relays are configured.
            ConnectivityError: If no relay could be connected.
        """
        filters = list(filters)
        if not filters:
            raise ValueError("stream requires at least one filter")

        channels = await self._ensure_connected()
        seen: set[str] = set()

        async def pump(endpoint: RelayEndpoint, channel: RelayChannel) -> None:
            try:
                async for event in channel.subscribe(filters, close_on_eose=False):
                    if event.id in seen or not self._accept(event, filters):
                        continue
                    seen.add(event.id)
                    try:
                        await _maybe_await(on_event(event))
                    except Exception:
                        self._logger.exception("stream_callback_failed", id=event.id)
            except Exception as e:  # noqa: BLE001 - keep the other relays streaming
                self._logger.warning("relay_stream_failed", relay=endpoint.url, error=str(e))

        self._logger.info("stream_started", relays=len(channels))
        await self._run_until(
            [pump(endpoint, channel) for endpoint, channel in channels], None, cancel
        )
        self._logger.info("stream_stopped", delivered=len(seen))

    async def _run_until(
        self,
        coroutines: Sequence[Awaitable[None]],
        timeout: float | None,  # noqa: ASYNC109
        cancel: asyncio.Event | None,
    ) -> bool:
        """Run coroutines concurrently until all finish, the timeout, or ``cancel``.

        Unfinished tasks are cancelled and awaited before returning, including
        when the calling task itself is cancelled.

        Returns:
            ``True`` if the timeout elapsed first.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        pending: set[asyncio.Future[Any]] = {asyncio.ensure_future(c) for c in coroutines}
        cancel_waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        timed_out = False
        try:
            while pending:
                if cancel is not None and cancel.is_set():
                    break
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    timed_out = True
                    break
                waiters = pending if cancel_waiter is None else pending | {cancel_waiter}
                done, _ = await asyncio.wait(
                    waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
        finally:
            leftovers = [*pending, *([cancel_waiter] if cancel_waiter is not None else [])]
            for task in leftovers:
                task.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)
        return timed_out

    # -------------------------------------------------------------------------
    # Publish
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> PublishResult:
        """Send a signed event to every connected relay concurrently.

        Each relay gets its own ``publish`` timeout. Failures are reported as
        rejected outcomes rather than raised.

        Raises:
            ValueError: If ``event`` is not signed.
            ConfigurationError: If no relays are configured.
            ConnectivityError: If no relay could be connected.
        """
        if not event.is_signed:
            raise ValueError("only signed events can be published")

        channels = await self._ensure_connected()
        outcomes = await asyncio.gather(
            *(self._publish_one(endpoint, channel, event) for endpoint, channel in channels)
        )
        result = PublishResult(event.id, {o.relay_url: o for o in outcomes})
        self._logger.info(
            "event_published",
            id=event.id,
            accepted=len(result.accepted_by),
            rejected=len(result.rejected_by),
        )
        return result

    async def _publish_one(
        self,
        endpoint: RelayEndpoint,
        channel: RelayChannel,
        event: Event,
    ) -> PublishOutcome:
        try:
            outcome = await asyncio.wait_for(
                channel.publish(event), timeout=self._config.timeouts.publish
            )
        except TimeoutError:
            return PublishOutcome(endpoint.url, False, "timeout")
        except Exception as e:  # noqa: BLE001 - reported as a rejected outcome
            return PublishOutcome(endpoint.url, False, f"error: {e}")
        if outcome.relay_url != endpoint.url:
            return PublishOutcome(endpoint.url, outcome.accepted, outcome.message)
        return outcome

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RelayPoolConfig:
        """The pool configuration (read-only)."""
        return self._config

    @property
    def endpoints(self) -> list[RelayEndpoint]:
        return list(self._endpoints.values())

    def state(self, endpoint: RelayEndpoint | str) -> RelayState:
        """Connection state of one endpoint; unknown endpoints are ``UNCONFIGURED``."""
        url = endpoint.url if isinstance(endpoint, RelayEndpoint) else RelayEndpoint.parse(endpoint).url
        return self._states.get(url, RelayState.UNCONFIGURED)

    @property
    def states(self) -> dict[str, RelayState]:
        return dict(self._states)

    @property
    def is_connected(self) -> bool:
        """Whether at least one relay is connected."""
        return bool(self._connected_channels())

    @property
    def connected_endpoints(self) -> list[RelayEndpoint]:
        return [endpoint for endpoint, _ in self._connected_channels()]

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> RelayPool:
        await self.connect_all()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        await self.disconnect_all()

    def __repr__(self) -> str:
        connected = len(self._connected_channels())
        return f"RelayPool(relays={len(self._endpoints)}, connected={connected})"


def _apply_limits(collected: dict[str, Event], filters: Sequence[SubscriptionFilter]) -> dict[str, Event]:
    """Keep, per filter, its newest ``limit`` matches (ties by lowest id)."""
    if all(f.limit is None for f in filters):
        return collected

    keep: set[str] = set()
    for f in filters:
        matching = [event for event in collected.values() if f.matches(event)]
        if f.limit is not None:
            matching.sort(key=lambda e: (-e.created_at, e.id))
            matching = matching[: f.limit]
        keep.update(event.id for event in matching)
    return {event_id: event for event_id, event in collected.items() if event_id in keep}
