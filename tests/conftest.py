"""
Pytest configuration and shared fixtures for nostrpool tests.

Provides:
- A deterministic key pair plus a second, freshly generated one
- A factory for signed events
- FakeRelayChannel: an in-memory RelayChannel with scriptable behaviour
- FakeRelayNetwork: channel factory that maps relay URLs to behaviours
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

import pytest

from nostrpool.core.pool import RelayPool, RelayPoolConfig
from nostrpool.exceptions import ConnectivityError
from nostrpool.models import Event, KeyPair, RelayEndpoint, SubscriptionFilter, Tag
from nostrpool.utils.codec import finalize
from nostrpool.utils.keys import generate_keypair
from nostrpool.utils.transport import ChannelListener, PublishOutcome, RelayChannel


# Known secp256k1 vector: private key -> BIP-340 x-only public key.
VECTOR_PRIVATE_KEY = "7f4c11a9742721d66e40e321ca50b682c27f7422190c14a187525e69e604836a"  # pragma: allowlist secret
VECTOR_PUBLIC_KEY = "7cef86754ddf07395c289c30fe31219de938c6d707d6b478a8682fc75795e8b9"

BASE_TIME = 1_700_000_000


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _no_private_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's NOSTR_PRIVATE_KEY from leaking into tests."""
    monkeypatch.delenv("NOSTR_PRIVATE_KEY", raising=False)


# ============================================================================
# Keys and Events
# ============================================================================


@pytest.fixture
def keypair() -> KeyPair:
    """The fixed test vector key pair."""
    return KeyPair(public_key=VECTOR_PUBLIC_KEY, private_key=VECTOR_PRIVATE_KEY)


@pytest.fixture
def other_keypair() -> KeyPair:
    """A second, randomly generated key pair."""
    return generate_keypair()


SignEvent = Callable[..., Event]


@pytest.fixture
def sign_event(keypair: KeyPair) -> SignEvent:
    """Factory building a signed event; defaults to a kind 1 note by ``keypair``."""

    def _sign(
        content: str = "hello",
        *,
        created_at: int = BASE_TIME,
        kind: int = 1,
        tags: Sequence[Sequence[str]] = (),
        pair: KeyPair | None = None,
    ) -> Event:
        pair = pair or keypair
        event = Event(
            pubkey=pair.public_key,
            created_at=created_at,
            kind=kind,
            tags=tuple(Tag.from_list(list(t)) for t in tags),
            content=content,
        )
        return finalize(event, pair.private_key)

    return _sign


# ============================================================================
# Fake Relay Channel
# ============================================================================


class FakeRelayChannel(RelayChannel):
    """In-memory relay channel.

    Args:
        stored: Events sent for every subscription before end of stored
            events. They are not filtered, simulating a relay that ignores
            filters and limits.
        reachable: ``connect()`` fails when ``False``.
        connect_error: Exception raised by ``connect()`` instead of returning.
        connect_delay: Seconds ``connect()`` sleeps first.
        hang: Never send end of stored events.
        accept: Answer for published events.
        publish_delay: Seconds ``publish()`` sleeps first.
    """

    def __init__(
        self,
        endpoint: RelayEndpoint,
        listener: ChannelListener | None = None,
        *,
        stored: Sequence[Event] = (),
        reachable: bool = True,
        connect_error: Exception | None = None,
        connect_delay: float = 0.0,
        hang: bool = False,
        accept: bool = True,
        message: str = "",
        publish_delay: float = 0.0,
    ) -> None:
        super().__init__(endpoint, listener)
        self.stored = list(stored)
        self.reachable = reachable
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.hang = hang
        self.accept = accept
        self.message = message
        self.publish_delay = publish_delay

        self.live: asyncio.Queue[Event] = asyncio.Queue()
        self.published: list[Event] = []
        self.subscriptions: list[list[SubscriptionFilter]] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.open_subscriptions = 0
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        if not self.reachable:
            self._listener.on_connection_changed(False)
            return False
        self._connected = True
        self._listener.on_connection_changed(True)
        return True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._connected:
            self._connected = False
            self._listener.on_connection_changed(False)

    def drop(self) -> None:
        """Simulate the relay closing the connection."""
        self._connected = False
        self._listener.on_connection_changed(False)

    def notice(self, message: str) -> None:
        self._listener.on_notice(message)

    async def publish(self, event: Event) -> PublishOutcome:
        if self.publish_delay:
            await asyncio.sleep(self.publish_delay)
        self.published.append(event)
        outcome = PublishOutcome(self.endpoint.url, self.accept, self.message)
        self._listener.on_publish_outcome(outcome)
        return outcome

    async def subscribe(
        self,
        filters: Sequence[SubscriptionFilter],
        *,
        close_on_eose: bool = True,
    ) -> AsyncIterator[Event]:
        if not self._connected:
            raise ConnectivityError(f"not connected: {self.endpoint.url}")
        self.subscriptions.append(list(filters))
        self.open_subscriptions += 1
        try:
            for event in self.stored:
                await asyncio.sleep(0)
                yield event
            if close_on_eose and not self.hang:
                return
            while True:
                yield await self.live.get()
        finally:
            self.open_subscriptions -= 1


class FakeRelayNetwork:
    """Channel factory mapping relay URLs to fake behaviours."""

    def __init__(self) -> None:
        self.behaviours: dict[str, dict[str, Any]] = {}
        self.channels: dict[str, FakeRelayChannel] = {}
        self.created = 0

    def add(self, url: str, **behaviour: Any) -> str:
        normalized = RelayEndpoint.parse(url).url
        self.behaviours[normalized] = behaviour
        return normalized

    def factory(self, endpoint: RelayEndpoint, listener: ChannelListener) -> RelayChannel:
        channel = FakeRelayChannel(endpoint, listener, **self.behaviours.get(endpoint.url, {}))
        self.channels[endpoint.url] = channel
        self.created += 1
        return channel

    def channel(self, url: str) -> FakeRelayChannel:
        return self.channels[RelayEndpoint.parse(url).url]


@pytest.fixture
def network() -> FakeRelayNetwork:
    return FakeRelayNetwork()


@pytest.fixture
def make_pool(network: FakeRelayNetwork) -> Callable[..., RelayPool]:
    """Factory building a RelayPool wired to ``network`` with short timeouts."""

    def _make(
        relays: Sequence[str] | None = None,
        *,
        fetch_timeout: float = 2.0,
        connect_timeout: float = 1.0,
        publish_timeout: float = 1.0,
        verify_signatures: bool = True,
    ) -> RelayPool:
        config = RelayPoolConfig(
            relays=list(relays if relays is not None else network.behaviours),
            timeouts={
                "connect": connect_timeout,
                "fetch": fetch_timeout,
                "publish": publish_timeout,
            },
            verify_signatures=verify_signatures,
        )
        return RelayPool(config, channel_factory=network.factory)

    return _make
