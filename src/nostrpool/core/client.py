"""
High-level Nostr client: identity plus domain operations over a relay pool.

[NostrClient][nostrpool.core.client.NostrClient] holds the user's key
material, builds [SubscriptionFilter][nostrpool.models.filter.SubscriptionFilter]
queries, drives a [RelayPool][nostrpool.core.pool.RelayPool], and converts raw
events into [Post][nostrpool.models.post.Post] and
[Profile][nostrpool.models.profile.Profile] objects.

Examples:
    ```python
    client = NostrClient(os.environ["NOSTR_PRIVATE_KEY"], is_private_key=True,
                         relays=["wss://relay.damus.io", "wss://nos.lol"])

    async with client:
        note = await client.send_post("hello")
        profile = await client.fetch_profile(client.public_key)
    ```

Warning:
    The private key is never exposed through a property, never logged and
    never sent anywhere; it is only used to sign outgoing events.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from nostrpool.exceptions import IdentityError, PublishingError
from nostrpool.models.constants import EventKind
from nostrpool.models.event import Event, Tag
from nostrpool.models.filter import SubscriptionFilter
from nostrpool.models.keys import KeyPair
from nostrpool.models.post import Post
from nostrpool.models.profile import Profile
from nostrpool.utils.codec import finalize
from nostrpool.utils.keys import (
    KeysConfig,
    generate_keypair,
    keypair_from_private_key,
    normalize_public_key,
)

from .logger import Logger
from .pool import RelayPool, RelayPoolConfig, _maybe_await
from .yaml import load_yaml


if TYPE_CHECKING:
    import asyncio

    from nostrpool.models.relay import RelayEndpoint
    from nostrpool.utils.transport import PublishResult


PostListener = Callable[[Post], Awaitable[None] | None]


class ClientConfig(BaseModel):
    """Configuration for a [NostrClient][nostrpool.core.client.NostrClient].

    Attributes:
        keys: Identity. The private key comes from the environment variable
            named by ``keys.private_key_env``.
        pool: Relay list, timeouts and transport options.
    """

    keys: KeysConfig = Field(default_factory=lambda: KeysConfig.model_validate({}))
    pool: RelayPoolConfig = Field(default_factory=RelayPoolConfig)


def _newest(events: Iterable[Event]) -> Event | None:
    """Greatest ``created_at``; equal timestamps resolve to the lowest id."""
    return min(events, key=lambda e: (-e.created_at, e.id), default=None)


class NostrClient:
    """Identity-holding facade over a [RelayPool][nostrpool.core.pool.RelayPool].

    Args:
        key: Public or private key (hex, ``npub1`` or ``nsec1``). ``None``
            takes the identity from ``config.keys`` if given.
        is_private_key: Whether ``key`` is a private key.
        relays: Initial relays. Must not be combined with ``pool``.
        config: Client configuration.
        pool: Pre-built pool; one is created from ``config.pool`` otherwise.

    Raises:
        ValueError: If a key is malformed, or both ``relays`` and ``pool``
            are given.
    """

    def __init__(
        self,
        key: str | None = None,
        *,
        is_private_key: bool = False,
        relays: Iterable[RelayEndpoint | str] = (),
        config: ClientConfig | None = None,
        pool: RelayPool | None = None,
    ) -> None:
        relays = list(relays)
        if pool is not None and relays:
            raise ValueError("pass relays to the pool or to the client, not both")

        self._config = config
        self._pool = pool or RelayPool(
            config.pool if config is not None else None,
            endpoints=relays or None,
        )
        self._public_key: str | None = None
        self._private_key: str | None = None
        self._post_listeners: list[PostListener] = []
        self._logger = Logger("client")

        if key is not None:
            self.rotate_identity(key, is_private=is_private_key)
        elif config is not None:
            pair = config.keys.keypair()
            if pair is not None:
                self._public_key, self._private_key = pair.public_key, pair.private_key
            else:
                self._public_key = config.keys.public_key

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> NostrClient:
        """Create a client from a YAML file holding [ClientConfig][nostrpool.core.client.ClientConfig] fields.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file is not a YAML mapping.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> NostrClient:
        return cls(config=ClientConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def public_key(self) -> str | None:
        return self._public_key

    @property
    def has_private_key(self) -> bool:
        return self._private_key is not None

    def rotate_identity(self, key: str, is_private: bool) -> None:  # noqa: FBT001
        """Replace the held key material.

        A private key also sets the matching public key. A public key clears
        any private key held before, leaving the client read-only.

        Raises:
            ValueError: If ``key`` is malformed. The previous identity is kept.
        """
        if is_private:
            pair = keypair_from_private_key(key)
            self._public_key, self._private_key = pair.public_key, pair.private_key
        else:
            self._public_key, self._private_key = normalize_public_key(key), None
        self._logger.info("identity_rotated", pubkey=self._public_key, signing=is_private)

    @staticmethod
    def generate_key() -> KeyPair:
        """Generate a fresh key pair. See [generate_keypair()][nostrpool.utils.keys.generate_keypair]."""
        return generate_keypair()

    def _require_public_key(self, pubkey: str | None = None) -> str:
        if pubkey is not None:
            return normalize_public_key(pubkey)
        if self._public_key is None:
            raise IdentityError("a public key is required for this operation")
        return self._public_key

    def _require_private_key(self) -> tuple[str, str]:
        if self._private_key is None or self._public_key is None:
            raise IdentityError("a private key is required to sign events")
        return self._public_key, self._private_key

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    @property
    def pool(self) -> RelayPool:
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool.is_connected

    async def connect(
        self,
        on_connected: Callable[[RelayEndpoint], Awaitable[None] | None] | None = None,
    ) -> bool:
        """Connect every configured relay. Returns ``True`` if any connected."""
        return await self._pool.connect_all(on_connected)

    async def disconnect(self) -> None:
        await self._pool.disconnect_all()

    async def set_relays(
        self,
        endpoints: Iterable[RelayEndpoint | str],
        should_connect: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        """Replace the relay set, disconnecting the old one first."""
        await self._pool.configure(endpoints)
        if should_connect:
            await self.connect()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_posts(self, *, limit: int | None = None) -> list[Post]:
        """Fetch the user's own text notes, newest first.

        Raises:
            IdentityError: If no public key is set.
        """
        pubkey = self._require_public_key()
        query = SubscriptionFilter().add_kinds(EventKind.TEXT_NOTE).add_authors(pubkey)
        query.set_limit(limit)

        events = await self._pool.fetch([query])
        ordered = sorted(events.values(), key=lambda e: (-e.created_at, e.id))
        return [Post.from_event(event) for event in ordered]

    async def fetch_profile(self, pubkey: str | None = None) -> Profile:
        """Fetch a user's newest metadata and merge in their contact list.

        Args:
            pubkey: Whose profile to fetch; defaults to the client's own key.

        Returns:
            The profile. Missing or malformed metadata yields empty fields.

        Raises:
            IdentityError: If ``pubkey`` is omitted and no public key is set.
        """
        pubkey = self._require_public_key(pubkey)
        query = (
            SubscriptionFilter()
            .add_kinds(EventKind.SET_METADATA)
            .add_authors(pubkey)
            .set_limit(1)
        )
        metadata = _newest((await self._pool.fetch([query])).values())
        profile = Profile.from_metadata(pubkey, metadata)

        contacts = await self.fetch_follow_graph(pubkey)
        return profile.with_contacts(contacts)

    async def fetch_follow_graph(self, pubkey: str | None = None) -> Event | None:
        """Return the newest contact-list event authored by ``pubkey``, if any."""
        pubkey = self._require_public_key(pubkey)
        query = (
            SubscriptionFilter()
            .add_kinds(EventKind.CONTACTS)
            .add_authors(pubkey)
            .set_limit(1)
        )
        return _newest((await self._pool.fetch([query])).values())

    async def fetch_followers(self, pubkey: str | None = None) -> set[str]:
        """Return the authors of contact lists that reference ``pubkey``."""
        pubkey = self._require_public_key(pubkey)
        query = SubscriptionFilter().add_kinds(EventKind.CONTACTS).add_pubkey_refs(pubkey)
        events = await self._pool.fetch([query])
        return {event.pubkey for event in events.values()}

    # -------------------------------------------------------------------------
    # Global feed
    # -------------------------------------------------------------------------

    def add_post_listener(self, listener: PostListener) -> None:
        """Register a callable (sync or async) receiving every streamed post."""
        self._post_listeners.append(listener)

    def remove_post_listener(self, listener: PostListener) -> None:
        """Unregister a listener.

        Raises:
            ValueError: If ``listener`` was not registered.
        """
        self._post_listeners.remove(listener)

    async def stream_global_feed(
        self,
        limit: int | None = None,
        since: int | None = None,
        authors: Iterable[str] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Stream text notes to the registered post listeners until cancelled.

        Connects first when no relay is connected.

        Args:
            limit: Number of stored notes each relay sends before live ones.
            since: Only notes created at or after this unix time.
            authors: Restrict to these authors.
            cancel: Stops the stream once set.
        """
        query = SubscriptionFilter().add_kinds(EventKind.TEXT_NOTE).set_limit(limit).set_since(since)
        if authors is not None:
            query.add_authors(*(normalize_public_key(a) for a in authors))

        await self._pool.stream([query], self._deliver, cancel=cancel)

    async def _deliver(self, event: Event) -> None:
        post = Post.from_event(event)
        for listener in list(self._post_listeners):
            try:
                await _maybe_await(listener(post))
            except Exception:
                self._logger.exception("post_listener_failed", id=post.id)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def send_post(self, content: str) -> Event:
        """Sign and publish a text note.

        Returns:
            The signed event.

        Raises:
            IdentityError: If no private key is set.
            PublishingError: If no connected relay accepted the event.
        """
        return await self._publish_note(content, ())

    async def send_reply(self, content: str, parent: Event) -> Event:
        """Sign and publish a reply to ``parent`` with NIP-10 marked tags.

        The reply references the thread root, the parent when it is not the
        root itself, and the parent's author.

        Raises:
            IdentityError: If no private key is set.
            PublishingError: If no connected relay accepted the event.
        """
        root_id = Post.from_event(parent).root_id or parent.id
        tags = [Tag("e", (root_id, "", "root"))]
        if parent.id != root_id:
            tags.append(Tag("e", (parent.id, "", "reply")))
        tags.append(Tag("p", (parent.pubkey,)))
        return await self._publish_note(content, tags)

    async def _publish_note(self, content: str, tags: Iterable[Tag]) -> Event:
        pubkey, private_key = self._require_private_key()
        unsigned = Event(
            pubkey=pubkey,
            created_at=int(time.time()),
            kind=int(EventKind.TEXT_NOTE),
            tags=tuple(tags),
            content=content,
        )
        event = finalize(unsigned, private_key)

        result: PublishResult = await self._pool.publish(event)
        if not result.accepted:
            self._logger.warning("post_rejected", id=event.id, relays=len(result.outcomes))
            raise PublishingError(
                f"no relay accepted event {event.id}", event=event, result=result
            )
        self._logger.info("post_sent", id=event.id, accepted=len(result.accepted_by))
        return event

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> NostrClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        await self.disconnect()

    def __repr__(self) -> str:
        return (
            f"NostrClient(pubkey={self._public_key}, signing={self.has_private_key}, "
            f"relays={len(self._pool.endpoints)})"
        )
