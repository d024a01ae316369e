"""Pure data models for nostrpool.

Bottom of the diamond DAG: frozen dataclasses with no I/O. Every other layer
depends on this one; this layer depends only on the standard library and
``rfc3986`` for URL validation.

Attributes:
    Event: Immutable NIP-01 event. See [Event][nostrpool.models.event.Event].
    Tag: Single event tag. See [Tag][nostrpool.models.event.Tag].
    SubscriptionFilter: Query model with client-side matching.
        See [SubscriptionFilter][nostrpool.models.filter.SubscriptionFilter].
    RelayEndpoint: Validated relay URL plus display name.
        See [RelayEndpoint][nostrpool.models.relay.RelayEndpoint].
    Profile: Metadata and contact-list view of a user.
        See [Profile][nostrpool.models.profile.Profile].
    Post: Text note with resolved thread references.
        See [Post][nostrpool.models.post.Post].
    KeyPair: Hex key pair. See [KeyPair][nostrpool.models.keys.KeyPair].
"""

from .constants import EventKind, RelayState
from .event import Event, Tag
from .filter import SubscriptionFilter
from .keys import KeyPair
from .post import Post
from .profile import Profile, RelayPreference
from .relay import RelayEndpoint


__all__ = [
    "Event",
    "EventKind",
    "KeyPair",
    "Post",
    "Profile",
    "RelayEndpoint",
    "RelayPreference",
    "RelayState",
    "SubscriptionFilter",
    "Tag",
]
