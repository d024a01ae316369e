"""Protocol, cryptography, key, and transport utilities.

Middle layer of the diamond DAG: depends on ``nostrpool.models`` and is
used by ``nostrpool.core``.

Attributes:
    codec: Canonical serialization, id computation, Schnorr signing and
        verification. See [nostrpool.utils.codec][nostrpool.utils.codec].
    keys: Key generation, derivation, hex/nsec parsing, env loading.
        See [nostrpool.utils.keys][nostrpool.utils.keys].
    protocol: NIP-01 message framing.
        See [nostrpool.utils.protocol][nostrpool.utils.protocol].
    transport: Relay channel contract and WebSocket implementation.
        See [nostrpool.utils.transport][nostrpool.utils.transport].
"""

from .codec import canonicalize, compute_id, finalize, sign, verify
from .keys import (
    KeysConfig,
    derive_public_key,
    generate_keypair,
    keypair_from_private_key,
    load_keys_from_env,
    normalize_private_key,
    normalize_public_key,
)
from .transport import (
    ChannelListener,
    PublishOutcome,
    PublishResult,
    RelayChannel,
    WebSocketRelayChannel,
)


__all__ = [
    "ChannelListener",
    "KeysConfig",
    "PublishOutcome",
    "PublishResult",
    "RelayChannel",
    "WebSocketRelayChannel",
    "canonicalize",
    "compute_id",
    "derive_public_key",
    "finalize",
    "generate_keypair",
    "keypair_from_private_key",
    "load_keys_from_env",
    "normalize_private_key",
    "normalize_public_key",
    "sign",
    "verify",
]
