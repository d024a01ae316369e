"""Event canonicalization, identity, signing, and verification.

Implements the NIP-01 event identity rules:

* the **canonical form** is the compact JSON array
  ``[0, pubkey, created_at, kind, tags, content]``;
* the **id** is the lowercase hex SHA-256 of its UTF-8 bytes;
* the **signature** is a BIP-340 Schnorr signature over the 32 raw id bytes.

Field order and the absence of whitespace are load-bearing: any deviation
changes the hash and breaks identifier agreement with every other Nostr
implementation.

Examples:
    ```python
    pair = generate_keypair()
    event = Event(pubkey=pair.public_key, created_at=1700000000, kind=1, content="hi")
    signed = finalize(event, pair.private_key)
    verify(signed)   # True
    ```

See Also:
    [nostrpool.models.event.Event][]: The immutable event model.
    [nostrpool.utils.keys][]: Key generation and derivation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import replace

from coincurve import PrivateKey, PublicKeyXOnly

from nostrpool.exceptions import SigningError
from nostrpool.models.event import Event


logger = logging.getLogger(__name__)

_ID_BYTES = 32
_SIG_BYTES = 64
_PUBKEY_BYTES = 32


def canonicalize(event: Event, include_id: bool = False) -> str:
    """Serialize *event* to its fixed-order, whitespace-free array form.

    Args:
        event: The event to serialize.
        include_id: If ``False`` (hashing form) the first element is the
            integer ``0``; if ``True`` (wire form) it is the quoted id.

    Returns:
        Compact JSON text with standard JSON string escaping.
    """
    payload = [
        event.id if include_id else 0,
        event.pubkey,
        event.created_at,
        event.kind,
        [tag.to_list() for tag in event.tags],
        event.content,
    ]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def compute_id(event: Event) -> str:
    """Return the lowercase hex SHA-256 of the event's canonical form."""
    return hashlib.sha256(canonicalize(event).encode("utf-8")).hexdigest()


def sign(event: Event, private_key: str) -> str:
    """Produce a Schnorr signature over ``event.id``.

    The raw id bytes are signed directly, never a re-hash of the id text. The
    fresh signature is verified against the signer's own public key before it
    is returned.

    Args:
        event: Event whose ``id`` has already been computed.
        private_key: Signer's private key, 64 hex characters.

    Returns:
        The 64-byte signature as lowercase hex.

    Raises:
        ValueError: If the id or private key is not valid hex of the right size.
        SigningError: If the event's ``pubkey`` is not the signer's key, or
            if the signature fails self-verification.
    """
    message = bytes.fromhex(event.id)
    if len(message) != _ID_BYTES:
        raise ValueError(f"event id must be {_ID_BYTES} bytes, got {len(message)}")

    secret = PrivateKey(bytes.fromhex(private_key))
    own_pubkey = secret.public_key.format(compressed=True)[1:]
    if own_pubkey.hex() != event.pubkey:
        raise SigningError("event pubkey does not match the signing key")

    signature = secret.sign_schnorr(message)
    if not PublicKeyXOnly(own_pubkey).verify(signature, message):
        logger.error("signature_self_verification_failed id=%s", event.id)
        raise SigningError(f"signature for event {event.id} failed self-verification")

    return signature.hex()


def finalize(event: Event, private_key: str) -> Event:
    """Stamp *event* with its id and signature, returning a new event.

    Raises:
        ValueError: If the private key is malformed.
        SigningError: See [sign()][nostrpool.utils.codec.sign].
    """
    stamped = replace(event, id=compute_id(event), sig="")
    return replace(stamped, sig=sign(stamped, private_key))


def verify(event: Event) -> bool:
    """Check an event's identifier and signature.

    The id is recomputed from the event fields and compared (case-sensitive)
    with the stored one; on mismatch the signature is not examined. Malformed
    hex or wrong-length fields fail closed.

    Returns:
        ``True`` only if both the id and the signature check out.
    """
    recomputed = compute_id(event)
    if recomputed != event.id:
        return False

    try:
        signature = bytes.fromhex(event.sig)
        pubkey = bytes.fromhex(event.pubkey)
    except ValueError:
        return False
    if len(signature) != _SIG_BYTES or len(pubkey) != _PUBKEY_BYTES:
        return False

    try:
        return bool(PublicKeyXOnly(pubkey).verify(signature, bytes.fromhex(recomputed)))
    except (ValueError, TypeError):
        # pubkey bytes that are not a valid x coordinate on the curve
        return False
