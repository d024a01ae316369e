"""
Immutable Nostr event and tag models.

[Event][nostrpool.models.event.Event] is a frozen dataclass mirroring the
NIP-01 wire object. It carries no cryptography of its own: identifiers and
signatures are produced and checked by
[nostrpool.utils.codec][nostrpool.utils.codec], which returns new instances
via ``dataclasses.replace`` rather than mutating existing ones.

See Also:
    [nostrpool.utils.codec][]: Canonical serialization, id computation,
        signing, and verification.
    [nostrpool.models.post.Post][]: Domain view built from text note events.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ._validation import validate_instance, validate_non_negative_int, validate_str


@dataclass(frozen=True, slots=True)
class Tag:
    """A single event tag: a name followed by ordered data values.

    On the wire a tag is a flat JSON array ``["e", "<id>", "", "root"]``;
    the first element becomes ``name`` and the rest ``data``.

    Attributes:
        name: Tag identifier (e.g. ``"e"``, ``"p"``, ``"t"``).
        data: Ordered tag values following the name.

    Examples:
        ```python
        tag = Tag.from_list(["e", "ab" * 32, "", "root"])
        tag.name        # 'e'
        tag.value       # 'abab...'
        tag.to_list()   # ['e', 'abab...', '', 'root']
        ```
    """

    name: str
    data: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_str(self.name, "tag name")
        if not isinstance(self.data, tuple):
            object.__setattr__(self, "data", tuple(self.data))
        for value in self.data:
            validate_str(value, "tag value")

    @property
    def value(self) -> str | None:
        """First data element, or ``None`` for a bare tag."""
        return self.data[0] if self.data else None

    def to_list(self) -> list[str]:
        """Return the flat wire representation ``[name, *data]``."""
        return [self.name, *self.data]

    @classmethod
    def from_list(cls, raw: Sequence[Any]) -> Tag:
        """Build a tag from its wire array.

        Raises:
            ValueError: If *raw* is empty, not a list, or holds non-string items.
        """
        if isinstance(raw, str | bytes) or not isinstance(raw, Sequence) or not raw:
            raise ValueError(f"tag must be a non-empty array, got {raw!r}")
        if not all(isinstance(item, str) for item in raw):
            raise ValueError(f"tag items must be strings, got {raw!r}")
        return cls(raw[0], tuple(raw[1:]))


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable Nostr event.

    An event is *unsigned* until both ``id`` and ``sig`` are set. Unsigned
    events are the input to
    [finalize()][nostrpool.utils.codec.finalize]; signed events are what
    relays store and forward.

    Attributes:
        pubkey: Author x-only public key, lowercase hex.
        created_at: Unix timestamp in seconds.
        kind: Integer event kind (see
            [EventKind][nostrpool.models.constants.EventKind]).
        tags: Ordered tags. Tag order is part of the canonical form.
        content: Arbitrary text content.
        id: SHA-256 of the canonical serialization, lowercase hex.
        sig: BIP-340 Schnorr signature over ``id``, lowercase hex.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``created_at`` or ``kind`` is negative.

    Examples:
        ```python
        event = Event(pubkey=pk, created_at=1700000000, kind=1, content="hi")
        event.is_signed        # False
        signed = finalize(event, private_key)
        signed.to_json()
        ```
    """

    pubkey: str
    created_at: int
    kind: int
    tags: tuple[Tag, ...] = ()
    content: str = ""
    id: str = ""
    sig: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        validate_str(self.pubkey, "pubkey")
        validate_non_negative_int(self.created_at, "created_at")
        validate_non_negative_int(self.kind, "kind")
        validate_str(self.content, "content")
        validate_str(self.id, "id")
        validate_str(self.sig, "sig")
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))
        for tag in self.tags:
            validate_instance(tag, Tag, "tag")

    @property
    def is_signed(self) -> bool:
        """True once both identifier and signature have been assigned."""
        return bool(self.id and self.sig)

    @property
    def created_datetime(self) -> datetime:
        """``created_at`` as a timezone-aware UTC datetime."""
        return datetime.fromtimestamp(self.created_at, tz=UTC)

    def tag_values(self, name: str) -> list[str]:
        """Return the first data value of every tag named *name*, in order."""
        return [tag.data[0] for tag in self.tags if tag.name == name and tag.data]

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 wire object."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [tag.to_list() for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Return the wire object as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an event from a NIP-01 wire object.

        Args:
            data: Mapping with ``pubkey``, ``created_at``, ``kind`` and
                optionally ``tags``, ``content``, ``id``, ``sig``.

        Raises:
            ValueError: If required keys are missing or values are malformed.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"event must be an object, got {type(data).__name__}")
        try:
            raw_tags = data.get("tags") or []
            if not isinstance(raw_tags, list):
                raise ValueError("tags must be an array")
            return cls(
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                tags=tuple(Tag.from_list(raw) for raw in raw_tags),
                content=data.get("content", ""),
                id=data.get("id", ""),
                sig=data.get("sig", ""),
            )
        except KeyError as e:
            raise ValueError(f"event is missing required field {e.args[0]!r}") from None
        except TypeError as e:
            raise ValueError(f"invalid event: {e}") from e

    @classmethod
    def from_json(cls, raw: str) -> Event:
        """Parse an event from its JSON wire object.

        Raises:
            ValueError: If *raw* is not valid JSON or not a valid event.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid event JSON: {e}") from e
        return cls.from_dict(data)
