"""
User profile assembled from metadata and contact-list events.

A [Profile][nostrpool.models.profile.Profile] merges two sources:

* the newest kind 0 (``SET_METADATA``) event, whose content is a JSON
  document with ``name``, ``about``, ``picture`` and friends;
* the newest kind 3 (``CONTACTS``) event, whose ``p`` tags list followed
  keys and whose content optionally maps relay URLs to read/write flags.

Parsing is defensive: malformed JSON or unexpected value types yield empty
fields rather than errors, since profile data is user-authored and
non-essential.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from .event import Event


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RelayPreference:
    """A relay URL with the owner's read/write preference (NIP-02 content)."""

    url: str
    read: bool = True
    write: bool = True


@dataclass(frozen=True, slots=True)
class Profile:
    """Immutable user profile.

    Attributes:
        pubkey: Profile owner's public key.
        name: Short handle.
        about: Free-form biography.
        picture: Avatar URL.
        website: Personal website URL.
        display_name: Display name.
        nip05: NIP-05 internet identifier.
        following: Public keys followed by the owner, in contact-list order.
        relays: Relay preferences published with the contact list.
    """

    pubkey: str
    name: str | None = None
    about: str | None = None
    picture: str | None = None
    website: str | None = None
    display_name: str | None = None
    nip05: str | None = None
    following: tuple[str, ...] = ()
    relays: tuple[RelayPreference, ...] = field(default=())

    _TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "name",
        "about",
        "picture",
        "website",
        "display_name",
        "nip05",
    )

    @classmethod
    def from_metadata(cls, pubkey: str, event: Event | None) -> Profile:
        """Build a profile from a kind 0 event, tolerating bad content.

        Args:
            pubkey: Owner public key (used even when *event* is ``None``).
            event: The newest metadata event, or ``None`` if none was found.

        Returns:
            A profile with every recognised string field that was present.
        """
        if event is None or not event.content:
            return cls(pubkey=pubkey)

        document = _load_object(event.content)
        values = {
            key: document[key]
            for key in cls._TEXT_FIELDS
            if isinstance(document.get(key), str)
        }
        return cls(pubkey=pubkey, **values)

    def with_contacts(self, event: Event | None) -> Profile:
        """Return a copy enriched with a kind 3 event's follows and relays."""
        if event is None:
            return self

        following = tuple(dict.fromkeys(event.tag_values("p")))
        relays = tuple(
            RelayPreference(url=url, read=prefs["read"], write=prefs["write"])
            for url, prefs in _parse_relay_map(event.content).items()
        )
        return replace(self, following=following, relays=relays)


def _load_object(content: str) -> dict[str, Any]:
    """Parse *content* as a JSON object, returning ``{}`` on any failure."""
    try:
        document = json.loads(content)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.debug("profile_content_invalid error=%s", e)
        return {}
    return document if isinstance(document, dict) else {}


def _parse_relay_map(content: str) -> dict[str, dict[str, bool]]:
    """Parse the NIP-02 ``{url: {"read": bool, "write": bool}}`` relay map."""
    if not content:
        return {}
    result: dict[str, dict[str, bool]] = {}
    for url, prefs in _load_object(content).items():
        if not isinstance(prefs, dict):
            continue
        read = prefs.get("read", True)
        write = prefs.get("write", True)
        result[url] = {
            "read": read if isinstance(read, bool) else True,
            "write": write if isinstance(write, bool) else True,
        }
    return result
