"""
Structured subscription filter (NIP-01 ``REQ`` filter).

A [SubscriptionFilter][nostrpool.models.filter.SubscriptionFilter] is built
per query and discarded afterwards. It is sent verbatim to relays and is also
evaluated client-side by [RelayPool][nostrpool.core.pool.RelayPool], which
drops events a relay returned but that do not match.

Matching is a conjunction across populated fields and a disjunction within a
field. Tag filters other than the reserved ``e`` and ``p`` live in the same
open-ended map, so relays supporting custom tags are never blocked by a fixed
schema.

Examples:
    ```python
    f = (
        SubscriptionFilter()
        .add_kinds(EventKind.TEXT_NOTE)
        .add_authors(pubkey)
        .add_tag("t", "nostr")
        .set_limit(20)
    )
    f.to_dict()
    # {'authors': [...], 'kinds': [1], '#t': ['nostr'], 'limit': 20}
    ```
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from .event import Event


def _to_timestamp(value: int | datetime) -> int:
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"timestamp must be an int or datetime, got {type(value).__name__}")
    return value


@dataclass(slots=True)
class SubscriptionFilter:
    """Builder and record for a single relay query.

    Attributes:
        ids: Event ids to match, or ``None`` when unconstrained.
        authors: Author public keys to match, or ``None``.
        kinds: Event kinds to match; an empty list is unconstrained.
        tag_filters: Tag name (without ``#``) to accepted first values.
            Holds the reserved ``e`` and ``p`` names as well as extensions.
        since: Inclusive lower bound on ``created_at``.
        until: Inclusive upper bound on ``created_at``.
        limit: Maximum number of events wanted; does not affect matching.
    """

    RESERVED_TAGS: ClassVar[frozenset[str]] = frozenset({"e", "p"})

    ids: set[str] | None = None
    authors: set[str] | None = None
    kinds: list[int] = field(default_factory=list)
    tag_filters: dict[str, set[str]] = field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    # -------------------------------------------------------------------------
    # Builder
    # -------------------------------------------------------------------------

    def add_kinds(self, *kinds: int) -> SubscriptionFilter:
        for kind in kinds:
            if int(kind) not in self.kinds:
                self.kinds.append(int(kind))
        return self

    add_kind = add_kinds

    def add_authors(self, *authors: str) -> SubscriptionFilter:
        if self.authors is None:
            self.authors = set()
        self.authors.update(authors)
        return self

    add_author = add_authors

    def add_ids(self, *ids: str) -> SubscriptionFilter:
        if self.ids is None:
            self.ids = set()
        self.ids.update(ids)
        return self

    add_id = add_ids

    def add_tag(self, name: str, *values: str) -> SubscriptionFilter:
        """Constrain tag *name* (without the leading ``#``) to *values*.

        Raises:
            ValueError: If *name* is empty or no values are given.
        """
        name = name.removeprefix("#")
        if not name:
            raise ValueError("tag filter name must not be empty")
        if not values:
            raise ValueError(f"tag filter #{name} needs at least one value")
        self.tag_filters.setdefault(name, set()).update(values)
        return self

    def add_event_refs(self, *event_ids: str) -> SubscriptionFilter:
        """Match events referencing any of *event_ids* via ``e`` tags."""
        return self.add_tag("e", *event_ids)

    def add_pubkey_refs(self, *pubkeys: str) -> SubscriptionFilter:
        """Match events referencing any of *pubkeys* via ``p`` tags."""
        return self.add_tag("p", *pubkeys)

    def set_since(self, since: int | datetime | None) -> SubscriptionFilter:
        self.since = None if since is None else _to_timestamp(since)
        return self

    def set_until(self, until: int | datetime | None) -> SubscriptionFilter:
        self.until = None if until is None else _to_timestamp(until)
        return self

    def set_limit(self, limit: int | None) -> SubscriptionFilter:
        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")
        self.limit = limit
        return self

    def additional_tag_filters(self) -> dict[str, set[str]]:
        """Return tag filters outside the reserved ``e``/``p`` set."""
        return {k: v for k, v in self.tag_filters.items() if k not in self.RESERVED_TAGS}

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every populated constraint."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, accepted in self.tag_filters.items():
            if not any(value in accepted for value in event.tag_values(name)):
                return False
        return True

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 filter object with absent fields omitted."""
        result: dict[str, Any] = {}
        if self.ids is not None:
            result["ids"] = sorted(self.ids)
        if self.authors is not None:
            result["authors"] = sorted(self.authors)
        if self.kinds:
            result["kinds"] = list(self.kinds)
        for name in sorted(self.tag_filters):
            result[f"#{name}"] = sorted(self.tag_filters[name])
        if self.since is not None:
            result["since"] = self.since
        if self.until is not None:
            result["until"] = self.until
        if self.limit is not None:
            result["limit"] = self.limit
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SubscriptionFilter:
        """Parse a NIP-01 filter object.

        Any ``#<name>`` key lands in ``tag_filters``; unknown keys without a
        ``#`` prefix are ignored.

        Raises:
            ValueError: If a recognised key holds a value of the wrong shape.
        """
        f = cls()
        try:
            if "ids" in data:
                f.add_ids(*_strings(data["ids"], "ids"))
            if "authors" in data:
                f.add_authors(*_strings(data["authors"], "authors"))
            if "kinds" in data:
                f.add_kinds(*(_int(k, "kinds") for k in data["kinds"]))
            for key, values in data.items():
                if isinstance(key, str) and key.startswith("#") and len(key) > 1:
                    f.add_tag(key[1:], *_strings(values, key))
            if data.get("since") is not None:
                f.set_since(_int(data["since"], "since"))
            if data.get("until") is not None:
                f.set_until(_int(data["until"], "until"))
            if data.get("limit") is not None:
                f.set_limit(_int(data["limit"], "limit"))
        except TypeError as e:
            raise ValueError(str(e)) from e
        return f


def _strings(values: Any, name: str) -> Iterable[str]:
    if isinstance(values, str) or not isinstance(values, list | tuple | set | frozenset):
        raise ValueError(f"{name} must be an array of strings")
    if not all(isinstance(v, str) for v in values):
        raise ValueError(f"{name} must be an array of strings")
    return values


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value
