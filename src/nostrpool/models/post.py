"""Text note domain model.

[Post][nostrpool.models.post.Post] is the application-facing view of a kind 1
event. Thread references follow NIP-10: marked ``e`` tags (``root`` /
``reply``) take precedence; otherwise the deprecated positional scheme is
applied (first ``e`` is the root, last is the direct parent).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .event import Event


@dataclass(frozen=True, slots=True)
class Post:
    """A text note with its thread references resolved.

    Attributes:
        id: Event id.
        author: Author public key.
        content: Note text.
        created_at: Creation time (UTC).
        root_id: Thread root event id, or ``None`` for a top-level post.
        reply_to_id: Direct parent event id, or ``None``.
        mentions: Public keys referenced through ``p`` tags.
    """

    id: str
    author: str
    content: str
    created_at: datetime
    root_id: str | None = None
    reply_to_id: str | None = None
    mentions: tuple[str, ...] = ()

    @property
    def is_reply(self) -> bool:
        return self.reply_to_id is not None

    @classmethod
    def from_event(cls, event: Event) -> Post:
        root_id, reply_to_id = _thread_refs(event)
        return cls(
            id=event.id,
            author=event.pubkey,
            content=event.content,
            created_at=event.created_datetime,
            root_id=root_id,
            reply_to_id=reply_to_id,
            mentions=tuple(dict.fromkeys(event.tag_values("p"))),
        )


def _thread_refs(event: Event) -> tuple[str | None, str | None]:
    e_tags = [tag for tag in event.tags if tag.name == "e" and tag.data]
    if not e_tags:
        return None, None

    marked = {tag.data[2]: tag.data[0] for tag in e_tags if len(tag.data) >= 3 and tag.data[2]}
    if "root" in marked or "reply" in marked:
        root = marked.get("root", marked.get("reply"))
        return root, marked.get("reply", root)

    return e_tags[0].data[0], e_tags[-1].data[0]
