"""
Unit tests for models.profile module.

Tests:
- Profile.from_metadata() with valid, partial, and malformed content
- Profile.with_contacts() follows and NIP-02 relay map parsing
"""

import json

from nostrpool.models import Event, Profile, RelayPreference, Tag


ALICE = "aa" * 32
BOB = "bb" * 32
CAROL = "cc" * 32


def metadata(content: str) -> Event:
    return Event(pubkey=ALICE, created_at=1, kind=0, content=content)


def contacts(*follows: str, content: str = "") -> Event:
    return Event(
        pubkey=ALICE,
        created_at=1,
        kind=3,
        tags=tuple(Tag("p", (pk,)) for pk in follows),
        content=content,
    )


class TestFromMetadata:
    def test_full_document(self) -> None:
        doc = {
            "name": "alice",
            "about": "hi",
            "picture": "https://example.com/a.png",
            "website": "https://example.com",
            "display_name": "Alice",
            "nip05": "alice@example.com",
        }
        profile = Profile.from_metadata(ALICE, metadata(json.dumps(doc)))
        assert profile.pubkey == ALICE
        assert profile.name == "alice"
        assert profile.display_name == "Alice"
        assert profile.nip05 == "alice@example.com"

    def test_missing_fields_left_unset(self) -> None:
        profile = Profile.from_metadata(ALICE, metadata('{"name":"alice"}'))
        assert profile.name == "alice"
        assert profile.about is None
        assert profile.picture is None

    def test_non_string_values_ignored(self) -> None:
        profile = Profile.from_metadata(ALICE, metadata('{"name":42,"about":null,"website":"w"}'))
        assert profile.name is None
        assert profile.about is None
        assert profile.website == "w"

    def test_malformed_json_gives_empty_profile(self) -> None:
        assert Profile.from_metadata(ALICE, metadata("{not json")) == Profile(pubkey=ALICE)

    def test_non_object_json_gives_empty_profile(self) -> None:
        assert Profile.from_metadata(ALICE, metadata('["alice"]')) == Profile(pubkey=ALICE)

    def test_no_event(self) -> None:
        assert Profile.from_metadata(ALICE, None) == Profile(pubkey=ALICE)


class TestWithContacts:
    def test_following_from_p_tags_deduplicated(self) -> None:
        profile = Profile(pubkey=ALICE).with_contacts(contacts(BOB, CAROL, BOB))
        assert profile.following == (BOB, CAROL)

    def test_relay_map(self) -> None:
        content = json.dumps(
            {
                "wss://a.example": {"read": True, "write": False},
                "wss://b.example": {"read": False},
                "wss://c.example": "garbage",
            }
        )
        profile = Profile(pubkey=ALICE).with_contacts(contacts(content=content))
        assert profile.relays == (
            RelayPreference("wss://a.example", read=True, write=False),
            RelayPreference("wss://b.example", read=False, write=True),
        )

    def test_malformed_relay_map_ignored(self) -> None:
        profile = Profile(pubkey=ALICE).with_contacts(contacts(BOB, content="{nope"))
        assert profile.following == (BOB,)
        assert profile.relays == ()

    def test_metadata_fields_kept(self) -> None:
        base = Profile(pubkey=ALICE, name="alice")
        assert base.with_contacts(contacts(BOB)).name == "alice"

    def test_none_returns_same_profile(self) -> None:
        base = Profile(pubkey=ALICE, name="alice")
        assert base.with_contacts(None) is base
