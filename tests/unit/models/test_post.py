"""Unit tests for models.post module (NIP-10 thread resolution)."""

from datetime import UTC, datetime

from nostrpool.models import Event, Post, Tag


ALICE = "aa" * 32
BOB = "bb" * 32
ROOT = "11" * 32
PARENT = "22" * 32
OTHER = "33" * 32


def note(*tags: Tag) -> Event:
    return Event(pubkey=ALICE, created_at=1_700_000_000, kind=1, tags=tags, content="hi", id="ff" * 32)


class TestFromEvent:
    def test_top_level_post(self) -> None:
        post = Post.from_event(note())
        assert post.id == "ff" * 32
        assert post.author == ALICE
        assert post.content == "hi"
        assert post.created_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert post.root_id is None
        assert post.reply_to_id is None
        assert not post.is_reply

    def test_mentions_deduplicated(self) -> None:
        post = Post.from_event(note(Tag("p", (BOB,)), Tag("p", (BOB,)), Tag("p", (ALICE,))))
        assert post.mentions == (BOB, ALICE)


class TestThreadReferences:
    def test_marked_root_only(self) -> None:
        post = Post.from_event(note(Tag("e", (ROOT, "", "root"))))
        assert post.root_id == ROOT
        assert post.reply_to_id == ROOT
        assert post.is_reply

    def test_marked_root_and_reply(self) -> None:
        post = Post.from_event(note(Tag("e", (PARENT, "", "reply")), Tag("e", (ROOT, "", "root"))))
        assert post.root_id == ROOT
        assert post.reply_to_id == PARENT

    def test_marked_tags_win_over_position(self) -> None:
        post = Post.from_event(
            note(Tag("e", (OTHER,)), Tag("e", (ROOT, "", "root")), Tag("e", (PARENT, "", "reply")))
        )
        assert (post.root_id, post.reply_to_id) == (ROOT, PARENT)

    def test_positional_fallback(self) -> None:
        post = Post.from_event(note(Tag("e", (ROOT,)), Tag("e", (OTHER,)), Tag("e", (PARENT,))))
        assert post.root_id == ROOT
        assert post.reply_to_id == PARENT

    def test_single_positional_tag(self) -> None:
        post = Post.from_event(note(Tag("e", (ROOT,))))
        assert (post.root_id, post.reply_to_id) == (ROOT, ROOT)

    def test_bare_e_tag_ignored(self) -> None:
        assert Post.from_event(note(Tag("e"))).root_id is None
