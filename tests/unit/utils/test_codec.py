"""
Unit tests for utils.codec module.

Tests:
- canonicalize() - exact compact form, hashing vs wire variant, escaping
- compute_id() - determinism and sensitivity to every field and tag order
- sign() / finalize() - round trip, pubkey mismatch, self-verification
- verify() - tamper detection, malformed fields, fail-closed behaviour
- Interoperability with nostr_sdk
"""

import hashlib
from dataclasses import replace
from unittest.mock import MagicMock, patch

import nostr_sdk
import pytest

from nostrpool.exceptions import SigningError
from nostrpool.models import Event, Tag
from nostrpool.utils.codec import canonicalize, compute_id, finalize, sign, verify
from nostrpool.utils.keys import generate_keypair


PUBKEY = "ab" * 32


# =============================================================================
# canonicalize()
# =============================================================================


class TestCanonicalize:
    def test_hashing_form(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(Tag("e", ("x", "")),), content="hi")
        assert canonicalize(event) == f'[0,"{PUBKEY}",1,1,[["e","x",""]],"hi"]'

    def test_wire_form_quotes_id(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, id="cd" * 32)
        assert canonicalize(event, include_id=True) == f'["{"cd" * 32}","{PUBKEY}",1,1,[],""]'

    def test_json_escaping(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, content='say "hi"\n\\')
        assert canonicalize(event).endswith(r'"say \"hi\"\n\\"]')

    def test_non_ascii_not_escaped(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, content="héllo 🌍")
        assert "héllo 🌍" in canonicalize(event)

    def test_no_whitespace(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(Tag("t", ("a",)),))
        assert " " not in canonicalize(event)


# =============================================================================
# compute_id()
# =============================================================================


class TestComputeId:
    def test_is_sha256_of_canonical_form(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, content="hi")
        expected = hashlib.sha256(canonicalize(event).encode("utf-8")).hexdigest()
        assert compute_id(event) == expected

    def test_deterministic(self) -> None:
        a = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(Tag("t", ("x",)),), content="hi")
        b = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(Tag("t", ("x",)),), content="hi")
        assert compute_id(a) == compute_id(b)

    def test_lowercase_hex(self) -> None:
        event_id = compute_id(Event(pubkey=PUBKEY, created_at=1, kind=1))
        assert len(event_id) == 64
        assert event_id == event_id.lower()

    def test_ignores_id_and_sig(self) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1)
        assert compute_id(event) == compute_id(replace(event, id="00" * 32, sig="11" * 64))

    def test_tag_order_changes_id(self) -> None:
        t1, t2 = Tag("p", ("a",)), Tag("p", ("b",))
        a = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(t1, t2))
        b = Event(pubkey=PUBKEY, created_at=1, kind=1, tags=(t2, t1))
        assert compute_id(a) != compute_id(b)

    @pytest.mark.parametrize(
        "changes",
        [
            {"content": "other"},
            {"created_at": 2},
            {"kind": 7},
            {"pubkey": "cd" * 32},
            {"tags": (Tag("t", ("x",)),)},
        ],
    )
    def test_every_field_changes_id(self, changes: dict) -> None:
        event = Event(pubkey=PUBKEY, created_at=1, kind=1, content="hi")
        assert compute_id(event) != compute_id(replace(event, **changes))


# =============================================================================
# sign() / finalize()
# =============================================================================


class TestSign:
    def test_finalize_round_trip(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1, content="hello")
        signed = finalize(event, keypair.private_key)
        assert signed.id == compute_id(event)
        assert len(signed.sig) == 128
        assert signed.is_signed
        assert verify(signed)

    def test_finalize_returns_new_event(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1)
        signed = finalize(event, keypair.private_key)
        assert event.id == ""
        assert signed is not event

    def test_round_trip_random_keys(self) -> None:
        for _ in range(5):
            pair = generate_keypair()
            event = Event(pubkey=pair.public_key, created_at=123, kind=1, content="x")
            assert verify(finalize(event, pair.private_key))

    def test_pubkey_mismatch(self, keypair, other_keypair) -> None:
        event = Event(pubkey=other_keypair.public_key, created_at=1, kind=1)
        with pytest.raises(SigningError, match="does not match"):
            finalize(event, keypair.private_key)

    def test_short_id_rejected(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1, id="abcd")
        with pytest.raises(ValueError, match="32 bytes"):
            sign(event, keypair.private_key)

    def test_malformed_private_key(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1, id="00" * 32)
        with pytest.raises(ValueError):
            sign(event, "zz" * 32)

    def test_self_verification_failure_is_fatal(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1)
        failing = MagicMock()
        failing.return_value.verify.return_value = False
        with (
            patch("nostrpool.utils.codec.PublicKeyXOnly", failing),
            pytest.raises(SigningError, match="self-verification"),
        ):
            finalize(event, keypair.private_key)


# =============================================================================
# verify()
# =============================================================================


class TestVerify:
    @pytest.mark.parametrize(
        "changes",
        [
            {"content": "tampered"},
            {"created_at": 2},
            {"kind": 7},
            {"tags": (Tag("t", ("x",)),)},
        ],
    )
    def test_tampering_detected_without_signature_check(self, sign_event, changes: dict) -> None:
        tampered = replace(sign_event(created_at=1), **changes)
        with patch("nostrpool.utils.codec.PublicKeyXOnly") as schnorr:
            assert verify(tampered) is False
        schnorr.assert_not_called()

    def test_swapped_pubkey(self, sign_event, other_keypair) -> None:
        assert not verify(replace(sign_event(), pubkey=other_keypair.public_key))

    def test_wrong_signature(self, sign_event) -> None:
        a, b = sign_event("a"), sign_event("b")
        assert not verify(replace(a, sig=b.sig))

    def test_uppercase_id_rejected(self, sign_event) -> None:
        event = sign_event()
        assert not verify(replace(event, id=event.id.upper()))

    def test_unsigned_event(self, keypair) -> None:
        event = Event(pubkey=keypair.public_key, created_at=1, kind=1)
        assert not verify(replace(event, id=compute_id(event)))

    def test_non_hex_signature(self, sign_event) -> None:
        assert not verify(replace(sign_event(), sig="zz" * 64))

    def test_short_signature(self, sign_event) -> None:
        assert not verify(replace(sign_event(), sig="00" * 32))

    def test_pubkey_not_on_curve(self) -> None:
        # x = p (the field prime) is not a valid x coordinate
        pubkey = "fffffffffffffffffffffffffffffffffffffffffffffffffffffffefffffc2f"
        event = Event(pubkey=pubkey, created_at=1, kind=1, sig="00" * 64)
        assert not verify(replace(event, id=compute_id(event)))


# =============================================================================
# Interoperability
# =============================================================================


class TestNostrSdkInterop:
    def test_sdk_accepts_our_event(self, sign_event) -> None:
        ours = sign_event("interop", tags=[["t", "nostr"], ["p", "ab" * 32]])
        theirs = nostr_sdk.Event.from_json(ours.to_json())
        assert theirs.id().to_hex() == ours.id
        assert theirs.verify()

    def test_sdk_derives_same_public_key(self, keypair) -> None:
        assert nostr_sdk.Keys.parse(keypair.private_key).public_key().to_hex() == keypair.public_key
