"""Unit tests for models.keys module."""

from dataclasses import FrozenInstanceError

import pytest

from nostrpool.models import KeyPair


PUBLIC = "7cef86754ddf07395c289c30fe31219de938c6d707d6b478a8682fc75795e8b9"
PRIVATE = "7f4c11a9742721d66e40e321ca50b682c27f7422190c14a187525e69e604836a"  # pragma: allowlist secret


class TestKeyPair:
    def test_valid(self) -> None:
        pair = KeyPair(public_key=PUBLIC, private_key=PRIVATE)
        assert pair.public_key == PUBLIC

    def test_private_key_hidden_from_repr(self) -> None:
        assert PRIVATE not in repr(KeyPair(public_key=PUBLIC, private_key=PRIVATE))

    def test_uppercase_rejected(self) -> None:
        with pytest.raises(ValueError, match="public_key"):
            KeyPair(public_key=PUBLIC.upper(), private_key=PRIVATE)

    def test_short_private_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="private_key"):
            KeyPair(public_key=PUBLIC, private_key=PRIVATE[:-2])

    def test_frozen(self) -> None:
        pair = KeyPair(public_key=PUBLIC, private_key=PRIVATE)
        with pytest.raises(FrozenInstanceError):
            pair.public_key = "00" * 32  # type: ignore[misc]
