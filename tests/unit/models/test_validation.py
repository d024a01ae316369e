"""Tests for nostrpool.models._validation shared helpers."""

from __future__ import annotations

import pytest

from nostrpool.models._validation import (
    is_hex64,
    validate_instance,
    validate_non_negative_int,
    validate_str,
)


class TestValidateInstance:
    def test_correct_type_passes(self) -> None:
        validate_instance("hello", str, "field")

    def test_wrong_type_raises(self) -> None:
        with pytest.raises(TypeError, match="field must be a str, got int"):
            validate_instance(42, str, "field")

    def test_article_an_for_vowel(self) -> None:
        with pytest.raises(TypeError, match="field must be an int"):
            validate_instance("x", int, "field")


class TestValidateNonNegativeInt:
    def test_zero_accepted(self) -> None:
        validate_non_negative_int(0, "ts")

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError, match="ts must be non-negative"):
            validate_non_negative_int(-1, "ts")

    def test_bool_rejected(self) -> None:
        with pytest.raises(TypeError, match="ts must be an int, got bool"):
            validate_non_negative_int(True, "ts")

    def test_float_rejected(self) -> None:
        with pytest.raises(TypeError, match="ts must be an int, got float"):
            validate_non_negative_int(1.0, "ts")


class TestValidateStr:
    def test_str_accepted(self) -> None:
        validate_str("", "content")

    def test_bytes_rejected(self) -> None:
        with pytest.raises(TypeError, match="content must be a str, got bytes"):
            validate_str(b"x", "content")


class TestIsHex64:
    def test_lowercase_hex(self) -> None:
        assert is_hex64("ab" * 32)

    def test_uppercase_rejected(self) -> None:
        assert not is_hex64("AB" * 32)

    def test_wrong_length(self) -> None:
        assert not is_hex64("ab" * 31)
        assert not is_hex64("ab" * 33)

    def test_non_string(self) -> None:
        assert not is_hex64(None)
        assert not is_hex64(b"ab" * 32)
