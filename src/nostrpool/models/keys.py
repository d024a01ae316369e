"""Key pair model.

Pure container for a hex-encoded secp256k1 key pair. Generation, derivation
and parsing live in [nostrpool.utils.keys][nostrpool.utils.keys].
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._validation import is_hex64


@dataclass(frozen=True, slots=True)
class KeyPair:
    """A lowercase-hex x-only public key and its private key.

    The private key is excluded from ``repr`` so the pair can be logged or
    printed without leaking key material.

    Raises:
        ValueError: If either key is not 64 lowercase hex characters.
    """

    public_key: str
    private_key: str = field(repr=False)

    def __post_init__(self) -> None:
        if not is_hex64(self.public_key):
            raise ValueError("public_key must be 64 lowercase hex characters")
        if not is_hex64(self.private_key):
            raise ValueError("private_key must be 64 lowercase hex characters")
