"""Nostr key management utilities.

Key generation, public key derivation, key parsing (64-char hex or NIP-19
``nsec1`` / ``npub1`` bech32), and a Pydantic model that resolves the private key
from an environment variable.

Warning:
    Private keys must **never** be stored in configuration files, source code,
    or logged to any output. Always use environment variables or a secure
    secret management system.

Examples:
    ```python
    pair = generate_keypair()
    derive_public_key(pair.private_key) == pair.public_key   # True

    os.environ["NOSTR_PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    pair = load_keys_from_env("NOSTR_PRIVATE_KEY")
    ```
"""

from __future__ import annotations

import os
import secrets
from typing import Any

from coincurve import PrivateKey
from nostr_sdk import PublicKey, SecretKey
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from nostrpool.models._validation import is_hex64
from nostrpool.models.keys import KeyPair


ENV_PRIVATE_KEY = "NOSTR_PRIVATE_KEY"  # pragma: allowlist secret  # Default env var name

# Order of the secp256k1 group.
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _generate_scalar() -> bytes:
    """Draw a uniformly random scalar in ``[1, CURVE_ORDER)``."""
    while True:
        candidate = secrets.token_bytes(32)
        value = int.from_bytes(candidate, "big")
        if 0 < value < CURVE_ORDER:
            return candidate


def generate_keypair() -> KeyPair:
    """Generate a fresh secp256k1 key pair.

    Zero and overflowing scalars are rejected and redrawn.

    Returns:
        A [KeyPair][nostrpool.models.keys.KeyPair] with lowercase hex keys.
    """
    private_key = _generate_scalar().hex()
    return KeyPair(public_key=derive_public_key(private_key), private_key=private_key)


def derive_public_key(private_key: str) -> str:
    """Return the BIP-340 x-only public key for a hex private key.

    Raises:
        ValueError: If *private_key* is not valid hex or not a valid scalar.
    """
    secret = bytes.fromhex(private_key)
    # format(compressed=True) -> [02/03] + 32-byte x; drop the prefix byte
    return PrivateKey(secret).public_key.format(compressed=True)[1:].hex()


def normalize_private_key(value: str) -> str:
    """Parse a private key given as 64-char hex or ``nsec1`` bech32.

    Returns:
        The private key as 64 lowercase hex characters.

    Raises:
        ValueError: If the value is in neither format or is not a valid scalar.
    """
    value = value.strip()
    if value.startswith("nsec1"):
        try:
            return SecretKey.parse(value).to_hex()
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise ValueError(f"invalid nsec private key: {e}") from None

    lowered = value.lower()
    if not is_hex64(lowered):
        raise ValueError("private key must be 64 hex characters or an nsec1 string")
    if not 0 < int(lowered, 16) < CURVE_ORDER:
        raise ValueError("private key is out of range for secp256k1")
    return lowered


def normalize_public_key(value: str) -> str:
    """Parse a public key given as 64-char hex or ``npub1`` bech32.

    Raises:
        ValueError: If the value is in neither format.
    """
    value = value.strip()
    if value.startswith("npub1"):
        try:
            return PublicKey.parse(value).to_hex()
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise ValueError(f"invalid npub public key: {e}") from None

    lowered = value.lower()
    if not is_hex64(lowered):
        raise ValueError("public key must be 64 hex characters or an npub1 string")
    return lowered


def keypair_from_private_key(value: str) -> KeyPair:
    """Build a [KeyPair][nostrpool.models.keys.KeyPair] from a hex or nsec private key."""
    private_key = normalize_private_key(value)
    return KeyPair(public_key=derive_public_key(private_key), private_key=private_key)


def load_keys_from_env(env_var: str = ENV_PRIVATE_KEY) -> KeyPair:
    """Load a key pair from the private key held in an environment variable.

    Raises:
        ValueError: If the variable is unset, empty, or malformed.
    """
    value = os.getenv(env_var)
    if not value:
        raise ValueError(f"{env_var} environment variable is required")
    return keypair_from_private_key(value)


class KeysConfig(BaseModel):
    """Identity configuration for a client.

    The private key is never read from the configuration file itself: it is
    resolved from the environment variable named by ``private_key_env`` when
    that variable is set. Without it the client runs read-only with the
    configured ``public_key``.

    Attributes:
        public_key: Hex public key for read-only use. Ignored when a private
            key is available (the public key is then derived).
        private_key_env: Environment variable holding the private key.
        private_key: Private key loaded from ``private_key_env``.

    Warning:
        ``private_key`` is a ``SecretStr``: it never appears in ``repr`` or
        serialized output. Do not log ``private_key.get_secret_value()``.
    """

    public_key: str | None = Field(default=None, description="Hex public key (read-only mode)")
    private_key_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    private_key: SecretStr | None = Field(default=None, description="Loaded from private_key_env")

    @field_validator("public_key")
    @classmethod
    def validate_public_key(cls, v: str | None) -> str | None:
        return normalize_public_key(v) if v is not None else None

    @model_validator(mode="before")
    @classmethod
    def _load_private_key_from_env(cls, data: Any) -> Any:
        """Populate ``private_key`` from the environment when it is set."""
        if isinstance(data, dict) and data.get("private_key") is None:
            env_var = data.get("private_key_env", ENV_PRIVATE_KEY)
            value = os.getenv(env_var)
            if value:
                data = {**data, "private_key": SecretStr(normalize_private_key(value))}
        return data

    def keypair(self) -> KeyPair | None:
        """Return the loaded key pair, or ``None`` in read-only mode."""
        if self.private_key is None:
            return None
        return keypair_from_private_key(self.private_key.get_secret_value())
