"""
Validated relay endpoint.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) with
RFC 3986 validation. Unlike a crawler, a client legitimately talks to relays
on ``localhost`` or private networks, so local addresses are accepted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


@dataclass(frozen=True, slots=True)
class RelayEndpoint:
    """Immutable relay endpoint: a normalized URL plus a display name.

    Owned by [RelayPool][nostrpool.core.pool.RelayPool], which maps each
    endpoint 1:1 to a [RelayChannel][nostrpool.utils.transport.RelayChannel]
    while connected. Equality and hashing use the normalized ``url`` only.

    Attributes:
        url: Fully normalized URL including scheme.
        name: Human-readable label; defaults to the host.
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed or uses an unsupported scheme.

    Examples:
        ```python
        RelayEndpoint("wss://Relay.Damus.io/").url   # 'wss://relay.damus.io'
        RelayEndpoint.parse("nos.lol").url           # 'wss://nos.lol'
        RelayEndpoint("ws://localhost:7777").port    # 7777
        ```
    """

    raw_url: str = field(repr=False, compare=False)
    name: str | None = field(default=None, compare=False)

    url: str = field(init=False)
    scheme: str = field(init=False, compare=False)
    host: str = field(init=False, compare=False)
    port: int | None = field(init=False, compare=False)
    path: str | None = field(init=False, compare=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise TypeError(f"relay url must be a str, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)

        object.__setattr__(self, "url", parsed["url"])
        object.__setattr__(self, "scheme", parsed["scheme"])
        object.__setattr__(self, "host", parsed["host"])
        object.__setattr__(self, "port", parsed["port"])
        object.__setattr__(self, "path", parsed["path"])
        if not self.name:
            object.__setattr__(self, "name", parsed["host"])

    @classmethod
    def parse(cls, value: str, name: str | None = None) -> RelayEndpoint:
        """Build an endpoint from a full URL or a bare ``host[/path]``.

        A value without a scheme is treated as a TLS relay (``wss://``).
        """
        value = value.strip()
        if "://" not in value:
            value = f"wss://{value}"
        return cls(value, name)

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        """Validate *raw* per RFC 3986 and return normalized components.

        Raises:
            ValueError: If the scheme is not ``ws``/``wss`` or the URI is invalid.
        """
        uri = uri_reference(raw.strip()).normalize()

        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )

        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        if not host:
            raise ValueError(f"Invalid host in relay URL: {raw!r}")
        port = int(uri.port) if uri.port else None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        formatted_host = f"[{host}]" if ":" in host else host
        if port and port != RelayEndpoint._DEFAULT_PORTS[scheme]:
            authority = f"{formatted_host}:{port}"
        else:
            port = None
            authority = formatted_host

        return {
            "url": f"{scheme}://{authority}{path or ''}",
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
        }
