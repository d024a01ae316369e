"""nostrpool exception hierarchy.

Typed exceptions for every error category, so callers can distinguish
caller mistakes (identity, configuration) from per-relay failures and from
cryptographic faults, while letting ``CancelledError`` propagate untouched.

Lives at the package root because both ``nostrpool.utils`` and
``nostrpool.core`` raise these; ``nostrpool.core`` re-exports them.

Exception hierarchy:

```text
NostrPoolError (base -- never raised directly)
├── ConfigurationError      -- bad config, no relays configured
├── IdentityError           -- public or private key required but absent
├── ConnectivityError       -- no relay reachable, channel not connected
├── ProtocolError           -- malformed relay frame
├── CryptoError             -- inconsistent cryptographic result
│   └── SigningError        -- signature failed self-verification
└── PublishingError         -- no relay accepted an event
```

Note:
    Per-relay failures are isolated by
    [RelayPool][nostrpool.core.pool.RelayPool] and only logged (or reported
    as rejected [PublishOutcome][nostrpool.utils.transport.PublishOutcome]
    entries). ``ConnectivityError`` reaches the caller only when no relay at
    all can be connected.
    Fetch timeouts are not errors at all: they yield partial results.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from nostrpool.models.event import Event
    from nostrpool.utils.transport import PublishResult


class NostrPoolError(Exception):
    """Base exception for all nostrpool errors. Never raised directly."""


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------


class ConfigurationError(NostrPoolError):
    """Invalid or missing configuration (YAML, env vars, relay list)."""


class IdentityError(NostrPoolError):
    """An operation needs a public or private key that is not configured.

    Surfaced synchronously and never retried.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrPoolError):
    """No relay is reachable, or a channel was used while disconnected."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrPoolError):
    """A relay sent a frame that is not valid NIP-01."""


# ---------------------------------------------------------------------------
# Cryptography
# ---------------------------------------------------------------------------


class CryptoError(NostrPoolError):
    """A cryptographic operation produced an inconsistent result."""


class SigningError(CryptoError):
    """A freshly produced signature failed verification against its own key.

    Fatal: the operation is aborted instead of returning a falsely signed
    event.
    """


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(NostrPoolError):
    """No connected relay accepted a published event.

    Attributes:
        event: The signed event that was rejected.
        result: Per-relay outcomes of the attempt.
    """

    def __init__(
        self,
        message: str,
        event: Event | None = None,
        result: PublishResult | None = None,
    ) -> None:
        super().__init__(message)
        self.event = event
        self.result = result
