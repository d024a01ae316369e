"""Shared constants for the models layer.

Defines enumerations used across model modules and by the orchestration
layer. Placing them here avoids circular dependencies between
``nostrpool.models`` and ``nostrpool.core``.

See Also:
    [nostrpool.models.filter][]: Builds filters from
        [EventKind][nostrpool.models.constants.EventKind] members.
    [nostrpool.core.pool][]: Tracks per-endpoint
        [RelayState][nostrpool.models.constants.RelayState].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Well-known Nostr event kinds used by the client.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        RECOMMEND_RELAY: Kind 2 -- legacy relay recommendation (deprecated).
        CONTACTS: Kind 3 -- contact list with relay hints (NIP-02).
        ENCRYPTED_DIRECT_MESSAGE: Kind 4 -- NIP-04 direct message.
        DELETION: Kind 5 -- event deletion request (NIP-09).
        REACTION: Kind 7 -- reaction (NIP-25).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    CONTACTS = 3
    ENCRYPTED_DIRECT_MESSAGE = 4
    DELETION = 5
    REACTION = 7


class RelayState(StrEnum):
    """Connection state of a configured relay endpoint.

    Transitions are driven by
    [RelayPool][nostrpool.core.pool.RelayPool]:

    ```text
    UNCONFIGURED -> CONNECTING -> CONNECTED -> DISCONNECTED
                        ^             |
                        +-------------+   (reconnect)
    ```

    Any state moves to ``DISCONNECTED`` on explicit teardown or when the
    channel reports a failure.
    """

    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
