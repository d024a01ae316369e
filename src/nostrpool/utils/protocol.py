"""NIP-01 client/relay message framing.

Builds the three client-to-relay frames (``EVENT``, ``REQ``, ``CLOSE``) and
parses relay-to-client frames into small typed records. Kept free of I/O so
the framing can be exercised without a socket; the WebSocket channel in
[nostrpool.utils.transport][nostrpool.utils.transport] is the only consumer.

Relay-to-client frames:

| Frame    | Shape                                        | Parsed as           |
|----------|----------------------------------------------|---------------------|
| EVENT    | ``["EVENT", sub_id, event]``                 | ``EventMessage``    |
| EOSE     | ``["EOSE", sub_id]``                         | ``EoseMessage``     |
| OK       | ``["OK", event_id, accepted, message]``      | ``OkMessage``       |
| NOTICE   | ``["NOTICE", message]``                      | ``NoticeMessage``   |
| CLOSED   | ``["CLOSED", sub_id, message]``              | ``ClosedMessage``   |
"""

from __future__ import annotations

import json
import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from nostrpool.exceptions import ProtocolError
from nostrpool.models.event import Event
from nostrpool.models.filter import SubscriptionFilter


def _dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def new_subscription_id() -> str:
    """Return a random 16-character hex subscription id."""
    return secrets.token_hex(8)


def encode_event(event: Event) -> str:
    return _dumps(["EVENT", event.to_dict()])


def encode_req(subscription_id: str, filters: Sequence[SubscriptionFilter]) -> str:
    if not filters:
        raise ValueError("REQ requires at least one filter")
    return _dumps(["REQ", subscription_id, *(f.to_dict() for f in filters)])


def encode_close(subscription_id: str) -> str:
    return _dumps(["CLOSE", subscription_id])


@dataclass(frozen=True, slots=True)
class EventMessage:
    subscription_id: str
    event: Event


@dataclass(frozen=True, slots=True)
class EoseMessage:
    subscription_id: str


@dataclass(frozen=True, slots=True)
class OkMessage:
    event_id: str
    accepted: bool
    message: str


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    message: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    subscription_id: str
    message: str


RelayMessage = EventMessage | EoseMessage | OkMessage | NoticeMessage | ClosedMessage


def parse_relay_message(raw: str) -> RelayMessage:
    """Parse one relay-to-client text frame.

    Args:
        raw: The JSON text received from the relay.

    Returns:
        One of the typed message records above.

    Raises:
        ProtocolError: If the frame is not JSON, has an unknown type, or its
            fields have the wrong shape.
    """
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"relay frame is not JSON: {e}") from e

    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise ProtocolError(f"relay frame must be a typed array: {raw[:80]!r}")

    kind, args = frame[0], frame[1:]
    try:
        if kind == "EVENT":
            _expect(args, 2, kind)
            return EventMessage(_str(args[0]), Event.from_dict(args[1]))
        if kind == "EOSE":
            _expect(args, 1, kind)
            return EoseMessage(_str(args[0]))
        if kind == "OK":
            _expect(args, 2, kind)
            if not isinstance(args[1], bool):
                raise ProtocolError("OK accepted flag must be a boolean")
            message = _str(args[2]) if len(args) > 2 else ""
            return OkMessage(_str(args[0]), args[1], message)
        if kind == "NOTICE":
            _expect(args, 1, kind)
            return NoticeMessage(_str(args[0]))
        if kind == "CLOSED":
            _expect(args, 1, kind)
            message = _str(args[1]) if len(args) > 1 else ""
            return ClosedMessage(_str(args[0]), message)
    except ValueError as e:
        raise ProtocolError(f"malformed {kind} frame: {e}") from e

    raise ProtocolError(f"unknown relay frame type: {kind}")


def _expect(args: list[Any], minimum: int, kind: str) -> None:
    if len(args) < minimum:
        raise ProtocolError(f"{kind} frame needs at least {minimum} arguments")


def _str(value: Any) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"expected a string, got {type(value).__name__}")
    return value
