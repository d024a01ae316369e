r"""nostrpool -- async multi-relay Nostr client.

Signs and verifies content-addressed events, queries many independent relays
concurrently with structured filters, and merges the answers by event id.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
            core            RelayPool, NostrClient, logging, config
           /    \
        utils    |          codec, keys, protocol framing, transport
           \    /
           models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, filters, relay endpoints, profiles, posts.
    utils: Canonical serialization, signing, key handling, relay channels.
    core: Relay pool, client facade, exceptions, logging, YAML loading.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrpool.models import Event
        from nostrpool.core import NostrClient

    Top-level imports (``from nostrpool import NostrClient``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrpool")

__all__ = [
    "ClientConfig",
    "Event",
    "EventKind",
    "KeyPair",
    "Logger",
    "NostrClient",
    "NostrPoolError",
    "Post",
    "Profile",
    "RelayEndpoint",
    "RelayPool",
    "RelayPoolConfig",
    "SubscriptionFilter",
    "Tag",
    "generate_keypair",
    "verify",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ClientConfig": ("nostrpool.core", "ClientConfig"),
    "Logger": ("nostrpool.core", "Logger"),
    "NostrClient": ("nostrpool.core", "NostrClient"),
    "RelayPool": ("nostrpool.core", "RelayPool"),
    "RelayPoolConfig": ("nostrpool.core", "RelayPoolConfig"),
    "NostrPoolError": ("nostrpool.exceptions", "NostrPoolError"),
    "Event": ("nostrpool.models", "Event"),
    "EventKind": ("nostrpool.models", "EventKind"),
    "KeyPair": ("nostrpool.models", "KeyPair"),
    "Post": ("nostrpool.models", "Post"),
    "Profile": ("nostrpool.models", "Profile"),
    "RelayEndpoint": ("nostrpool.models", "RelayEndpoint"),
    "SubscriptionFilter": ("nostrpool.models", "SubscriptionFilter"),
    "Tag": ("nostrpool.models", "Tag"),
    "generate_keypair": ("nostrpool.utils", "generate_keypair"),
    "verify": ("nostrpool.utils", "verify"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrpool' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
