"""Core layer: relay orchestration, the client facade, and infrastructure.

Top of the diamond DAG: depends on ``nostrpool.models`` and
``nostrpool.utils``.

Attributes:
    RelayPool: Concurrent fan-out/fan-in over relay channels.
        See [RelayPool][nostrpool.core.pool.RelayPool].
    NostrClient: Identity-holding facade producing posts and profiles.
        See [NostrClient][nostrpool.core.client.NostrClient].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrpool.core.logger.Logger].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrpool.core.yaml.load_yaml].
    Exceptions: The [NostrPoolError][nostrpool.exceptions.NostrPoolError]
        hierarchy, re-exported from [nostrpool.exceptions][nostrpool.exceptions].

Examples:
    ```python
    from nostrpool.core import NostrClient

    client = NostrClient.from_yaml("client.yaml")
    async with client:
        posts = await client.fetch_posts()
    ```
"""

from nostrpool.exceptions import (
    ConfigurationError,
    ConnectivityError,
    CryptoError,
    IdentityError,
    NostrPoolError,
    ProtocolError,
    PublishingError,
    SigningError,
)

from .client import ClientConfig, NostrClient
from .logger import Logger, StructuredFormatter, configure_logging, format_kv_pairs
from .pool import RelayPool, RelayPoolConfig, RelayPoolTimeoutsConfig
from .yaml import load_yaml


__all__ = [
    "ClientConfig",
    "ConfigurationError",
    "ConnectivityError",
    "CryptoError",
    "IdentityError",
    "Logger",
    "NostrClient",
    "NostrPoolError",
    "ProtocolError",
    "PublishingError",
    "RelayPool",
    "RelayPoolConfig",
    "RelayPoolTimeoutsConfig",
    "SigningError",
    "StructuredFormatter",
    "configure_logging",
    "format_kv_pairs",
    "load_yaml",
]
