"""YAML configuration loading.

Safe YAML file loading with ``yaml.safe_load`` so untrusted configuration
cannot instantiate arbitrary Python objects. Used by
[RelayPool.from_yaml()][nostrpool.core.pool.RelayPool.from_yaml] and
[NostrClient.from_yaml()][nostrpool.core.client.NostrClient.from_yaml].

Examples:
    ```yaml
    # client.yaml
    keys:
      private_key_env: NOSTR_PRIVATE_KEY
    pool:
      relays:
        - wss://relay.damus.io
        - wss://nos.lol
      timeouts:
        fetch: 8.0
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from nostrpool.exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Returns:
        Parsed configuration as a dictionary (empty for an empty file).

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")
    return data
