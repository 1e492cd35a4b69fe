# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Layered YAML configuration for the index writer.

Files are deep-merged in a fixed order, later layers winning:

    settings.yaml <- storage.yaml <- retry_policy.yaml <- other *.yaml (sorted)

``${VAR}`` placeholders are expanded from the environment once a local
``.env`` (if any) has been loaded. The storage section is checked before
the config is handed out.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

from trace_index.indexing.bucketing import BUCKET_COUNT
from trace_index.utils.logger import get_logger

logger = get_logger()

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")

_LAYERS = ("settings.yaml", "storage.yaml", "retry_policy.yaml")

# storage.* settings that must be non-negative integers when present
_COUNTS = ("index_cache_ttl", "index_cache_max", "index_ttl")


class ConfigError(Exception):
    """Malformed configuration or a reference to an unset variable."""
    pass


def merge_layers(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay ``layer`` on ``base``. Nested dicts merge; lists and scalars are replaced."""
    merged = dict(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_layers(current, value)
        else:
            merged[key] = value
    return merged


def expand_env(node: Any) -> Any:
    """Resolve ``${VAR}`` in every string of a parsed YAML tree."""
    if isinstance(node, dict):
        return {key: expand_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_env(item) for item in node]
    if isinstance(node, str):
        return _PLACEHOLDER.sub(_env_value, node)
    return node


def _env_value(match: "re.Match[str]") -> str:
    name = match.group(1)
    if name not in os.environ:
        raise ConfigError(f"Environment variable '{name}' not set")
    return os.environ[name]


def check_storage(config: Dict[str, Any]) -> None:
    """
    Validate the storage section of a merged config.

    Writers and readers must agree on the bucket count, so any other value
    is refused. A query lookback longer than the dedup TTL is logged but
    allowed, since only the deployment can tell whether it matters.

    Raises:
        ConfigError: If a storage value is malformed.
    """
    storage = config.get("storage", {})

    bucket_count = storage.get("bucket_count", BUCKET_COUNT)
    if bucket_count != BUCKET_COUNT:
        raise ConfigError(
            f"storage.bucket_count must be {BUCKET_COUNT} (got {bucket_count}); "
            f"readers fan out over a fixed bucket count"
        )

    for key in _COUNTS:
        value = storage.get(key, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f"storage.{key} must be a non-negative integer (got {value!r})")

    lookback = config.get("query", {}).get("lookback_seconds")
    cache_ttl = storage.get("index_cache_ttl")
    if lookback is not None and cache_ttl is not None and lookback > cache_ttl:
        logger.warning(
            f"query.lookback_seconds={lookback} exceeds storage.index_cache_ttl={cache_ttl}; "
            f"suppressed index writes may be missed by long lookback queries"
        )


def _read_layer(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    # empty file parses to None
    return data if isinstance(data, dict) else {}


class ConfigLoader:
    """
    Reads one config directory into a merged, validated dict.

    Usage::

        config = ConfigLoader("config").load()
        storage = IndexStorage(config)
    """

    def __init__(self, config_dir: str = "config", env_file: str = ".env"):
        """
        Args:
            config_dir: Directory holding the YAML layers.
            env_file: Optional .env file loaded before placeholders expand.

        Raises:
            FileNotFoundError: If config_dir does not exist.
        """
        self.config_dir = Path(config_dir)
        self.env_file = Path(env_file)
        self.config: dict = {}

        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Configuration directory not found: {self.config_dir}")

    def layer_paths(self) -> List[Path]:
        """The required layers in merge order, then any other YAML files by name."""
        extras = sorted(
            path for path in self.config_dir.glob("*.yaml") if path.name not in _LAYERS
        )
        return [self.config_dir / name for name in _LAYERS] + extras

    def load(self) -> dict:
        """
        Build the config.

        Raises:
            FileNotFoundError: If a required layer is missing.
            yaml.YAMLError: If a layer is not valid YAML.
            ConfigError: If a placeholder is unset or validation fails.
        """
        if self.env_file.exists():
            load_dotenv(self.env_file, override=True)

        config: Dict[str, Any] = {}
        for path in self.layer_paths():
            config = merge_layers(config, _read_layer(path))
        config = expand_env(config)
        check_storage(config)

        self.config = config
        return config

    def reload(self) -> dict:
        return self.load()

    def __repr__(self) -> str:
        # values may hold expanded secrets
        return f"ConfigLoader(config_dir='{self.config_dir}', loaded={bool(self.config)})"
