"""
Feature Cache Configuration.

Configuration can be supplied:
- Directly, as a CacheConfig instance
- From a YAML file (optionally under a top-level "cache" section)
- From GEOCACHE_* environment variables, which override file values
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from geocache.eviction import EvictionPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "GEOCACHE_"

DEFAULT_CONFIG_PATHS = [
    Path("geocache.yaml"),
    Path("config/geocache.yaml"),
    Path("~/.geocache/config.yaml"),
]


@dataclass
class CacheConfig:
    """
    Configuration for a feature cache.

    Attributes:
        capacity: Maximum number of cached features
        eviction_policy: Replacement policy when the cache is full
        leaf_capacity: R-tree leaf capacity of the feature index
            (None = derived from capacity)
        index_capacity: R-tree index node capacity
        fill_factor: Minimum R-tree node fill before it is dissolved
        random_seed: Seed for random eviction (None = nondeterministic)
        thread_safe: Serialize public operations with a lock
    """

    capacity: int = 1000
    eviction_policy: EvictionPolicy = EvictionPolicy.LRU
    leaf_capacity: Optional[int] = None
    index_capacity: int = 8
    fill_factor: float = 0.4
    random_seed: Optional[int] = None
    thread_safe: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.eviction_policy, str):
            self.eviction_policy = EvictionPolicy(self.eviction_policy.lower())
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.leaf_capacity is not None and self.leaf_capacity < 2:
            raise ValueError(f"leaf_capacity must be >= 2, got {self.leaf_capacity}")
        if self.index_capacity < 2:
            raise ValueError(f"index_capacity must be >= 2, got {self.index_capacity}")
        if not 0 < self.fill_factor <= 0.5:
            raise ValueError(f"fill_factor must be in (0, 0.5], got {self.fill_factor}")

    @property
    def effective_leaf_capacity(self) -> int:
        """Leaf capacity actually used by the feature index."""
        if self.leaf_capacity is not None:
            return self.leaf_capacity
        return max(self.capacity // 10, 4)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "CacheConfig":
        """
        Create configuration from dictionary.

        Unknown keys are ignored.
        """
        known = {k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "CacheConfig":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            CacheConfig instance
        """
        path = Path(yaml_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(path, "r") as f:
            config_dict = yaml.safe_load(f) or {}

        # Extract cache section if present
        if "cache" in config_dict:
            config_dict = config_dict["cache"] or {}

        return cls.from_dict(config_dict)

    @classmethod
    def from_environment(cls, base: Optional["CacheConfig"] = None) -> "CacheConfig":
        """
        Create configuration from environment variables.

        Environment variables override the values of base (or defaults):
        - GEOCACHE_CAPACITY
        - GEOCACHE_EVICTION_POLICY
        - GEOCACHE_LEAF_CAPACITY
        - GEOCACHE_RANDOM_SEED
        - GEOCACHE_THREAD_SAFE

        Values that fail to parse are ignored.
        """
        values = (base or cls()).to_dict()

        for key in ("capacity", "leaf_capacity", "random_seed"):
            raw = os.environ.get(ENV_PREFIX + key.upper())
            if raw:
                try:
                    values[key] = int(raw)
                except ValueError:
                    logger.warning(f"Ignoring invalid {ENV_PREFIX}{key.upper()}={raw!r}")

        policy = os.environ.get(ENV_PREFIX + "EVICTION_POLICY")
        if policy:
            try:
                values["eviction_policy"] = EvictionPolicy(policy.lower())
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_PREFIX}EVICTION_POLICY={policy!r}")

        thread_safe = os.environ.get(ENV_PREFIX + "THREAD_SAFE")
        if thread_safe:
            values["thread_safe"] = thread_safe.lower() in ("1", "true", "yes")

        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "capacity": self.capacity,
            "eviction_policy": self.eviction_policy.value,
            "leaf_capacity": self.leaf_capacity,
            "index_capacity": self.index_capacity,
            "fill_factor": self.fill_factor,
            "random_seed": self.random_seed,
            "thread_safe": self.thread_safe,
        }


def load_config(
    yaml_path: Optional[str] = None,
    use_environment: bool = True,
) -> CacheConfig:
    """
    Load cache configuration with fallbacks.

    Attempts to load configuration in order:
    1. From specified YAML path (if provided)
    2. From default config paths
    3. Fall back to defaults
    Environment variables are applied on top of whichever was found.

    Args:
        yaml_path: Optional explicit path to YAML config
        use_environment: Whether to apply environment variable overrides

    Returns:
        CacheConfig instance
    """
    config = None

    # Try explicit path first
    if yaml_path:
        try:
            config = CacheConfig.from_yaml(yaml_path)
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {yaml_path}")

    # Try default paths
    if config is None:
        for path in DEFAULT_CONFIG_PATHS:
            path = path.expanduser()
            if path.exists():
                try:
                    config = CacheConfig.from_yaml(str(path))
                    logger.debug(f"Loaded configuration from {path}")
                    break
                except (yaml.YAMLError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping invalid configuration {path}: {e}")

    # Use defaults if no config found
    if config is None:
        config = CacheConfig()

    if use_environment:
        config = CacheConfig.from_environment(config)

    return config
