"""
Tests for cache configuration loading.
"""

import pytest
import yaml

from geocache import config as config_module
from geocache.config import ENV_PREFIX, CacheConfig, load_config
from geocache.eviction import EvictionPolicy


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate tests from GEOCACHE_* variables and real config files."""
    for name in ("CAPACITY", "EVICTION_POLICY", "LEAF_CAPACITY", "RANDOM_SEED", "THREAD_SAFE"):
        monkeypatch.delenv(ENV_PREFIX + name, raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", [tmp_path / "geocache.yaml"])


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


# ==============================================================================
# CacheConfig Tests
# ==============================================================================


class TestCacheConfig:
    """Tests for CacheConfig construction and validation."""

    def test_defaults(self):
        """Test default configuration values."""
        config = CacheConfig()
        assert config.capacity == 1000
        assert config.eviction_policy is EvictionPolicy.LRU
        assert config.leaf_capacity is None
        assert config.thread_safe is False

    def test_policy_from_string(self):
        """Test eviction policy given as a string."""
        assert CacheConfig(eviction_policy="RANDOM").eviction_policy is EvictionPolicy.RANDOM

    def test_unknown_policy(self):
        """Test unknown eviction policy."""
        with pytest.raises(ValueError):
            CacheConfig(eviction_policy="fifo")

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"capacity": 0}, "capacity must be >= 1"),
            ({"leaf_capacity": 1}, "leaf_capacity must be >= 2"),
            ({"index_capacity": 1}, "index_capacity must be >= 2"),
            ({"fill_factor": 0.0}, "fill_factor"),
            ({"fill_factor": 0.6}, "fill_factor"),
        ],
    )
    def test_validation(self, kwargs, message):
        """Test invalid configuration values."""
        with pytest.raises(ValueError, match=message):
            CacheConfig(**kwargs)

    def test_effective_leaf_capacity(self):
        """Test leaf capacity derived from capacity."""
        assert CacheConfig(capacity=1000).effective_leaf_capacity == 100
        assert CacheConfig(capacity=10).effective_leaf_capacity == 4
        assert CacheConfig(capacity=1000, leaf_capacity=16).effective_leaf_capacity == 16

    def test_dict_round_trip(self):
        """Test dictionary conversion round trip."""
        config = CacheConfig(capacity=50, eviction_policy="random", random_seed=7)
        data = config.to_dict()
        assert data["eviction_policy"] == "random"
        assert CacheConfig.from_dict(data) == config

    def test_from_dict_ignores_unknown_keys(self):
        """Test unknown keys are ignored."""
        config = CacheConfig.from_dict({"capacity": 20, "backend": "postgis"})
        assert config.capacity == 20


# ==============================================================================
# Loader Tests
# ==============================================================================


class TestYamlConfig:
    """Tests for loading configuration files."""

    def test_flat_file(self, tmp_path):
        """Test loading a flat YAML file."""
        path = write_yaml(tmp_path / "flat.yaml", {"capacity": 300, "eviction_policy": "random"})
        config = CacheConfig.from_yaml(str(path))
        assert config.capacity == 300
        assert config.eviction_policy is EvictionPolicy.RANDOM

    def test_cache_section(self, tmp_path):
        """Test loading the cache section of a YAML file."""
        path = write_yaml(
            tmp_path / "app.yaml",
            {"database": {"url": "postgis://"}, "cache": {"capacity": 64, "leaf_capacity": 8}},
        )
        config = CacheConfig.from_yaml(str(path))
        assert config.capacity == 64
        assert config.effective_leaf_capacity == 8

    def test_empty_file(self, tmp_path):
        """Test loading an empty YAML file."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert CacheConfig.from_yaml(str(path)) == CacheConfig()

    def test_missing_file(self, tmp_path):
        """Test loading a missing YAML file."""
        with pytest.raises(FileNotFoundError):
            CacheConfig.from_yaml(str(tmp_path / "nope.yaml"))


class TestEnvironmentConfig:
    """Tests for GEOCACHE_* overrides."""

    def test_overrides(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("GEOCACHE_CAPACITY", "250")
        monkeypatch.setenv("GEOCACHE_EVICTION_POLICY", "Random")
        monkeypatch.setenv("GEOCACHE_RANDOM_SEED", "42")
        monkeypatch.setenv("GEOCACHE_THREAD_SAFE", "yes")

        config = CacheConfig.from_environment()
        assert config.capacity == 250
        assert config.eviction_policy is EvictionPolicy.RANDOM
        assert config.random_seed == 42
        assert config.thread_safe is True

    def test_keeps_base_values(self, monkeypatch):
        """Test environment variables override only what they name."""
        monkeypatch.setenv("GEOCACHE_LEAF_CAPACITY", "6")
        config = CacheConfig.from_environment(CacheConfig(capacity=77))
        assert config.capacity == 77
        assert config.leaf_capacity == 6

    def test_invalid_values_ignored(self, monkeypatch, caplog):
        """Test invalid environment values are ignored with a warning."""
        monkeypatch.setenv("GEOCACHE_CAPACITY", "lots")
        monkeypatch.setenv("GEOCACHE_EVICTION_POLICY", "fifo")

        config = CacheConfig.from_environment()
        assert config.capacity == 1000
        assert config.eviction_policy is EvictionPolicy.LRU
        assert "GEOCACHE_CAPACITY" in caplog.text


class TestLoadConfig:
    """Tests for load_config fallbacks."""

    def test_defaults_when_nothing_found(self):
        """Test defaults when no configuration file exists."""
        assert load_config() == CacheConfig()

    def test_explicit_path(self, tmp_path):
        """Test loading an explicit path."""
        path = write_yaml(tmp_path / "explicit.yaml", {"capacity": 12})
        assert load_config(str(path)).capacity == 12

    def test_missing_explicit_path_falls_back(self, tmp_path):
        """Test a missing explicit path falls back to the default paths."""
        write_yaml(tmp_path / "geocache.yaml", {"capacity": 33})
        assert load_config(str(tmp_path / "missing.yaml")).capacity == 33

    def test_default_path(self, tmp_path):
        """Test loading from a default path."""
        write_yaml(tmp_path / "geocache.yaml", {"cache": {"capacity": 44}})
        assert load_config().capacity == 44

    def test_invalid_default_file_skipped(self, tmp_path):
        """Test an invalid default file is skipped."""
        write_yaml(tmp_path / "geocache.yaml", {"capacity": 0})
        assert load_config() == CacheConfig()

    def test_environment_applied_last(self, tmp_path, monkeypatch):
        """Test environment overrides are applied after the file."""
        path = write_yaml(tmp_path / "explicit.yaml", {"capacity": 12})
        monkeypatch.setenv("GEOCACHE_CAPACITY", "99")
        assert load_config(str(path)).capacity == 99
        assert load_config(str(path), use_environment=False).capacity == 12
