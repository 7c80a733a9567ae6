"""
SalesDS Configuration Management

Provides centralized configuration management for the SalesDS system.
Loads settings from JSON files and environment variables.
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass


DEFAULT_CONFIG_PATH = Path(__file__).parent / "salesds_config.json"


@dataclass
class StorageConfig:
    """Storage-related configuration."""
    base_path: str
    durable_dir: str
    logs_dir: str
    session_quota_bytes: int
    durable_quota_bytes: int


@dataclass
class TierConfig:
    """Capacity and default TTL of a single cache tier."""
    capacity: int
    default_ttl_ms: int


@dataclass
class CacheConfig:
    """Cache manager configuration."""
    cleanup_interval_s: float
    auto_memory_max_bytes: int
    auto_session_max_bytes: int
    batch_eviction_pct: float


@dataclass
class SyncConfig:
    """Persistence and write-through configuration."""
    autosave_interval_s: float
    collection_ttl_ms: int


@dataclass
class ValidationConfig:
    """Business rule tuning."""
    growth_ceiling: float


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    console_output: bool


@dataclass
class DebugConfig:
    """Debug configuration."""
    enabled: bool


class SalesDSConfig:
    """Main SalesDS configuration manager."""

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to JSON config file merged over the packaged defaults.
            overrides: Nested dict merged last, after environment variables.
        """
        self.config_path = config_path
        self._config_data = {}
        self._load_config()
        if overrides:
            self._merge_configs(self._config_data, overrides)
        self._create_config_objects()

    def _load_config(self):
        """Load configuration from JSON file and environment variables."""
        if DEFAULT_CONFIG_PATH.exists():
            with open(DEFAULT_CONFIG_PATH, 'r') as f:
                self._config_data = json.load(f)
        else:
            raise FileNotFoundError(f"Default config file not found: {DEFAULT_CONFIG_PATH}")

        if self.config_path:
            config_path = Path(self.config_path)
            if config_path.exists():
                with open(config_path, 'r') as f:
                    custom_config = json.load(f)
                    self._merge_configs(self._config_data, custom_config)
            else:
                raise FileNotFoundError(f"Config file not found: {config_path}")

        self._load_env_overrides()

    def _merge_configs(self, default: dict, custom: dict):
        """Recursively merge custom config into default config."""
        for key, value in custom.items():
            if key in default and isinstance(default[key], dict) and isinstance(value, dict):
                self._merge_configs(default[key], value)
            else:
                default[key] = value

    def _load_env_overrides(self):
        """Load configuration overrides from environment variables."""
        env_mappings = {
            'SALESDS_STORAGE_PATH': ('storage', 'base_path'),
            'SALESDS_MEMORY_CAPACITY': ('memory_tier', 'capacity'),
            'SALESDS_LOG_LEVEL': ('logging', 'level'),
            'SALESDS_DEBUG': ('debug', 'enabled'),
            'SALESDS_AUTOSAVE_INTERVAL': ('sync', 'autosave_interval_s'),
            'SALESDS_CLEANUP_INTERVAL': ('cache', 'cleanup_interval_s'),
            'SALESDS_GROWTH_CEILING': ('validation', 'growth_ceiling'),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                if key in ['capacity']:
                    value = int(value)
                elif key in ['autosave_interval_s', 'cleanup_interval_s', 'growth_ceiling']:
                    value = float(value)
                elif key in ['enabled']:
                    value = value.lower() in ('true', '1', 'yes', 'on')

                if section not in self._config_data:
                    self._config_data[section] = {}
                self._config_data[section][key] = value

    def _create_config_objects(self):
        """Create typed configuration objects from loaded data."""
        self.storage = StorageConfig(**self._config_data['storage'])
        self.memory_tier = TierConfig(**self._config_data['memory_tier'])
        self.session_tier = TierConfig(**self._config_data['session_tier'])
        self.durable_tier = TierConfig(**self._config_data['durable_tier'])
        self.cache = CacheConfig(**self._config_data['cache'])
        self.sync = SyncConfig(**self._config_data['sync'])
        self.validation = ValidationConfig(**self._config_data['validation'])
        self.logging = LoggingConfig(**self._config_data['logging'])
        self.debug = DebugConfig(**self._config_data['debug'])

    def get_storage_path(self) -> Path:
        """Get the main storage path as a Path object."""
        return Path(self.storage.base_path)

    def get_durable_path(self) -> Path:
        """Get the durable key/value storage path."""
        return self.get_storage_path() / self.storage.durable_dir

    def get_logs_path(self) -> Path:
        """Get the logs storage path."""
        return self.get_storage_path() / self.storage.logs_dir

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return json.loads(json.dumps(self._config_data))

    def save_to_file(self, path: str):
        """Save current configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self._config_data, f, indent=2)

    def __repr__(self) -> str:
        return f"SalesDSConfig(config_path={self.config_path})"


def load_config(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> SalesDSConfig:
    """
    Build a configuration object.

    The returned object is owned by the caller (normally a ``SalesDS``
    instance) and handed to every component that needs it.
    """
    return SalesDSConfig(config_path, overrides)
