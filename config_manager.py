"""
Configuration management for the Content Trust Engine.
Handles loading, validating, and providing access to application settings.

Settings resolve as defaults -> JSON file -> environment variables. Engine
tunables are frozen into an ``EngineConfig`` snapshot on every (re)load.
"""

import os
import copy
import json
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, Any, Optional

from recommendation_service.config import (
    DEFAULT_ENGINE_SETTINGS,
    AnomalyConfig,
    EngineConfig,
    FeatureConfig,
    MetricsConfig,
    ProfileConfig,
    RecommendationConfig,
    build_engine_config,
)
from recommendation_service.errors import ConfigurationError


@dataclass(frozen=True)
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool
    admin_user_ids: tuple[str, ...]


@dataclass(frozen=True)
class PathsConfig:
    """Path configuration settings."""
    data_dir: str


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "engine_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._engine_config: Optional[EngineConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with default config
        config = self._get_default_config()

        # Load base config from file
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON in {self.config_file}: {exc}") from exc
            self._merge_config(config, file_config)

        # Override with environment variables
        self._override_with_env(config)

        # Validation failures leave the previous snapshot in place
        self._engine_config = build_engine_config(config)
        self._config = config

    @staticmethod
    def _get_default_config() -> Dict[str, Any]:
        """Get default configuration."""
        config = {
            "app": {
                "host": "0.0.0.0",
                "port": 22581,
                "debug": False,
                "admin_user_ids": []
            },
            "paths": {
                "data_dir": "data"
            },
        }
        config.update(copy.deepcopy(DEFAULT_ENGINE_SETTINGS))
        return config

    @staticmethod
    def _merge_config(config: Dict[str, Any], file_config: Dict[str, Any]) -> None:
        """Merge file configuration into config."""
        for section, values in file_config.items():
            if section in config and isinstance(values, dict):
                config[section].update(values)
            else:
                config[section] = values

    @staticmethod
    def _override_with_env(config: Dict[str, Any]) -> None:
        """Override configuration with environment variables."""
        # App settings
        if os.getenv("APP_HOST"):
            config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        if os.getenv("ADMIN_USER_IDS"):
            config["app"]["admin_user_ids"] = [
                uid.strip() for uid in os.getenv("ADMIN_USER_IDS").split(",") if uid.strip()
            ]

        if os.getenv("ENGINE_DATA_DIR"):
            config["paths"]["data_dir"] = os.getenv("ENGINE_DATA_DIR")

        # Engine tunables
        if os.getenv("ENGINE_BATCH_SIZE"):
            config["recommendations"]["batch_size"] = int(os.getenv("ENGINE_BATCH_SIZE"))

        if os.getenv("ENGINE_MAX_WORKERS"):
            config["recommendations"]["max_workers"] = int(os.getenv("ENGINE_MAX_WORKERS"))

        if os.getenv("ENGINE_DEFAULT_K"):
            config["recommendations"]["default_k"] = int(os.getenv("ENGINE_DEFAULT_K"))

        if os.getenv("ENGINE_MAX_PER_CATEGORY"):
            config["recommendations"]["max_per_category"] = int(os.getenv("ENGINE_MAX_PER_CATEGORY"))

        if os.getenv("ENGINE_HALF_LIFE_DAYS"):
            config["profiles"]["half_life_days"] = float(os.getenv("ENGINE_HALF_LIFE_DAYS"))

        if os.getenv("ENGINE_ANOMALY_THRESHOLD"):
            config["anomaly"]["threshold"] = float(os.getenv("ENGINE_ANOMALY_THRESHOLD"))

        if os.getenv("ENGINE_REBLOCK_GRACE_HOURS"):
            config["anomaly"]["reblock_grace_hours"] = float(os.getenv("ENGINE_REBLOCK_GRACE_HOURS"))

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=int(app_config["port"]),
            debug=bool(app_config["debug"]),
            admin_user_ids=tuple(app_config["admin_user_ids"])
        )

    def get_paths_config(self) -> PathsConfig:
        """Get paths configuration."""
        return PathsConfig(data_dir=self._config["paths"]["data_dir"])

    def get_engine_config(self) -> EngineConfig:
        """Get the current immutable engine configuration snapshot."""
        return self._engine_config

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return copy.deepcopy(self._config)

    def reload(self) -> EngineConfig:
        """Reload configuration and return the new snapshot."""
        self._load_config()
        return self._engine_config

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_app_config() -> AppConfig:
    """Get application configuration."""
    return config_manager.get_app_config()


def get_paths_config() -> PathsConfig:
    """Get paths configuration."""
    return config_manager.get_paths_config()


def get_engine_config() -> EngineConfig:
    """Get the engine configuration snapshot."""
    return config_manager.get_engine_config()


def reload_config() -> EngineConfig:
    """Reload configuration."""
    return config_manager.reload()


def save_config() -> None:
    """Save configuration to file."""
    config_manager.save_config()


__all__ = [
    "AnomalyConfig",
    "AppConfig",
    "ConfigManager",
    "EngineConfig",
    "FeatureConfig",
    "MetricsConfig",
    "PathsConfig",
    "ProfileConfig",
    "RecommendationConfig",
    "get_app_config",
    "get_engine_config",
    "get_paths_config",
    "reload_config",
    "save_config",
]
