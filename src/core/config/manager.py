"""
ConfigManager: dot-notation access to Arena gameplay tunables.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values such as the
  ELO K-factor, rank bands, matchmaking timings and season defaults.
- Back configuration with YAML defaults from the ``config/`` directory.
- Allow runtime overrides (operations tooling, tests) without redeploys.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides live in memory and
  are layered on top of defaults with a deep merge.
- Reads never raise: a missing key resolves to the caller's default.
- Every override is validated by a registered validator for its key, if any.

Dependencies
------------
- PyYAML for loading ``config/*.yaml``
- ``src.core.config.config.Config`` for the config directory location
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigWriteError(ConfigManagerError):
    """Raised when a configuration override fails validation."""


__all__ = ["ConfigManager", "ConfigManagerError", "ConfigWriteError"]


_MISSING = object()


class ConfigManager:
    """
    Gameplay configuration with YAML defaults and in-memory overrides.

    Usage
    -----
    >>> await ConfigManager.initialize()
    >>> ConfigManager.get("elo.k_factor", 32)
    32
    >>> ConfigManager.set("elo.k_factor", 24)
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}

    _initialized: bool = False
    _init_lock: asyncio.Lock = asyncio.Lock()

    # full dot key -> callable(value) -> value
    _validators: Dict[str, Callable[[Any], Any]] = {}

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Optional[Path] = None) -> int:
        """
        Load every YAML file under the config directory into `_defaults`.

        Files are merged in sorted path order so later files win on conflicts.
        Returns the number of files merged.
        """
        config_dir = Path(config_dir or Config.CONFIG_DIR)
        cls._defaults = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return 0

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={"yaml_file_count": loaded_count, "config_dir": str(config_dir)},
        )
        return loaded_count

    @classmethod
    def _rebuild_cache(cls) -> None:
        merged: Dict[str, Any] = copy.deepcopy(cls._defaults)
        cls._deep_merge_dict(merged, cls._overrides)
        cls._cache = merged

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Load YAML defaults (idempotent)."""
        if cls._initialized:
            return

        async with cls._init_lock:
            if cls._initialized:
                return
            cls._load_yaml_configs(config_dir)
            cls._rebuild_cache()
            cls._initialized = True
            logger.info(
                "ConfigManager initialized",
                extra={"top_level_keys": sorted(cls._cache.keys())},
            )

    @classmethod
    def reset(cls) -> None:
        """Drop overrides and loaded defaults; next read reloads YAML."""
        cls._defaults = {}
        cls._overrides = {}
        cls._cache = {}
        cls._initialized = False

    @classmethod
    def _ensure_loaded(cls) -> None:
        if cls._initialized:
            return
        logger.debug("ConfigManager accessed before initialize(); loading YAML defaults lazily")
        cls._load_yaml_configs()
        cls._rebuild_cache()
        cls._initialized = True

    # =========================================================================
    # VALIDATION HOOKS
    # =========================================================================

    @classmethod
    def register_validator(cls, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator for a full dot key.

        The validator receives the candidate value and returns the (possibly
        normalized) value, or raises to reject it.
        """
        cls._validators[key] = validator

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        >>> ConfigManager.get("matchmaking.expand_interval_seconds", 5)
        5
        """
        cls._ensure_loaded()

        value: Any = cls._cache
        for part in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return default if value is None else value

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Override a value at runtime.

        Raises
        ------
        ConfigWriteError
            If a registered validator rejects the value.
        """
        cls._ensure_loaded()

        validator = cls._validators.get(key)
        if validator is not None:
            try:
                value = validator(value)
            except (TypeError, ValueError) as exc:
                raise ConfigWriteError(f"Invalid value for '{key}': {exc}") from exc

        node: Dict[str, Any] = cls._overrides
        parts = key.split(".")
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

        cls._rebuild_cache()
        logger.info("Config override applied", extra={"config_key": key})
