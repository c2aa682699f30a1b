"""
Static configuration management for Arena.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles infrastructure configuration that is fixed at process startup.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to database, Redis, and logging settings
- Validate critical settings on startup
- Create required directories (logs)

Non-Responsibilities
--------------------
- Gameplay tunables such as ELO K-factor or rank bands (ConfigManager)
- Secrets management (use environment variables)

Environment Variables
---------------------
- DATABASE_URL: async SQLAlchemy URL (postgresql+asyncpg:// or sqlite+aiosqlite://)
- DATABASE_POOL_SIZE / DATABASE_MAX_OVERFLOW / DATABASE_POOL_RECYCLE
- DATABASE_ECHO: SQL echo flag
- REDIS_URL: Redis connection string (optional; Arena degrades without it)
- ARENA_ENV / ENVIRONMENT: deployment environment
- LOG_LEVEL, LOG_JSON: logging behaviour
- CONFIG_DIR: directory holding the YAML tunables (default: <root>/config)
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("test") == Environment.TESTING
        True
        """
        normalized = (value or "").strip().lower()
        if normalized == "test":
            return cls.TESTING
        try:
            return cls(normalized)
        except ValueError:
            # Structured logger is not configured yet during bootstrap
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


class Config:
    """
    Centralized static configuration for Arena.

    All values are loaded from environment variables with defaults. Access
    is via class attributes; the class is never instantiated.

    Usage
    -----
    >>> Config.load()
    >>> Config.DATABASE_URL
    'sqlite+aiosqlite:///./arena.db'
    >>> Config.is_production()
    False
    """

    _validated: bool = False
    _validation_errors: Dict[str, str] = {}

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: str = "sqlite+aiosqlite:///./arena.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 3600
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000

    # =========================================================================
    # Redis Configuration
    # =========================================================================

    REDIS_URL: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: int = 5

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None

    # =========================================================================
    # Directory Configuration
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    SERVICE_NAME: str = "Kotoba Arena"
    SERVICE_VERSION: str = "1.0.0"

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with bounds validation.

        Out-of-range or unparsable values fall back to ``default`` and are
        recorded as validation errors.
        """
        raw_value = os.getenv(key)
        if raw_value is None:
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._record_error(key, f"{key}='{raw_value}' is not a valid integer, using default {default}")
            return default

        if min_val is not None and value < min_val:
            cls._record_error(key, f"{key}={value} is below minimum {min_val}, using default {default}")
            return default
        if max_val is not None and value > max_val:
            cls._record_error(key, f"{key}={value} exceeds maximum {max_val}, using default {default}")
            return default
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """Parse true/false, yes/no, 1/0, on/off (case-insensitive)."""
        raw_value = os.getenv(key)
        if raw_value is None:
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            return True
        if normalized in {"false", "no", "0", "off"}:
            return False

        cls._record_error(key, f"{key}='{raw_value}' is not a valid boolean, using default {default}")
        return default

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        value = os.getenv(key)
        return value if value else default

    @classmethod
    def _record_error(cls, key: str, error: str) -> None:
        logging.warning(error)
        cls._validation_errors[key] = error

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """Load all configuration from environment variables."""
        cls._validation_errors = {}

        cls.DATABASE_URL = cls._safe_str("DATABASE_URL", "sqlite+aiosqlite:///./arena.db")
        cls.DATABASE_POOL_SIZE = cls._safe_int("DATABASE_POOL_SIZE", 20, min_val=1, max_val=200)
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int("DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200)
        cls.DATABASE_ECHO = bool(cls._safe_bool("DATABASE_ECHO", False))
        cls.DATABASE_POOL_RECYCLE = cls._safe_int("DATABASE_POOL_RECYCLE", 3600, min_val=60)
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int("DATABASE_POOL_TIMEOUT", 30, min_val=1)
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )

        cls.REDIS_URL = os.getenv("REDIS_URL") or None
        cls.REDIS_MAX_CONNECTIONS = cls._safe_int("REDIS_MAX_CONNECTIONS", 50, min_val=1, max_val=500)
        cls.REDIS_SOCKET_TIMEOUT = cls._safe_int("REDIS_SOCKET_TIMEOUT", 5, min_val=1, max_val=60)

        env_raw = os.getenv("ARENA_ENV") or os.getenv("ENVIRONMENT") or "development"
        cls.ENVIRONMENT = Environment.from_string(env_raw).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", os.getenv("ARENA_LOG_LEVEL") or "INFO").upper()
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)

        config_dir = os.getenv("CONFIG_DIR")
        if config_dir:
            cls.CONFIG_DIR = Path(config_dir).resolve()
        logs_dir = os.getenv("LOGS_DIR")
        if logs_dir:
            cls.LOGS_DIR = Path(logs_dir).resolve()

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError
            If DATABASE_URL is missing or not an async driver URL in production.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")

        if "+" not in cls.DATABASE_URL.split("://", 1)[0]:
            message = (
                f"DATABASE_URL scheme '{cls.DATABASE_URL.split(':', 1)[0]}' "
                "has no async driver (expected postgresql+asyncpg or sqlite+aiosqlite)"
            )
            if cls.is_production():
                raise ValueError(message)
            logger.warning(message)

        if cls.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"

        if cls.is_production():
            if cls.DATABASE_URL.startswith("sqlite"):
                logger.warning("Production environment is using SQLite")
            if cls.DEBUG:
                logger.warning("DEBUG mode enabled in production")

        cls._validated = True

        if cls._validation_errors:
            logger.warning(f"Configuration warnings: {cls._validation_errors}")

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive configuration summary for startup logs."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split("://", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "redis_configured": bool(cls.REDIS_URL),
            "config_dir": str(cls.CONFIG_DIR),
            "loaded_at": datetime.now(timezone.utc).isoformat(),
            "warnings": len(cls._validation_errors),
        }


Config.load()
