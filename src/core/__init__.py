"""
Core infrastructure layer for Arena.

- Configuration management (Config, ConfigManager)
- Database subsystem (DatabaseService, ORM base)
- Redis subsystem (RedisService for caching and locking)
- Event system (EventBus)
- Logging (structured logging, logger factory)

Feature modules import from the concrete subpackages; this module only
documents the layer.
"""
