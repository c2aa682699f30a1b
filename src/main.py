"""
Arena - Application Entry Point
===============================

Bootstrap
---------
- Logging and config validation
- Database initialization
- ConfigManager initialization
- Redis (optional; locks and caches degrade without it)
- Service container initialization
- Graceful shutdown

Commands
--------
    python -m src.main init-db   # create tables
    python -m src.main rotate    # one season rotation pass
    python -m src.main health    # database, Redis and service status
    python -m src.main worker    # rotation + matchmaking timers
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Awaitable, Callable, Optional

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event import event_bus
from src.core.logging.logger import get_logger, setup_logging, shutdown_logging
from src.core.redis.service import RedisService
from src.core.services.container import (
    ServiceContainer,
    initialize_service_container,
    shutdown_service_container,
)

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================


async def _startup() -> ServiceContainer:
    """Initialize all infrastructure components."""
    logger.info("========== ARENA INITIALIZATION START ==========")

    try:
        Config.validate()
        logger.info("Configuration validated", extra=Config.get_config_summary())
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    try:
        await DatabaseService.initialize()
        logger.info("Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    try:
        await ConfigManager.initialize()
        logger.info("Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    if await RedisService.initialize():
        logger.info("Redis service initialized")
    else:
        logger.warning("Redis not configured; running without locks or caches")

    try:
        container = initialize_service_container(
            config_manager=ConfigManager,
            event_bus=event_bus,
            logger=get_logger("src.core.services.container"),
        )
        await container.initialize()
        logger.info("Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container


async def _shutdown() -> None:
    """Gracefully shut down infrastructure services."""
    logger.info("========== ARENA SHUTDOWN START ==========")

    try:
        await shutdown_service_container()
        logger.info("Service container shut down")
    except Exception as exc:
        logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    try:
        await RedisService.shutdown()
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Commands
# ============================================================================


async def _init_db(container: ServiceContainer) -> None:
    await DatabaseService.create_all()


async def _rotate(container: ServiceContainer) -> None:
    summary = await container.season_rotation.run()
    logger.info("Rotation finished", extra=summary)


async def _health(container: ServiceContainer) -> None:
    report = {
        "database": await DatabaseService.health_check(),
        "redis": RedisService.is_available(),
        **container.health_check(),
    }
    logger.info("Health report", extra=report)
    if not report["database"]:
        raise RuntimeError("Database health check failed")


async def _every(
    name: str, interval: float, job: Callable[[], Awaitable[object]], stop: asyncio.Event
) -> None:
    """Run ``job`` every ``interval`` seconds until ``stop`` is set."""
    while not stop.is_set():
        try:
            await job()
        except Exception as exc:
            logger.error(f"Scheduled job '{name}' failed: {exc}", exc_info=True)
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


async def _worker(container: ServiceContainer) -> None:
    stop = asyncio.Event()
    _install_signal_handlers(stop)

    rotation_interval = float(ConfigManager.get("season.rotation_interval_seconds", 86400))
    tick_interval = float(ConfigManager.get("matchmaking.tick_interval_seconds", 1))

    logger.info(
        "Worker started",
        extra={"rotation_interval": rotation_interval, "matchmaking_tick": tick_interval},
    )
    await asyncio.gather(
        _every("season_rotation", rotation_interval, container.season_rotation.run, stop),
        _every("matchmaking", tick_interval, container.matchmaking.process_queue, stop),
    )


COMMANDS = {
    "init-db": _init_db,
    "rotate": _rotate,
    "health": _health,
    "worker": _worker,
}


# ============================================================================
# Application Entrypoint
# ============================================================================


async def main(command: str) -> int:
    container: Optional[ServiceContainer] = None
    try:
        container = await _startup()
        await COMMANDS[command](container)
        return 0
    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise
    except Exception as exc:
        logger.critical(f"Fatal error running '{command}': {exc}", exc_info=True)
        return 1
    finally:
        await _shutdown()


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug(f"{sig.name} handler not supported on this platform")


def cli(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Arena season and match tooling")
    parser.add_argument("command", choices=sorted(COMMANDS))
    args = parser.parse_args(argv)

    setup_logging()
    try:
        return asyncio.run(main(args.command))
    except KeyboardInterrupt:
        logger.info("Stopped via keyboard interrupt.")
        return 130
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(cli())
