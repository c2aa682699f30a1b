"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for the Arena domain services.
Provides singleton instances of services with proper dependency management.

Responsibilities
----------------
- Initialize all domain services with required dependencies
- Wire event listeners (rank statistics cache invalidation)
- Provide access to services for the CLI and worker

Non-Responsibilities
--------------------
- Infrastructure initialization order (delegated to src.main)
- Business logic

Architecture Notes
------------------
- Receives dependencies (ConfigManager, EventBus) via constructor injection
- All domain services follow the same constructor pattern:
  (config_manager, event_bus, logger), plus explicit collaborators
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.config.manager import ConfigManager
from src.core.logging.logger import get_logger
from src.modules.match import MatchmakingService, MatchService
from src.modules.ranking import RankAggregatorService
from src.modules.season import (
    SeasonRankRewardService,
    SeasonRotationService,
    SeasonService,
    UserSeasonHistoryService,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.event.bus import EventBus

_NOT_INITIALIZED = "ServiceContainer not initialized. Call initialize() first."


class ServiceContainer:
    """
    Dependency injection container for all domain services.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()

        await container.season_rotation.run()
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger

        self._season: Optional[SeasonService] = None
        self._season_history: Optional[UserSeasonHistoryService] = None
        self._season_reward: Optional[SeasonRankRewardService] = None
        self._season_rotation: Optional[SeasonRotationService] = None
        self._rank_aggregator: Optional[RankAggregatorService] = None
        self._match: Optional[MatchService] = None
        self._matchmaking: Optional[MatchmakingService] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            self._season = self._create_service("season", SeasonService)
            self._season_history = self._create_service("season_history", UserSeasonHistoryService)
            self._season_reward = self._create_service("season_reward", SeasonRankRewardService)
            self._rank_aggregator = self._create_service("rank_aggregator", RankAggregatorService)
            self._rank_aggregator.register_listeners()

            start = time.perf_counter()
            self._season_rotation = SeasonRotationService(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger("src.modules.season.rotation.SeasonRotationService"),
                season_service=self._season,
                reward_service=self._season_reward,
            )
            self._service_init_times["season_rotation"] = time.perf_counter() - start

            start = time.perf_counter()
            self._match = MatchService(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger("src.modules.match.service.MatchService"),
                history_service=self._season_history,
            )
            self._service_init_times["match"] = time.perf_counter() - start

            start = time.perf_counter()
            self._matchmaking = MatchmakingService(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger("src.modules.match.matchmaking.MatchmakingService"),
                match_service=self._match,
            )
            self._service_init_times["matchmaking"] = time.perf_counter() - start

            self._init_end = time.perf_counter()
            self._initialized = True

            self._logger.info(
                "Service container initialized successfully",
                extra={
                    "total_time_seconds": round(self._init_end - self._init_start, 3),
                    "service_count": len(self._service_init_times),
                },
            )
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _create_service(self, name: str, cls: type) -> Any:
        """Construct a (config_manager, event_bus, logger) service with timing."""
        start = time.perf_counter()
        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        self._logger.info("Shutting down service container...")
        self._event_bus.unsubscribe("match.completed", "rank-cache:match")
        self._event_bus.unsubscribe("season.*", "rank-cache:season")
        self._initialized = False
        self._logger.info("Service container shut down")

    def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "queue_size": self._matchmaking.queue.size if self._matchmaking else None,
        }

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def season(self) -> SeasonService:
        if not self._initialized or self._season is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._season

    @property
    def season_history(self) -> UserSeasonHistoryService:
        if not self._initialized or self._season_history is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._season_history

    @property
    def season_reward(self) -> SeasonRankRewardService:
        if not self._initialized or self._season_reward is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._season_reward

    @property
    def season_rotation(self) -> SeasonRotationService:
        if not self._initialized or self._season_rotation is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._season_rotation

    @property
    def rank_aggregator(self) -> RankAggregatorService:
        if not self._initialized or self._rank_aggregator is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._rank_aggregator

    @property
    def match(self) -> MatchService:
        if not self._initialized or self._match is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._match

    @property
    def matchmaking(self) -> MatchmakingService:
        if not self._initialized or self._matchmaking is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._matchmaking


# ============================================================================
# Module-level singleton
# ============================================================================

_container: Optional[ServiceContainer] = None


def initialize_service_container(
    config_manager: Any,
    event_bus: EventBus,
    logger: Optional[Logger] = None,
) -> ServiceContainer:
    global _container
    _container = ServiceContainer(
        config_manager=config_manager,
        event_bus=event_bus,
        logger=logger or get_logger(__name__),
    )
    return _container


def get_service_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _container


async def shutdown_service_container() -> None:
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
