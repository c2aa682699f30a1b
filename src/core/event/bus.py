"""
Arena EventBus: async in-process pub/sub.

Purpose
-------
Decouple services: the season and match services publish domain events
(``season.created``, ``season.expired``, ``match.completed`` ...) and other
components (cache invalidation, notifications) subscribe without the
publisher knowing about them.

Execution Model
---------------
- Listeners run in priority order (CRITICAL → HIGH → NORMAL → LOW), and in
  registration order within a priority.
- Each listener is awaited with a timeout; one failing or slow listener is
  logged and never blocks the others or the publisher.
- Patterns support shell-style wildcards: ``"match.*"``, ``"*"``.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from src.core.logging.logger import get_logger

logger = get_logger(__name__)

EventPayload = Dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(slots=True, frozen=True)
class EventListener:
    pattern: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False


class EventBus:
    """
    Priority-ordered async EventBus.

    >>> bus = EventBus()
    >>> bus.subscribe("match.completed", on_match_completed)
    >>> await bus.publish("match.completed", {"match_id": 7})
    """

    def __init__(
        self,
        config_manager: Optional[Any] = None,
        *,
        listener_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._listeners: List[EventListener] = []
        self._sequence = 0

        if listener_timeout_seconds is None and config_manager is not None:
            listener_timeout_seconds = config_manager.get(
                "core.event.listener_timeout_seconds", 5.0
            )
        self._timeout = float(listener_timeout_seconds or 5.0)

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        pattern: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Register a callback taking exactly one payload argument.

        Returns the listener identifier for ``unsubscribe``.

        Raises
        ------
        ValueError
            If the callback does not accept exactly one parameter, or the
            identifier is already registered for the pattern.
        """
        try:
            params = list(inspect.signature(callback).parameters.values())
        except (TypeError, ValueError):
            params = None
        if params is not None and len(params) != 1:
            raise ValueError(
                "Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} for '{getattr(callback, '__qualname__', callback)}'"
            )

        if identifier is None:
            self._sequence += 1
            name = getattr(callback, "__qualname__", type(callback).__name__)
            identifier = f"{name}@{pattern}#{self._sequence}"

        if any(entry.pattern == pattern and entry.identifier == identifier for entry in self._listeners):
            raise ValueError(f"Listener '{identifier}' already subscribed to '{pattern}'")

        self._listeners.append(
            EventListener(
                pattern=pattern,
                callback=callback,
                priority=priority,
                identifier=identifier,
                once=once,
            )
        )
        logger.debug(
            "EventBus: subscribed listener",
            extra={"pattern": pattern, "listener_id": identifier, "priority": priority.name},
        )
        return identifier

    def unsubscribe(self, pattern: str, identifier: str) -> bool:
        before = len(self._listeners)
        self._listeners = [
            entry for entry in self._listeners if not (entry.pattern == pattern and entry.identifier == identifier)
        ]
        return len(self._listeners) < before

    def clear(self) -> None:
        self._listeners.clear()

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return len(self._listeners)
        return sum(1 for entry in self._listeners if fnmatchcase(event_name, entry.pattern))

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver an event to every matching listener.

        Returns the listener results in execution order; failed or timed-out
        listeners contribute ``None``.
        """
        matching = sorted(
            (entry for entry in self._listeners if fnmatchcase(event_name, entry.pattern)),
            key=lambda entry: entry.priority.value,
        )
        # once-listeners are removed before running so re-entrant publishes skip them
        once_ids = {(entry.pattern, entry.identifier) for entry in matching if entry.once}
        if once_ids:
            self._listeners = [
                entry for entry in self._listeners if (entry.pattern, entry.identifier) not in once_ids
            ]

        logger.debug(
            "EventBus: publishing event",
            extra={"event_name": event_name, "listener_count": len(matching)},
        )

        results: List[Any] = []
        for listener in matching:
            results.append(await self._run_listener(listener, event_name, data))
        return results

    async def _run_listener(
        self, listener: EventListener, event_name: str, payload: EventPayload
    ) -> Any:
        try:
            outcome = listener.callback(payload)
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout=self._timeout)
            return outcome
        except asyncio.TimeoutError:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": self._timeout,
                },
            )
        except Exception as exc:
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
        return None
