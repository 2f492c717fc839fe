"""
Change Notifier

Explicit subscription channel between the transaction cache and the
presentation layer. There is no global broadcast: a subscriber has to
hold a reference to the notifier (or the cache) to receive events.

The notifier:
- Always logs the event locally (error level for failures)
- Delivers to every subscriber, sync or async
- Handles subscriber failures gracefully: a failing subscriber is logged
  and skipped, it neither stops delivery to the others nor fails the
  cache operation that produced the event
"""

import inspect
from typing import Awaitable, Callable, Optional, Union

import structlog

from finance_tracker.models.events import ChangeEvent


Listener = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """Fan-out of cache change events to subscribers."""

    def __init__(self, listeners: Optional[list[Listener]] = None):
        self._listeners: list[Listener] = list(listeners or [])
        self._logger = structlog.get_logger(__name__)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again (safe to call twice)
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, event: ChangeEvent) -> int:
        """
        Log an event and deliver it to every subscriber.

        Returns:
            Number of subscribers that handled the event without raising
        """
        log_dict = event.to_log_dict()
        if event.is_failure:
            self._logger.error("cache_event", **log_dict)
        else:
            self._logger.info("cache_event", **log_dict)

        delivered = 0
        # Copy so a listener may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                self._logger.error(
                    "listener_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                    event_type=event.event_type.value,
                )
        return delivered
