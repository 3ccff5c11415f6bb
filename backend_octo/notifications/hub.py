"""
Notification hub: fan-out of ledger/vitality events to subscribers.

publish() never raises: a failing subscriber is logged and skipped. The hub
keeps a bounded buffer of recent events for the status API.
"""

from __future__ import annotations

from collections import deque
from typing import Callable

from backend_octo.notifications.events import Event
from backend_octo.octo_logging import get_logger

logger = get_logger(__name__)

DEFAULT_RECENT_EVENTS = 100

Subscriber = Callable[[Event], None]


class NotificationHub:
    def __init__(self, *, recent_limit: int = DEFAULT_RECENT_EVENTS) -> None:
        self._subscribers: list[Subscriber] = []
        self._recent: deque[Event] = deque(maxlen=max(1, recent_limit))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        self._recent.append(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    "notification_subscriber_failed",
                    kind=event.kind,
                    error=str(e),
                )

    def recent(self, limit: int | None = None) -> list[Event]:
        """Most recent events, newest first."""
        items = list(reversed(self._recent))
        return items if limit is None else items[:limit]


def log_event(event: Event) -> None:
    """Subscriber that writes every event to the structured log."""
    payload = event.to_dict()
    kind = payload.pop("kind")
    logger.info(kind, **payload)
