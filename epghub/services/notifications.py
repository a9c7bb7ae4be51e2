"""
Notifications

Observer registration for provider and merge events. Each orchestrator owns
its own hub; there is no process-wide bus.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    PROVIDERS_CHANGED = "providers_changed"
    MESSAGE = "message"
    MERGE_SUMMARY = "merge_summary"


@dataclass(slots=True, frozen=True)
class Notification:
    kind: NotificationKind
    provider_id: str | None = None
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "provider_id": self.provider_id,
            "message": self.message,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[Notification], None]


class NotificationHub:
    """Delivers notifications to registered subscribers and keeps a short history."""

    def __init__(self, history_size: int = 50):
        self._subscribers: list[Subscriber] = []
        self._history: deque[Notification] = deque(maxlen=history_size)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            Callable that removes the subscription
        """
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        if notification.kind is NotificationKind.MESSAGE and not notification.message.strip():
            return

        self._history.append(notification)
        for subscriber in list(self._subscribers):
            try:
                subscriber(notification)
            except Exception as exc:
                logger.error("Notification subscriber failed: %s", exc, exc_info=True)

    def providers_changed(self, provider_id: str) -> None:
        self.publish(Notification(NotificationKind.PROVIDERS_CHANGED, provider_id=provider_id))

    def message(self, message: str, provider_id: str | None = None) -> None:
        self.publish(Notification(NotificationKind.MESSAGE, provider_id=provider_id, message=message))

    def recent(self, limit: int | None = None) -> list[Notification]:
        items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items
