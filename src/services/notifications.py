"""
Notification Service

Outbound events for the notification/broadcast collaborator
("bot stopped", "address ready", ...). Subscribers are async callables;
a failing subscriber is logged and never breaks the ledger operation that
already committed.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Dict, List

from loguru import logger

from src.core.enums import LedgerEvent


@dataclass
class Notification:
    """Event delivered to subscribers"""

    event: LedgerEvent
    user_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[Notification], Awaitable[None]]


class NotificationService:
    """Fan-out of ledger events to registered subscribers"""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def publish(self, event: LedgerEvent, user_id: int, **payload: Any) -> Notification:
        """
        Publish an event after the ledger change is committed

        Args:
            event: Event type
            user_id: Recipient user
            **payload: Event details

        Returns:
            The delivered Notification
        """
        notification = Notification(event=event, user_id=user_id, payload=payload)
        logger.info(f"Event {event.value} for user {user_id}: {payload}")

        for subscriber in list(self._subscribers):
            try:
                await subscriber(notification)
            except Exception as e:
                logger.error(f"Notification subscriber failed for {event.value}: {e}")

        return notification
