"""
Notification service for debrief-sync.

Transient, auto-dismissing user notifications (save failures, sync
warnings) delivered through a small publish/subscribe bus. A
NotificationCenter is constructed by whoever owns the UI lifecycle and
passed into the sync engine; nothing here is module-global.
"""

from typing import Optional, Dict, Any, List, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import asyncio
import itertools

from .logging import get_logger


logger = get_logger("debrief-sync.notifications")


class NotificationLevel(Enum):
    """Notification levels."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A single transient notification."""
    id: int
    level: NotificationLevel
    message: str
    key: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the notification should be dismissed."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "level": self.level.value,
            "message": self.message,
            "key": self.key,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "data": self.data,
        }


@dataclass
class Subscription:
    """Notification subscription."""
    handler: Callable[[Notification], Any]
    levels: Optional[set] = None

    def matches(self, notification: Notification) -> bool:
        """Check if subscription matches notification."""
        return self.levels is None or notification.level in self.levels


class NotificationCenter:
    """Publish/subscribe hub for transient notifications."""

    def __init__(self, ttl_seconds: float = 4.0, max_history: int = 100):
        """
        Initialize notification center.

        Args:
            ttl_seconds: Time before a notification auto-dismisses
            max_history: Number of notifications kept for inspection
        """
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_history = max_history
        self._subscriptions: List[Subscription] = []
        self._history: List[Notification] = []
        self._ids = itertools.count(1)

    def subscribe(
        self,
        handler: Callable[[Notification], Any],
        levels: Optional[List[NotificationLevel]] = None
    ) -> Subscription:
        """Subscribe to notifications, optionally filtered by level."""
        subscription = Subscription(
            handler=handler,
            levels=set(levels) if levels else None
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def notify(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        key: Optional[str] = None,
        **data
    ) -> Notification:
        """
        Publish a notification to all matching subscribers.

        Async handlers are scheduled on the running loop; a failing handler
        is logged and does not affect the others.
        """
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=next(self._ids),
            level=level,
            message=message,
            key=key,
            created_at=now,
            expires_at=now + self.ttl,
            data=data,
        )

        self._history.append(notification)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.max_history:]

        logger.debug("notification_published", level=level.value, key=key, message=message)

        for subscription in list(self._subscriptions):
            if not subscription.matches(notification):
                continue
            try:
                result = subscription.handler(notification)
                if asyncio.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception as e:
                logger.error(
                    "notification_handler_error",
                    handler=getattr(subscription.handler, "__name__", repr(subscription.handler)),
                    error=str(e)
                )

        return notification

    def active(self, now: Optional[datetime] = None) -> List[Notification]:
        """Notifications that have not auto-dismissed yet."""
        return [n for n in self._history if not n.is_expired(now)]

    def history(self) -> List[Notification]:
        """All retained notifications, oldest first."""
        return list(self._history)

    def clear(self) -> None:
        """Drop all retained notifications."""
        self._history.clear()


__all__ = [
    'NotificationCenter',
    'Notification',
    'NotificationLevel',
    'Subscription',
]
