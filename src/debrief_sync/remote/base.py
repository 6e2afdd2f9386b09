"""
Remote store contract.

The remote table is the durable store shared by every client. Clients only
ever upsert whole rows, select one (organization, period) scope at a time,
and optionally subscribe to an organization's row changes.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from ..models.rows import ChangeEvent, RemoteRow
from ..utils.logging import get_logger


logger = get_logger("debrief-sync.remote")

ChangeHandler = Callable[[ChangeEvent], Any]


class RemoteSubscription:
    """Handle for an active push subscription."""

    def __init__(self, organization: str, handler: ChangeHandler, on_close: Callable[["RemoteSubscription"], None]):
        self.organization = organization
        self.handler = handler
        self._on_close = on_close
        self.closed = False

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._on_close(self)


class PushFanout:
    """In-process delivery of change events to an organization's subscribers.

    Events are delivered on a later loop iteration, never inside the write
    that produced them.
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[RemoteSubscription]] = defaultdict(list)

    def subscribe(self, organization: str, handler: ChangeHandler) -> RemoteSubscription:
        subscription = RemoteSubscription(organization, handler, self._remove)
        self._subscriptions[organization].append(subscription)
        logger.debug("push_subscribed", organization=organization)
        return subscription

    def _remove(self, subscription: RemoteSubscription) -> None:
        subscribers = self._subscriptions.get(subscription.organization, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def subscriber_count(self, organization: str) -> int:
        return len(self._subscriptions.get(organization, []))

    def publish(self, event: ChangeEvent) -> None:
        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions.get(event.row.organization, [])):
            loop.call_soon(self._deliver, subscription, event)

    def _deliver(self, subscription: RemoteSubscription, event: ChangeEvent) -> None:
        if subscription.closed:
            return
        try:
            result = subscription.handler(event)
            if asyncio.iscoroutine(result):
                asyncio.get_running_loop().create_task(result)
        except Exception as e:
            logger.error(
                "push_handler_error",
                organization=subscription.organization,
                change_type=event.change_type.value,
                error=str(e),
            )

    def close_all(self) -> None:
        for subscribers in self._subscriptions.values():
            for subscription in subscribers:
                subscription.closed = True
        self._subscriptions.clear()


class RemoteStore(ABC):
    """Abstract remote table of review rows."""

    supports_push: bool = True

    @abstractmethod
    async def upsert(self, row: RemoteRow) -> RemoteRow:
        """Insert or replace the row with the same unique key.

        Raises:
            RemoteWriteError: If the write was not accepted
        """

    @abstractmethod
    async def select_scope(self, organization: str, period: str) -> List[RemoteRow]:
        """All rows of one (organization, period).

        Raises:
            RemoteReadError: If the rows could not be fetched
        """

    @abstractmethod
    async def delete(self, organization: str, period: str, area_id: str, category_id: str) -> bool:
        """Remove one row; returns whether it existed."""

    async def subscribe(self, organization: str, handler: ChangeHandler) -> Optional[RemoteSubscription]:
        """Subscribe to an organization's row changes; None without push support."""
        return None

    async def close(self) -> None:
        """Release connections and subscriptions."""


__all__ = [
    'RemoteStore',
    'RemoteSubscription',
    'PushFanout',
    'ChangeHandler',
]
