"""Content-free change notifications for stored tables.

Subscribers register a callback for a named resource ("payments") and are
signalled, without payload, whenever a committed write touches that resource.
The feed is store-wide: a write for any tenant signals every subscriber.

Delivery rules:
- Callbacks run on the subscriber's own event loop via call_soon.
- While a delivery is pending for a subscription, further signals coalesce
  into it, so a burst of changes yields at least one callback after the last
  change but never overlapping invocations.
- A dropped connection silences existing subscriptions; subscribing again
  after the feed is back restores delivery.
"""

import asyncio
import itertools
import logging
from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from pgportal.services.errors import NotificationLost

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]

_subscription_ids = itertools.count(1)


class Subscription:
    """Handle for one registered callback."""

    def __init__(self, resource: str, callback: ChangeCallback, loop: asyncio.AbstractEventLoop):
        self.id = next(_subscription_ids)
        self.resource = resource
        self._callback = callback
        self._loop = loop
        self._pending = False
        self.active = True
        self.lost: NotificationLost | None = None

    def signal(self) -> None:
        """Schedule a delivery unless one is already pending."""
        if not self.active or self.lost is not None or self._pending:
            return
        if self._loop.is_closed():
            self.active = False
            return
        self._pending = True
        self._loop.call_soon_threadsafe(self._deliver)

    def _deliver(self) -> None:
        self._pending = False
        if not self.active or self.lost is not None:
            return
        try:
            self._callback()
        except Exception:
            logger.exception("change_feed: callback failed for subscription %d (%s)", self.id, self.resource)

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, resource={self.resource}, active={self.active})>"


class ChangeFeed:
    """Push channel delivering "changed" signals per resource name."""

    def __init__(self):
        self._subscriptions: dict[str, dict[int, Subscription]] = {}
        self._info_key = f"change_feed:{id(self)}"
        self._listeners: list[tuple[object, str, Callable]] = []

    def subscribe(self, resource: str, callback: ChangeCallback) -> Subscription:
        """Register a callback for a resource.

        Must be called from within a running event loop; callbacks are
        delivered on that loop.
        """
        loop = asyncio.get_running_loop()
        subscription = Subscription(resource, callback, loop)
        self._subscriptions.setdefault(resource, {})[subscription.id] = subscription
        logger.debug("change_feed.subscribe: resource=%s id=%d", resource, subscription.id)
        return subscription

    def unsubscribe(self, subscription: Subscription | None) -> None:
        """Stop delivery to a subscription. Safe to call repeatedly."""
        if subscription is None:
            return
        subscription.active = False
        removed = self._subscriptions.get(subscription.resource, {}).pop(subscription.id, None)
        if removed is not None:
            logger.debug(
                "change_feed.unsubscribe: resource=%s id=%d", subscription.resource, subscription.id
            )

    def subscriber_count(self, resource: str) -> int:
        return len(self._subscriptions.get(resource, {}))

    def publish(self, resource: str) -> None:
        """Signal every live subscription of a resource."""
        subscriptions = list(self._subscriptions.get(resource, {}).values())
        logger.debug("change_feed.publish: resource=%s subscribers=%d", resource, len(subscriptions))
        for subscription in subscriptions:
            subscription.signal()

    def drop_connection(self, reason: str = "connection closed") -> None:
        """Simulate the underlying connection dropping.

        Existing subscriptions stay registered but are marked lost and receive
        nothing further. New subscriptions are delivered normally.
        """
        lost = NotificationLost(reason)
        count = 0
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions.values():
                if subscription.lost is None:
                    subscription.lost = lost
                    count += 1
        logger.warning("change_feed: connection dropped (%s), %d subscriptions lost", reason, count)

    def watch(self, model: type, resource: str) -> None:
        """Publish `resource` after every committed ORM write to `model`.

        Inserts, updates and deletes are collected on the session during
        flush and published once the transaction commits. Rolled back
        writes publish nothing.
        """

        def _collect(mapper, connection, target) -> None:
            session = object_session(target)
            if session is not None:
                session.info.setdefault(self._info_key, set()).add(resource)

        for identifier in ("after_insert", "after_update", "after_delete"):
            event.listen(model, identifier, _collect)
            self._listeners.append((model, identifier, _collect))

        if not any(target is Session for target, _, _ in self._listeners):
            event.listen(Session, "after_commit", self._after_commit)
            event.listen(Session, "after_rollback", self._after_rollback)
            self._listeners.append((Session, "after_commit", self._after_commit))
            self._listeners.append((Session, "after_rollback", self._after_rollback))

        logger.info("change_feed.watch: %s -> %s", model.__name__, resource)

    def _after_commit(self, session: Session) -> None:
        resources = session.info.pop(self._info_key, None)
        for resource in sorted(resources or ()):
            self.publish(resource)

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(self._info_key, None)

    def close(self) -> None:
        """Remove ORM listeners and drop every subscription."""
        for target, identifier, fn in self._listeners:
            event.remove(target, identifier, fn)
        self._listeners.clear()
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions.values():
                subscription.active = False
        self._subscriptions.clear()


__all__ = ["ChangeFeed", "Subscription", "ChangeCallback"]
