"""
Change feed for live query subscriptions.

Each subscription pairs a loader (re-runs the query and returns the full
result set) with a callback. Subscriptions are registered against the
collections whose changes affect them; when a service publishes a change to
a collection, every matching subscription reloads and re-delivers.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

# Collection names published by the services
EVENTS = "events"
PARTICIPATIONS = "team_participations"
FEEDBACK = "history"

Loader = Callable[[], Awaitable[Any]]
OnChange = Callable[[Any], Awaitable[None]]
Unsubscribe = Callable[[], None]


class Subscription:
    """A registered live query."""

    def __init__(self, subscription_id: int, collections: Set[str], loader: Loader, on_change: OnChange):
        self.id = subscription_id
        self.collections = collections
        self.loader = loader
        self.on_change = on_change
        self.active = True
        # Serializes deliveries so one subscriber sees results in change order
        self._lock = asyncio.Lock()

    async def deliver(self) -> bool:
        """
        Reload the query and hand the result to the callback.

        Returns:
            True if the callback ran, False if the subscription was cancelled
            or the load/callback failed
        """
        async with self._lock:
            if not self.active:
                return False
            try:
                result = await self.loader()
                if not self.active:
                    return False
                await self.on_change(result)
                return True
            except Exception as e:
                logger.warning(f"Error delivering to subscription {self.id}: {e}")
                return False


class ChangeFeed:
    """In-process registry of live query subscriptions."""

    def __init__(self):
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    async def subscribe(
        self,
        collections: Iterable[str],
        loader: Loader,
        on_change: OnChange,
        deliver_initial: bool = True,
    ) -> Unsubscribe:
        """
        Register a live query.

        Args:
            collections: Collection names whose changes should trigger a reload
            loader: Coroutine function returning the full current result set
            on_change: Coroutine function receiving each result set
            deliver_initial: Deliver the current result set immediately

        Returns:
            Callable that cancels the subscription. Callers must invoke it when
            the owning context is torn down; a forgotten subscription keeps
            reloading its query on every change.
        """
        subscription = Subscription(next(self._ids), set(collections), loader, on_change)
        self._subscriptions[subscription.id] = subscription
        logger.debug(
            f"Subscription {subscription.id} registered on {sorted(subscription.collections)} "
            f"(total subscriptions: {len(self._subscriptions)})"
        )

        def unsubscribe() -> None:
            subscription.active = False
            if self._subscriptions.pop(subscription.id, None) is not None:
                logger.debug(f"Subscription {subscription.id} removed")

        if deliver_initial:
            await subscription.deliver()
        return unsubscribe

    async def publish(self, *collections: str) -> int:
        """
        Notify subscribers that documents in the given collections changed.

        Args:
            collections: One or more collection names

        Returns:
            Number of subscriptions that received a fresh result set
        """
        changed = set(collections)
        targets = [
            sub for sub in list(self._subscriptions.values())
            if sub.collections & changed
        ]
        if not targets:
            return 0

        results = await asyncio.gather(*(sub.deliver() for sub in targets))
        return sum(1 for delivered in results if delivered)

    def subscription_count(self) -> int:
        return len(self._subscriptions)


# Global change feed instance
_change_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """
    Get the global change feed instance.

    Returns:
        ChangeFeed instance
    """
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed


async def publish_safely(*collections: str) -> None:
    """Publish a change without letting delivery problems reach the mutating caller."""
    try:
        await get_change_feed().publish(*collections)
    except Exception as e:
        logger.warning(f"Failed to publish change for {collections}: {e}")
