"""
Publish/subscribe broker for replicated store change notifications.

Every committed store mutation publishes the document keys it touched.
Subscriptions whose path overlaps one of those keys are marked dirty and
re-read the store on their next iteration, so a slow consumer always gets
the latest committed value rather than a backlog of intermediate ones.

When Redis is enabled, notifications are also published on a Redis channel
so subscribers connected to other API instances see the change too.
"""

import asyncio
import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Set

from matchday.services import redis_service
from matchday.utils.datetime_utils import now_ms
from matchday.utils.store_paths import paths_overlap, split_path

logger = logging.getLogger(__name__)

STORE_CHANNEL = os.getenv("STORE_CHANNEL", "matchday:store-changes")

# How long the Redis listener waits before reconnecting after an error
LISTENER_RETRY_SECONDS = 5


@dataclass
class StoreSnapshot:
    """Value of a subscribed path at delivery time."""

    path: str
    value: Any
    server_time: int


class Subscription:
    """
    Live stream of a store path, used as an async iterator.

    The first item is the current value; each further item follows a
    committed change overlapping the path. Iteration ends after ``close()``.
    """

    def __init__(
        self,
        path: str,
        reader: Callable[[str], Awaitable[Any]],
        broker: "PubSubBroker",
    ):
        split_path(path)
        self.path = path
        self._reader = reader
        self._broker = broker
        self._dirty = asyncio.Event()
        self._dirty.set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, key: str) -> bool:
        return paths_overlap(self.path, key)

    def notify(self) -> None:
        self._dirty.set()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._dirty.set()
        self._broker.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StoreSnapshot:
        if self._closed:
            raise StopAsyncIteration
        await self._dirty.wait()
        if self._closed:
            raise StopAsyncIteration
        self._dirty.clear()
        value = await self._reader(self.path)
        return StoreSnapshot(path=self.path, value=value, server_time=now_ms())


class PubSubBroker:
    """Fans store change notifications out to subscriptions."""

    def __init__(self):
        self.instance_id = uuid.uuid4().hex
        self._subscriptions: Set[Subscription] = set()
        self._listener_task: Optional[asyncio.Task] = None

    def subscribe(self, path: str, reader: Callable[[str], Awaitable[Any]]) -> Subscription:
        subscription = Subscription(path, reader, self)
        self._subscriptions.add(subscription)
        logger.debug(f"Subscribed to '{path}' ({len(self._subscriptions)} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def notify_local(self, keys: Iterable[str]) -> int:
        """
        Mark every subscription overlapping one of ``keys`` as dirty.

        Returns:
            Number of subscriptions notified
        """
        keys = list(keys)
        notified = 0
        for subscription in list(self._subscriptions):
            if any(subscription.matches(key) for key in keys):
                subscription.notify()
                notified += 1
        return notified

    async def publish(self, keys: Iterable[str]) -> None:
        """Notify local subscribers and, when configured, other instances."""
        keys = sorted(set(keys))
        if not keys:
            return
        self.notify_local(keys)

        client = await redis_service.get_redis_client()
        if client is None:
            return
        try:
            payload = json.dumps({"origin": self.instance_id, "keys": keys})
            await client.publish(STORE_CHANNEL, payload)
        except Exception as e:
            # Data is committed already; remote subscribers catch up on the next change
            logger.warning(f"Failed to publish store change to Redis: {e}")

    def start(self) -> None:
        """Start relaying notifications from other instances (Redis only)."""
        if not redis_service.is_redis_enabled():
            return
        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.create_task(self._listen())
            logger.info("Store change listener started")

    def stop(self) -> None:
        if self._listener_task and not self._listener_task.done():
            self._listener_task.cancel()
            logger.info("Store change listener stopped")
        for subscription in list(self._subscriptions):
            subscription.close()

    async def _listen(self) -> None:
        while True:
            client = await redis_service.get_redis_client()
            if client is None:
                await asyncio.sleep(LISTENER_RETRY_SECONDS)
                continue
            pubsub = client.pubsub()
            try:
                await pubsub.subscribe(STORE_CHANNEL)
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    self._handle_remote_message(message.get("data"))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Store change listener error, reconnecting: {e}")
                await asyncio.sleep(LISTENER_RETRY_SECONDS)
            finally:
                try:
                    await pubsub.aclose()
                except Exception as e:
                    logger.debug(f"Error closing Redis pubsub: {e}")

    def _handle_remote_message(self, data: Optional[str]) -> None:
        try:
            payload = json.loads(data or "{}")
        except ValueError:
            logger.warning(f"Ignoring malformed store change message: {data!r}")
            return
        if payload.get("origin") == self.instance_id:
            return
        self.notify_local(payload.get("keys") or [])
