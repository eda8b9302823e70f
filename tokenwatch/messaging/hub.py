import asyncio
import itertools

from tokenwatch.core.models import TransferEvent
from tokenwatch.core.protocols import Subscriber
from tokenwatch.messaging.schemas import TransferMessage
from tokenwatch.utils.logger import LoggerSetup

_subscription_ids = itertools.count(1)


class Subscription:
    """
    Registry-owned handle for one connected subscriber.

    Holds the subscriber's pending messages and delivery counters. Created
    by ``FanoutHub.register`` and only valid until ``unregister``.
    """

    def __init__(self, subscriber: Subscriber, queue_size: int):
        self.id = next(_subscription_ids)
        self.subscriber = subscriber
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.delivered = 0
        self.failed = 0
        self.dropped = 0
        self._pump: asyncio.Task | None = None

    def __repr__(self) -> str:
        return (
            f"Subscription(id={self.id}, pending={self.queue.qsize()}, "
            f"delivered={self.delivered}, failed={self.failed}, dropped={self.dropped})"
        )


class FanoutHub:
    """
    In-memory registry of live feed subscribers.

    Delivery contract:
    - best effort, at most once: a failed send is counted and swallowed,
      a subscriber whose queue is full misses the message
    - each subscriber sees messages in publish order
    - no replay: a subscriber only gets what is published after it registered
    - ``publish`` never waits on a subscriber; every subscription has its own
      queue drained by its own pump task
    """

    def __init__(self, queue_size: int = 1000):
        self._queue_size = queue_size
        self._subscriptions: dict[int, Subscription] = {}
        self._lock = asyncio.Lock()

        self.logger = LoggerSetup.setup(__class__.__name__)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def register(self, subscriber: Subscriber) -> Subscription:
        """Add a subscriber and start delivering to it"""
        subscription = Subscription(subscriber, self._queue_size)
        async with self._lock:
            self._subscriptions[subscription.id] = subscription
            subscription._pump = asyncio.create_task(self._pump(subscription))

        self.logger.info(f"Subscriber {subscription.id} connected ({self.subscriber_count} total)")
        return subscription

    async def unregister(self, subscription: Subscription) -> None:
        """Remove a subscriber; undelivered messages are discarded"""
        async with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)

        if removed is not None:
            await self._stop_pump(removed)
            self.logger.info(f"Subscriber {subscription.id} disconnected ({self.subscriber_count} total)")

    async def publish(self, event: TransferEvent) -> int:
        """
        Queue an applied transfer for every registered subscriber.

        Returns:
            int: Number of subscribers the message was queued for
        """
        message = TransferMessage.from_event(event).to_json()

        async with self._lock:
            targets = list(self._subscriptions.values())

        queued = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(message)
                queued += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                self.logger.debug(f"Subscriber {subscription.id} queue full, dropped {event}")

        return queued

    async def drain(self) -> None:
        """Wait until every queued message has been handed to its subscriber"""
        async with self._lock:
            targets = list(self._subscriptions.values())
        await asyncio.gather(*(s.queue.join() for s in targets))

    async def close(self) -> None:
        """Stop all pumps and forget every subscriber"""
        async with self._lock:
            targets = list(self._subscriptions.values())
            self._subscriptions.clear()

        for subscription in targets:
            await self._stop_pump(subscription)

    async def _pump(self, subscription: Subscription) -> None:
        while True:
            message = await subscription.queue.get()
            try:
                await subscription.subscriber.send_text(message)
                subscription.delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Delivery is best effort; the transport layer unregisters dead connections
                subscription.failed += 1
                self.logger.debug(f"Delivery to subscriber {subscription.id} failed: {e}")
            finally:
                subscription.queue.task_done()

    @staticmethod
    async def _stop_pump(subscription: Subscription) -> None:
        if subscription._pump:
            subscription._pump.cancel()
            try:
                await subscription._pump
            except asyncio.CancelledError:
                pass
            subscription._pump = None

        # Discard undelivered messages so pending drain() calls return
        while True:
            try:
                subscription.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            subscription.queue.task_done()

    def get_status(self) -> str:
        lines = [f"Subscribers: {self.subscriber_count}"]
        for subscription in list(self._subscriptions.values()):
            lines.append(f"  {subscription!r}")
        return "\n".join(lines)
