"""
Frame Hub
=========

Fan-out of a single capture source to any number of subscribers.

The hub owns one pump task that repeatedly awaits source.next_frame()
and offers each frame to every registered Subscription.

Delivery Policy:
    - offer() never waits; a full subscriber loses its OLDEST frame
    - Each subscriber sees frames in production order
    - A subscriber found closed during delivery is unsubscribed silently
    - No replay: a new subscriber only sees frames produced after subscribe()

Termination:
    - EndOfStream closes every subscriber and the hub (subscribe() then
      raises SourceClosedError)
    - Any other pump error is fatal: it is stored in `error`, subscribers
      are closed and the on_fatal callback runs

Concurrency:
    The registry is only touched from the event loop. publish() walks a
    snapshot, so subscribe/unsubscribe during delivery stays consistent.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from gameview.capture.errors import EndOfStream
from gameview.stream.frame import Frame
from gameview.stream.subscription import Subscription, SubscriptionClosed

if TYPE_CHECKING:
    from gameview.capture.source import CaptureSource


logger = logging.getLogger(__name__)


class SourceClosedError(Exception):
    """The hub's capture source has ended; no new subscriptions."""


class FrameHub:
    """
    Broadcast hub between the capture source and viewer sessions.

    Attributes:
        source: Capture source feeding the pump
        default_queue_size: Buffer size for new subscriptions
        frames_published: Frames delivered by the pump
        error: Fatal pump error, if any

    Example:
        hub = FrameHub(source, default_queue_size=8)
        hub.start()

        subscription = hub.subscribe()
        try:
            async for frame in subscription:
                ...
        finally:
            hub.unsubscribe(subscription)
    """

    def __init__(
        self,
        source: "CaptureSource",
        default_queue_size: int = 8,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self.source = source
        self.default_queue_size = default_queue_size
        self.on_fatal = on_fatal

        self._subscribers: Dict[str, Subscription] = {}
        self._closed = False
        self._pump_task: Optional[asyncio.Task] = None

        self.frames_published: int = 0
        self.last_seq: int = -1
        self.error: Optional[BaseException] = None
        # Drops of subscribers that have already left
        self._retired_dropped: int = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._pump_task is not None and not self._pump_task.done()

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """
        Register a new delivery target.

        Args:
            maxsize: Buffer size, hub default if omitted

        Returns:
            A Subscription that receives frames produced from now on.

        Raises:
            SourceClosedError: The source has ended.
        """
        if self._closed:
            raise SourceClosedError("capture source has ended")

        subscription = Subscription(maxsize=maxsize or self.default_queue_size)
        self._subscribers[subscription.id] = subscription
        logger.info(f"Subscriber {subscription.id} added ({len(self._subscribers)} active)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove and close a subscription. Idempotent."""
        removed = self._subscribers.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            self._retired_dropped += removed.dropped
            logger.info(
                f"Subscriber {subscription.id} removed "
                f"(delivered={removed.delivered}, dropped={removed.dropped}, "
                f"{len(self._subscribers)} active)"
            )

    def subscribers(self) -> List[Subscription]:
        """Snapshot of the registered subscriptions."""
        return list(self._subscribers.values())

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def publish(self, frame: Frame) -> int:
        """
        Offer a frame to every registered subscriber without waiting.

        Args:
            frame: Frame to distribute

        Returns:
            Number of subscribers the frame was offered to.
        """
        delivered = 0
        for subscription in list(self._subscribers.values()):
            try:
                subscription.offer(frame)
                delivered += 1
            except SubscriptionClosed:
                self.unsubscribe(subscription)

        self.frames_published += 1
        self.last_seq = frame.seq
        return delivered

    def start(self) -> asyncio.Task:
        """Start the pump task. Idempotent."""
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump(), name="frame_hub_pump")
        return self._pump_task

    async def _pump(self) -> None:
        logger.info(f"Frame pump started: {self.source.describe()}")
        try:
            while True:
                frame = await self.source.next_frame()
                self.publish(frame)
        except EndOfStream:
            logger.info(f"Capture source ended after {self.frames_published} frames")
            self._close_all()
        except asyncio.CancelledError:
            logger.info("Frame pump cancelled")
            self._close_all()
            raise
        except Exception as e:
            logger.critical(f"Frame pump failed: {e}", exc_info=True)
            self.error = e
            self._close_all()
            if self.on_fatal is not None:
                self.on_fatal(e)

    def _close_all(self) -> None:
        self._closed = True
        for subscription in list(self._subscribers.values()):
            # Buffered frames remain readable; readers see the end afterwards
            subscription.close()
            self._retired_dropped += subscription.dropped
        self._subscribers.clear()

    async def stop(self) -> None:
        """
        Stop the pump and close the source.

        Every subscriber receives the end-of-stream signal.
        """
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass

        self._close_all()
        await self.source.close()
        logger.info("Frame hub stopped")

    def metrics(self) -> dict:
        """
        Get hub metrics for observability.

        Returns:
            Dict with frame, subscriber and drop counters
        """
        active_dropped = sum(s.dropped for s in self._subscribers.values())
        return {
            "frames_published": self.frames_published,
            "last_seq": self.last_seq,
            "subscriber_count": len(self._subscribers),
            "dropped_total": self._retired_dropped + active_dropped,
            "closed": self._closed,
            "running": self.running,
        }
