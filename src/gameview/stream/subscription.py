"""
Subscription
============

Bounded per-subscriber frame buffer used by the FrameHub.

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - offer() never waits, so the hub pump is never stalled by a reader
    - close() is terminal; buffered frames stay readable until drained
    - Event-loop confined: all methods must be called from the hub's loop
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import AsyncIterator, Deque, Optional

from gameview.stream.frame import Frame


logger = logging.getLogger(__name__)


class SubscriptionClosed(Exception):
    """Raised when reading from, or offering to, a closed subscription."""


class Subscription:
    """
    Delivery target registered with a FrameHub.

    Uses a drop-oldest policy when the buffer is full: a live viewer
    prefers the most recent image over a complete history.

    Attributes:
        id: Unique subscriber identifier
        maxsize: Maximum number of frames to buffer
        delivered: Frames handed to the reader
        dropped: Frames discarded due to overflow

    Example:
        subscription = hub.subscribe()

        async for frame in subscription:
            await send(frame.data)
    """

    def __init__(self, maxsize: int = 8, subscriber_id: Optional[str] = None) -> None:
        """
        Initialize subscription.

        Args:
            maxsize: Maximum frames to buffer. Must be >= 1.
            subscriber_id: Identifier, generated if omitted.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self.id = subscriber_id or uuid.uuid4().hex[:12]
        self._maxsize = maxsize
        self._frames: Deque[Frame] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False

        self.offered: int = 0
        self.delivered: int = 0
        self.dropped: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of buffered frames."""
        return len(self._frames)

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, frame: Frame) -> bool:
        """
        Buffer a frame without waiting, dropping the oldest if full.

        Args:
            frame: Frame to buffer

        Returns:
            True if buffered without loss, False if the oldest frame was dropped.

        Raises:
            SubscriptionClosed: The subscription no longer accepts frames.
        """
        if self._closed:
            raise SubscriptionClosed(self.id)

        self.offered += 1
        lossless = True
        if len(self._frames) >= self._maxsize:
            self._frames.popleft()
            self.dropped += 1
            lossless = False
            # First drop and every 100th after that
            if self.dropped % 100 == 1:
                logger.warning(
                    f"Subscriber {self.id} falling behind, dropped oldest frame "
                    f"(total dropped: {self.dropped})"
                )

        self._frames.append(frame)
        self._wakeup.set()
        return lossless

    async def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Get the next frame.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next frame, or None if the timeout elapsed.

        Raises:
            SubscriptionClosed: Closed and no buffered frames remain.
        """
        while not self._frames:
            if self._closed:
                raise SubscriptionClosed(self.id)
            self._wakeup.clear()
            if timeout is None:
                await self._wakeup.wait()
            else:
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    return None

        self.delivered += 1
        return self._frames.popleft()

    def get_nowait(self) -> Optional[Frame]:
        """Get next frame without waiting, None if the buffer is empty."""
        if not self._frames:
            return None
        self.delivered += 1
        return self._frames.popleft()

    def close(self) -> None:
        """Stop accepting frames and wake any waiting reader. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._wakeup.set()

    def clear(self) -> int:
        """
        Discard all buffered frames.

        Returns:
            Number of frames cleared.
        """
        cleared = len(self._frames)
        self._frames.clear()
        return cleared

    def __aiter__(self) -> AsyncIterator[Frame]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Frame]:
        while True:
            try:
                frame = await self.get()
            except SubscriptionClosed:
                return
            if frame is not None:
                yield frame

    def metrics(self) -> dict:
        """
        Get subscription metrics for observability.

        Returns:
            Dict with id, size, maxsize, offered, delivered, dropped, closed
        """
        return {
            "id": self.id,
            "size": self.size,
            "maxsize": self._maxsize,
            "offered": self.offered,
            "delivered": self.delivered,
            "dropped": self.dropped,
            "closed": self._closed,
        }

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, size={self.size}/{self._maxsize}, closed={self._closed})"
