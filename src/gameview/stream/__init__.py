"""
Stream Module
=============

Frame distribution core.

This module provides the fan-out layer between the capture source and
viewer sessions:
    - Frame: Immutable encoded frame (seq, timestamp, data)
    - Subscription: Bounded per-viewer buffer (drops oldest on overflow)
    - FrameHub: Registry of subscriptions plus the capture pump

Example:
    from gameview.stream import FrameHub

    hub = FrameHub(source, default_queue_size=8)
    hub.start()

    subscription = hub.subscribe()
    async for frame in subscription:
        process(frame)
"""

from gameview.stream.frame import Frame
from gameview.stream.subscription import Subscription, SubscriptionClosed
from gameview.stream.hub import FrameHub, SourceClosedError


__all__ = [
    "Frame",
    "Subscription",
    "SubscriptionClosed",
    "FrameHub",
    "SourceClosedError",
]
