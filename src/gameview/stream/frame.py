"""
Frame Data Model
=================

Internal frame representation for the distribution pipeline.

Design Rules:
    - One Frame instance is shared by every subscriber
    - Payload is encoded data (MJPEG image or H.264 access unit), never decoded
    - Immutable once produced by the capture source
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Encoded frame produced by a capture source.

    It is immutable (frozen) so it can be handed to any number of
    subscribers without copying.

    Attributes:
        seq: Monotonically increasing sequence number, starting at 0
        timestamp: UNIX timestamp when the frame was captured
        data: Encoded frame payload
    """

    seq: int
    timestamp: float
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Frame(seq={self.seq}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={len(self.data)})"
        )
