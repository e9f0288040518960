"""
Hub Video Track
===============

aiortc media track fed with already-encoded frames.

aiortc pulls media through recv(). Returning an av.Packet instead of a
decoded av.VideoFrame makes the RTP sender packetize the payload as is,
so H.264 access units from the camera reach the browser without
transcoding.

Design Rules:
    - One track per negotiation session, never shared
    - write() never waits (small drop-oldest buffer)
    - write() after stop() raises TrackClosedError
"""

import asyncio
import fractions
import logging
from collections import deque
from typing import Deque, Optional

import av
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from gameview.stream.frame import Frame


logger = logging.getLogger(__name__)


VIDEO_CLOCK_RATE = 90000
VIDEO_TIME_BASE = fractions.Fraction(1, VIDEO_CLOCK_RATE)


class TrackClosedError(Exception):
    """The track has ended and accepts no more frames."""


class HubVideoTrack(MediaStreamTrack):
    """
    Outbound video track for one peer connection.

    Attributes:
        frames_written: Frames accepted by write()
        frames_sent: Frames handed to the RTP sender
        dropped: Frames discarded because the sender fell behind
    """

    kind = "video"

    def __init__(self, maxsize: int = 4) -> None:
        super().__init__()
        self._frames: Deque[Frame] = deque()
        self._maxsize = maxsize
        self._wakeup = asyncio.Event()

        self._first_timestamp: Optional[float] = None
        self._last_pts: int = -1

        self.frames_written: int = 0
        self.frames_sent: int = 0
        self.dropped: int = 0

    def write(self, frame: Frame) -> None:
        """
        Queue an encoded frame for sending.

        Raises:
            TrackClosedError: The track has been stopped.
        """
        if self.readyState != "live":
            raise TrackClosedError(f"track {self.id} has ended")

        if len(self._frames) >= self._maxsize:
            self._frames.popleft()
            self.dropped += 1

        self._frames.append(frame)
        self.frames_written += 1
        self._wakeup.set()

    async def recv(self) -> av.Packet:
        while not self._frames:
            if self.readyState != "live":
                raise MediaStreamError
            self._wakeup.clear()
            await self._wakeup.wait()

        frame = self._frames.popleft()
        if self._first_timestamp is None:
            self._first_timestamp = frame.timestamp

        # RTP timestamps must not go backwards
        pts = int((frame.timestamp - self._first_timestamp) * VIDEO_CLOCK_RATE)
        pts = max(pts, self._last_pts + 1)
        self._last_pts = pts

        packet = av.Packet(frame.data)
        packet.pts = pts
        packet.time_base = VIDEO_TIME_BASE

        self.frames_sent += 1
        return packet

    def stop(self) -> None:
        super().stop()
        self._frames.clear()
        # Wake a pending recv() so it raises MediaStreamError
        self._wakeup.set()
