"""
Capture Source
==============

Lifecycle contract shared by every capture backend.

A CaptureSource wraps exactly one device handle. Backends implement the
blocking hooks (_open_device, _start_device, _read_packet, _close_device);
this base class provides:
    - Idempotent open()/start() behind a one-time asyncio.Lock barrier
    - next_frame() that runs the blocking read in a worker thread
    - Sequence numbering and capture timestamps for every Frame
    - close() that is safe while a read is in flight

Design Rules:
    - At most one open device handle per source instance
    - A failed open/start is permanent (no camera fallback)
    - After close(), next_frame() raises EndOfStream
"""

import asyncio
import logging
import threading
import time
from typing import Optional

from gameview.capture.errors import DeviceError, EndOfStream
from gameview.config import CaptureConfig
from gameview.stream.frame import Frame


logger = logging.getLogger(__name__)


class CaptureSource:
    """
    Base class for capture backends.

    Subclasses override the underscore hooks, which run in worker
    threads and may block.

    Attributes:
        config: Device configuration
        is_open: Whether the device handle is open
        is_started: Whether streaming has started
        is_closed: Whether close() was called
        frames_read: Frames produced so far
    """

    def __init__(self, config: CaptureConfig) -> None:
        self.config = config

        self._init_lock = asyncio.Lock()
        # Serializes device reads against close() across threads
        self._io_lock = threading.Lock()

        self._open = False
        self._started = False
        self._closed = False
        self._open_error: Optional[BaseException] = None
        self._next_seq = 0

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def frames_read(self) -> int:
        return self._next_seq

    def describe(self) -> str:
        c = self.config
        return f"{c.device} {c.width}x{c.height}@{c.fps} ({c.codec})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> "CaptureSource":
        """
        Open the device once.

        Concurrent and repeated calls share the same initialization and
        return the same source. A failure is remembered and re-raised.

        Raises:
            DeviceError: The device could not be opened.
        """
        async with self._init_lock:
            if self._open_error is not None:
                raise DeviceError(f"capture source failed to open: {self._open_error}")
            if self._closed:
                raise DeviceError("capture source is closed")
            if self._open:
                return self

            try:
                await asyncio.to_thread(self._open_device)
            except Exception as e:
                self._open_error = e
                raise DeviceError(f"failed to open {self.config.device}: {e}") from e

            self._open = True
            logger.info(f"Capture device opened: {self.describe()}")
            return self

    async def start(self) -> None:
        """
        Start streaming. Idempotent.

        Raises:
            DeviceError: Not opened, or the device refused to start.
        """
        async with self._init_lock:
            if not self._open:
                raise DeviceError("capture source must be opened before start")
            if self._started:
                return
            try:
                await asyncio.to_thread(self._start_device)
            except Exception as e:
                raise DeviceError(f"failed to start {self.config.device}: {e}") from e

            self._started = True
            logger.info(f"Capture started: {self.describe()}")

    async def next_frame(self) -> Frame:
        """
        Wait for the next frame.

        Returns:
            Next Frame, numbered and timestamped.

        Raises:
            EndOfStream: Source exhausted or closed.
            DeviceError: Not started, or the device failed mid-stream.
        """
        if self._closed:
            raise EndOfStream()
        if not self._started:
            raise DeviceError("capture source not started")

        data = await asyncio.to_thread(self._read_locked)
        if data is None:
            raise EndOfStream()

        frame = Frame(seq=self._next_seq, timestamp=time.time(), data=data)
        self._next_seq += 1
        return frame

    async def close(self) -> None:
        """Release the device. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self._close_locked)
        logger.info(f"Capture closed after {self._next_seq} frames")

    def _read_locked(self) -> Optional[bytes]:
        with self._io_lock:
            if self._closed:
                return None
            return self._read_packet()

    def _close_locked(self) -> None:
        with self._io_lock:
            if self._open:
                self._close_device()
            self._open = False
            self._started = False

    # -------------------------------------------------------------------------
    # Backend hooks (blocking, run in worker threads)
    # -------------------------------------------------------------------------

    def _open_device(self) -> None:
        raise NotImplementedError

    def _start_device(self) -> None:
        """Most backends stream as soon as they are opened."""

    def _read_packet(self) -> Optional[bytes]:
        """Return the next encoded frame, or None at end of stream."""
        raise NotImplementedError

    def _close_device(self) -> None:
        raise NotImplementedError
