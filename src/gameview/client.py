"""
Stream Watcher
==============

WebSocket viewer for checking a running server's /stream endpoint.

This module provides the StreamWatcher class which:
    - Connects to /stream and counts binary frame messages
    - Tracks frame rate, payload sizes and inter-frame gaps
    - Reconnects with a fixed backoff on disconnect
    - Optionally hands every payload to a callback

Design Rules:
    - Does NOT decode frames
    - Text messages are counted as protocol errors and ignored
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)


logger = logging.getLogger(__name__)


class StreamWatcherMetrics:
    """Metrics for StreamWatcher observability."""

    __slots__ = (
        "frames_received",
        "bytes_received",
        "reconnect_count",
        "protocol_errors",
        "min_gap",
        "last_frame_at",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.bytes_received: int = 0
        self.reconnect_count: int = 0
        self.protocol_errors: int = 0
        self.min_gap: Optional[float] = None
        self.last_frame_at: float = 0.0

    def record(self, size: int, now: float) -> None:
        if self.last_frame_at > 0:
            gap = now - self.last_frame_at
            if self.min_gap is None or gap < self.min_gap:
                self.min_gap = gap
        self.frames_received += 1
        self.bytes_received += size
        self.last_frame_at = now

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "bytes_received": self.bytes_received,
            "reconnect_count": self.reconnect_count,
            "protocol_errors": self.protocol_errors,
            "min_gap_ms": round(self.min_gap * 1000, 1) if self.min_gap is not None else None,
        }


class StreamWatcher:
    """
    WebSocket consumer for /stream.

    Attributes:
        url: WebSocket URL to connect to
        connected: Whether currently connected
        metrics: Operational metrics

    Example:
        watcher = StreamWatcher("ws://camera.local:9090/stream")
        task = asyncio.create_task(watcher.run())

        # Later, stop gracefully
        await watcher.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        on_frame: Optional[Callable[[bytes], Awaitable[None]]] = None,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        """
        Initialize stream watcher.

        Args:
            url: WebSocket URL of the /stream endpoint
            on_frame: Optional coroutine called with each payload
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
        """
        self.url = url
        self.on_frame = on_frame
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts

        self._websocket = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

        self.metrics = StreamWatcherMetrics()

    @property
    def connected(self) -> bool:
        return self._connected

    async def run(self) -> None:
        """
        Start consuming frames.

        Runs until stop() is called or reconnect attempts are exhausted.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(f"StreamWatcher starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if not self._running:
                    break
                logger.error(f"Connection error: {e}")
                self._connected = False

            if not self._running:
                break

            if (
                self.max_reconnect_attempts > 0
                and self.metrics.reconnect_count >= self.max_reconnect_attempts
            ):
                logger.error(
                    f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded"
                )
                break

            self.metrics.reconnect_count += 1
            backoff_sec = self.reconnect_backoff_ms / 1000.0
            logger.info(
                f"Reconnecting in {backoff_sec:.1f}s "
                f"(attempt {self.metrics.reconnect_count})"
            )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
                break
            except asyncio.TimeoutError:
                pass

        self._running = False
        logger.info("StreamWatcher stopped")

    async def stop(self) -> None:
        """Stop consuming and close the connection."""
        logger.info("StreamWatcher stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except ConnectionClosed:
                pass

        self._connected = False

    async def _connect_and_consume(self) -> None:
        async with websockets.connect(
            self.url,
            max_size=None,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info(f"Connected to stream: {self.url}")

            try:
                async for message in ws:
                    if not self._running:
                        break
                    if isinstance(message, str):
                        self.metrics.protocol_errors += 1
                        logger.warning(f"Unexpected text message ({len(message)} chars)")
                        continue

                    self.metrics.record(len(message), time.monotonic())
                    if self.on_frame is not None:
                        await self.on_frame(message)

            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            except ConnectionClosedError as e:
                logger.warning(f"Connection closed with error: {e}")
                raise
            finally:
                self._connected = False
                self._websocket = None
