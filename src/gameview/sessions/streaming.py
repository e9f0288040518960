"""
Streaming Session
=================

Binary push stream of encoded frames over one WebSocket.

Design Rules:
    - One hub subscription per connection, released on every exit path
    - Output is paced to target_fps independently of the camera rate
    - A watcher task notices peer-initiated close while the sender waits
    - No in-band error frame; failures just close the socket
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

from starlette.websockets import WebSocket, WebSocketState

from gameview.stream.hub import FrameHub, SourceClosedError
from gameview.stream.subscription import Subscription


logger = logging.getLogger(__name__)


class StreamingSession:
    """
    WebSocket viewer fed from the FrameHub.

    Attributes:
        id: Session identifier
        interval: Minimum seconds between two sends
        frames_sent: Binary messages written
        bytes_sent: Payload bytes written

    Example:
        await websocket.accept()
        session = StreamingSession(hub, websocket, target_fps=30)
        await session.run()
    """

    def __init__(self, hub: FrameHub, websocket: WebSocket, target_fps: float = 30.0) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.hub = hub
        self.websocket = websocket
        self.interval = 1.0 / target_fps

        self.subscription: Optional[Subscription] = None
        self.created_at = time.time()
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.close_reason: Optional[str] = None

        self._last_send: Optional[float] = None

    async def run(self) -> None:
        """Stream frames until the peer leaves, a send fails, or capture ends."""
        try:
            self.subscription = self.hub.subscribe()
        except SourceClosedError:
            logger.warning(f"Stream {self.id}: capture source has ended, closing")
            self.close_reason = "source closed"
            await self._close_socket(code=1011)
            return

        logger.info(f"Stream {self.id}: viewer connected (subscriber {self.subscription.id})")

        sender = asyncio.create_task(self._send_loop(), name=f"stream_send_{self.id}")
        watcher = asyncio.create_task(self._watch_disconnect(), name=f"stream_watch_{self.id}")
        try:
            done, _ = await asyncio.wait(
                {sender, watcher},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if sender in done:
                error = sender.exception()
                self.close_reason = f"send failed: {error!r}" if error else "capture ended"
            else:
                self.close_reason = "peer disconnected"
        finally:
            # Release the hub slot before any await; the endpoint may be cancelled
            self.hub.unsubscribe(self.subscription)
            for task in (sender, watcher):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sender, watcher, return_exceptions=True)
            await self._close_socket()
            logger.info(
                f"Stream {self.id}: closed ({self.close_reason}), "
                f"sent {self.frames_sent} frames / {self.bytes_sent} bytes"
            )

    async def _send_loop(self) -> None:
        async for frame in self.subscription:
            if self._last_send is not None:
                delay = self.interval - (time.monotonic() - self._last_send)
                if delay > 0:
                    await asyncio.sleep(delay)

            await self.websocket.send_bytes(frame.data)
            self._last_send = time.monotonic()
            self.frames_sent += 1
            self.bytes_sent += frame.size

    async def _watch_disconnect(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            # Viewers have nothing to say on this channel

    async def _close_socket(self, code: int = 1000) -> None:
        if (
            self.websocket.application_state == WebSocketState.DISCONNECTED
            or self.websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, OSError) as e:
            logger.debug(f"Stream {self.id}: close failed: {e}")

    def metrics(self) -> dict:
        """Session summary for /metrics."""
        result = {
            "id": self.id,
            "kind": "websocket",
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "age_seconds": round(time.time() - self.created_at, 1),
        }
        if self.subscription is not None:
            result["subscription"] = self.subscription.metrics()
        return result
