"""
Mock Capture Backend
====================

Deterministic capture source for development and testing.

Two modes:
    - payloads given: emits them in order, then signals end-of-stream
    - no payloads: renders an endless encoded test pattern

Frames are paced at the configured device frame rate unless an explicit
interval is given.
"""

import logging
import time
from typing import Iterator, Optional, Sequence

from gameview.capture.pattern import TestPatternEncoder
from gameview.capture.source import CaptureSource
from gameview.config import CaptureConfig


logger = logging.getLogger(__name__)


class MockCaptureSource(CaptureSource):
    """
    Capture source that needs no hardware.

    Attributes:
        interval: Seconds between frames
        fail_open: Simulate a device that cannot be opened
    """

    def __init__(
        self,
        config: CaptureConfig,
        payloads: Optional[Sequence[bytes]] = None,
        interval: Optional[float] = None,
        fail_open: bool = False,
    ) -> None:
        super().__init__(config)
        self.interval = interval if interval is not None else 1.0 / config.fps
        self.fail_open = fail_open

        self._payloads = list(payloads) if payloads is not None else None
        self._iterator: Optional[Iterator[bytes]] = None
        self._pattern: Optional[TestPatternEncoder] = None
        self._rendered = 0
        self._last_read = 0.0

    def _open_device(self) -> None:
        if self.fail_open:
            raise OSError(f"no such device: {self.config.device}")
        if self._payloads is None:
            self._pattern = TestPatternEncoder(self.config)
        logger.info(
            "MockCaptureSource opened: "
            + (f"{len(self._payloads)} scripted frames" if self._payloads is not None else "test pattern")
        )

    def _start_device(self) -> None:
        if self._payloads is not None:
            self._iterator = iter(self._payloads)

    def _read_packet(self) -> Optional[bytes]:
        if self.interval > 0:
            delay = self.interval - (time.monotonic() - self._last_read)
            if delay > 0:
                time.sleep(delay)
        self._last_read = time.monotonic()

        if self._iterator is not None:
            return next(self._iterator, None)

        while True:
            data = self._pattern.render(self._rendered)
            self._rendered += 1
            if data:
                return data

    def _close_device(self) -> None:
        if self._pattern is not None:
            self._pattern.close()
        self._pattern = None
        self._iterator = None
