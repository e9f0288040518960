"""
V4L2 Capture Backend
====================

Reads encoded frames straight from a Video4Linux2 device with PyAV.

The device is asked for MJPEG or H.264 output and packets are demuxed
without decoding, so every Frame carries exactly what the camera produced.
"""

import logging
from typing import Iterator, Optional

import av

from gameview.capture.source import CaptureSource


logger = logging.getLogger(__name__)


# capture.codec -> ffmpeg v4l2 input_format
INPUT_FORMATS = {
    "h264": "h264",
    "mjpeg": "mjpeg",
}


class V4L2CaptureSource(CaptureSource):
    """
    Capture source backed by a V4L2 device.

    Example:
        source = V4L2CaptureSource(settings.capture)
        await source.open()
        await source.start()
        frame = await source.next_frame()
    """

    def __init__(self, config) -> None:
        super().__init__(config)
        self._container: Optional[av.container.InputContainer] = None
        self._packets: Optional[Iterator[av.Packet]] = None

    def _open_device(self) -> None:
        options = {
            "input_format": INPUT_FORMATS[self.config.codec],
            "video_size": f"{self.config.width}x{self.config.height}",
            "framerate": str(self.config.fps),
        }
        self._container = av.open(self.config.device, format="v4l2", options=options)

        stream = self._container.streams.video[0]
        logger.info(
            f"Negotiated {stream.codec_context.name} "
            f"{stream.codec_context.width}x{stream.codec_context.height}"
        )

    def _start_device(self) -> None:
        # Streaming begins on the first demux
        self._packets = self._container.demux(video=0)

    def _read_packet(self) -> Optional[bytes]:
        for packet in self._packets:
            # Flush packets carry no data
            if packet.size == 0:
                continue
            return bytes(packet)
        return None

    def _close_device(self) -> None:
        if self._container is not None:
            self._container.close()
        self._container = None
        self._packets = None
