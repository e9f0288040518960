"""
Test Pattern Encoder
====================

Renders a synthetic moving image and encodes it in the configured codec,
so the mock backend produces payloads browsers can actually display.
"""

import fractions
import logging
import time
from typing import List

import av
import cv2
import numpy as np

from gameview.config import CaptureConfig


logger = logging.getLogger(__name__)


class TestPatternEncoder:
    """
    Produces one encoded frame per call to render().

    MJPEG frames are JPEG images from OpenCV. H.264 frames are Annex B
    access units from libx264, with a keyframe every second so late
    joiners can start decoding quickly.
    """

    __test__ = False  # not a pytest class

    def __init__(self, config: CaptureConfig) -> None:
        self.config = config
        self._encoder = None

        if config.codec == "h264":
            encoder = av.CodecContext.create("libx264", "w")
            encoder.width = config.width
            encoder.height = config.height
            encoder.pix_fmt = "yuv420p"
            encoder.framerate = fractions.Fraction(config.fps, 1)
            encoder.time_base = fractions.Fraction(1, config.fps)
            encoder.gop_size = config.fps
            encoder.options = {
                "preset": "ultrafast",
                "tune": "zerolatency",
                "profile": "baseline",
            }
            self._encoder = encoder

    def _draw(self, seq: int) -> np.ndarray:
        width, height = self.config.width, self.config.height
        image = np.zeros((height, width, 3), dtype=np.uint8)

        # Sweeping bar so motion is visible
        bar_width = max(8, width // 20)
        x = (seq * 8) % max(1, width - bar_width)
        image[:, x:x + bar_width] = (0, 160, 255)

        cv2.putText(
            image,
            time.strftime("%Y-%m-%d %H:%M:%S"),
            (40, 60),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.2,
            (0, 255, 0),
            2,
        )
        cv2.putText(
            image,
            f"frame {seq}",
            (40, 110),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.0,
            (255, 255, 255),
            2,
        )
        return image

    def render(self, seq: int) -> bytes:
        """Render and encode frame number `seq`."""
        image = self._draw(seq)

        if self._encoder is None:
            ok, jpeg = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, 80])
            if not ok:
                raise RuntimeError("JPEG encoding failed")
            return jpeg.tobytes()

        video_frame = av.VideoFrame.from_ndarray(image, format="bgr24")
        video_frame = video_frame.reformat(format="yuv420p")
        video_frame.pts = seq
        video_frame.time_base = self._encoder.time_base

        packets: List[av.Packet] = self._encoder.encode(video_frame)
        return b"".join(bytes(p) for p in packets)

    def close(self) -> None:
        self._encoder = None
