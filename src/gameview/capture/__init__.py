"""
Capture Module
==============

Camera capture backends producing encoded Frames.

Components:
    - CaptureSource: Lifecycle base class (open/start/next_frame/close)
    - V4L2CaptureSource: Real device via PyAV
    - MockCaptureSource: Scripted payloads or a synthetic test pattern

Example:
    from gameview.capture import create_capture_source

    source = create_capture_source(settings.capture)
    await source.open()
    await source.start()
"""

import logging

from gameview.capture.errors import (
    CaptureError,
    CaptureStartupError,
    DeviceError,
    EndOfStream,
)
from gameview.capture.source import CaptureSource
from gameview.capture.mock import MockCaptureSource
from gameview.capture.v4l2 import V4L2CaptureSource
from gameview.config import CaptureConfig


logger = logging.getLogger(__name__)


def create_capture_source(config: CaptureConfig) -> CaptureSource:
    """Create the capture backend named in the config."""
    if config.backend == "mock":
        logger.info("Using MockCaptureSource")
        return MockCaptureSource(config)
    elif config.backend == "v4l2":
        logger.info(f"Using V4L2CaptureSource on {config.device}")
        return V4L2CaptureSource(config)
    else:
        raise ValueError(f"Unknown capture backend: {config.backend}")


__all__ = [
    "CaptureError",
    "CaptureSource",
    "CaptureStartupError",
    "DeviceError",
    "EndOfStream",
    "MockCaptureSource",
    "V4L2CaptureSource",
    "create_capture_source",
]
