"""Capture source exceptions."""


class CaptureError(Exception):
    """Base class for capture source errors."""


class DeviceError(CaptureError):
    """The device could not be opened, started or read."""


class EndOfStream(CaptureError):
    """The source is exhausted or closed; no further frames will arrive."""


class CaptureStartupError(CaptureError):
    """Opening or starting the source failed at process startup."""
