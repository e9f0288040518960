"""
Control Module
==============

Viewer-to-device control channels.

Components:
    - GamepadForwarder: WebSocket -> HID gadget report passthrough
"""

from gameview.control.gamepad import GamepadForwarder, InvalidReportError, parse_report


__all__ = [
    "GamepadForwarder",
    "InvalidReportError",
    "parse_report",
]
