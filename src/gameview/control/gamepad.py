"""
Gamepad Passthrough
===================

Forwards HID reports from a WebSocket to a USB gadget device file.

Input Contract:
    Each message is one JSON-encoded report, either an array of byte
    values ([1, 0, 255, ...]) or a base64 string ("AQD/..."). Reports are
    written verbatim; nothing is sent back.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import BinaryIO, Union

from starlette.websockets import WebSocket, WebSocketDisconnect


logger = logging.getLogger(__name__)


class InvalidReportError(ValueError):
    """A message did not decode to a byte array."""


def parse_report(message: Union[str, bytes]) -> bytes:
    """
    Decode one HID report message.

    Args:
        message: JSON text (or its UTF-8 bytes)

    Returns:
        Raw report bytes.

    Raises:
        InvalidReportError: Not a JSON byte array or base64 string.
    """
    try:
        value = json.loads(message)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidReportError(f"invalid JSON: {e}") from e

    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise InvalidReportError(f"invalid base64 report: {e}") from e

    if isinstance(value, list):
        if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
            raise InvalidReportError("report values must be integers in 0..255")
        return bytes(value)

    raise InvalidReportError(f"unsupported report type: {type(value).__name__}")


class GamepadForwarder:
    """
    Writes reports from one WebSocket connection to the HID device.

    Attributes:
        device_path: HID gadget device file
        reports_written: Reports forwarded so far
    """

    def __init__(self, device_path: str) -> None:
        self.device_path = device_path
        self.reports_written: int = 0

    async def run(self, websocket: WebSocket) -> None:
        """Forward reports until the peer leaves or sends garbage."""
        try:
            device = await asyncio.to_thread(open, self.device_path, "r+b", 0)
        except OSError as e:
            logger.error(f"Gamepad device {self.device_path} unavailable: {e}")
            await websocket.close(code=1011)
            return

        logger.info(f"Gamepad connected, forwarding to {self.device_path}")
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                payload = message.get("text")
                if payload is None:
                    payload = message.get("bytes") or b""

                try:
                    report = parse_report(payload)
                except InvalidReportError as e:
                    logger.warning(f"Gamepad read error: {e}")
                    await websocket.close(code=1003)
                    break

                logger.debug(f"Gamepad report: {list(report)}")
                await asyncio.to_thread(self._write, device, report)
        except WebSocketDisconnect:
            pass
        finally:
            device.close()
            logger.info(f"Gamepad disconnected after {self.reports_written} reports")

    def _write(self, device: BinaryIO, report: bytes) -> None:
        device.write(report)
        self.reports_written += 1
