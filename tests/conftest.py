"""
Test Configuration
==================

Pytest fixtures and test doubles for gameview-server.

Async scenarios run through asyncio.run() inside plain test functions.
"""

import asyncio
import time
from typing import List, Optional, Sequence

import pytest
from aiortc import RTCSessionDescription
from starlette.websockets import WebSocketState

from gameview.capture import MockCaptureSource
from gameview.config import CaptureConfig, Settings


OFFER_SDP = (
    "v=0\r\n"
    "o=- 3912393847 3912393847 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 102\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=recvonly\r\n"
    "a=mid:0\r\n"
    "a=rtpmap:102 H264/90000\r\n"
)

ANSWER_SDP = (
    "v=0\r\n"
    "o=- 3912393848 3912393848 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 102\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=sendonly\r\n"
    "a=mid:0\r\n"
    "a=rtpmap:102 H264/90000\r\n"
    "a=candidate:1 1 udp 2130706431 192.0.2.10 50000 typ host\r\n"
    "a=end-of-candidates\r\n"
)


# =============================================================================
# Capture helpers
# =============================================================================

def make_capture_config(**overrides) -> CaptureConfig:
    values = {"backend": "mock", "codec": "h264", "width": 320, "height": 240, "fps": 30}
    values.update(overrides)
    return CaptureConfig(**values)


def make_source(
    payloads: Optional[Sequence[bytes]] = None,
    interval: float = 0.0,
    **kwargs,
) -> MockCaptureSource:
    return MockCaptureSource(make_capture_config(), payloads=payloads, interval=interval, **kwargs)


async def started_source(payloads: Sequence[bytes], interval: float = 0.0) -> MockCaptureSource:
    source = make_source(payloads, interval=interval)
    await source.open()
    await source.start()
    return source


async def wait_until(predicate, timeout: float = 2.0, step: float = 0.005) -> None:
    """Poll `predicate` on the event loop until it holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(step)


# =============================================================================
# Transport doubles
# =============================================================================

class FakeWebSocket:
    """Records binary sends; the peer leaves when disconnect() is called."""

    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.fail_after = fail_after
        self.sent: List[tuple] = []
        self.closed_code: Optional[int] = None
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED
        self._gone = asyncio.Event()

    @property
    def payloads(self) -> List[bytes]:
        return [data for _, data in self.sent]

    async def send_bytes(self, data: bytes) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError("connection reset by peer")
        self.sent.append((time.monotonic(), data))

    async def receive(self) -> dict:
        await self._gone.wait()
        return {"type": "websocket.disconnect", "code": 1001}

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED
        self._gone.set()

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code
        self.application_state = WebSocketState.DISCONNECTED


class FakeTransceiver:
    def __init__(self, sender: object, reject_preferences: bool = False) -> None:
        self.sender = sender
        self.codec_preferences = None
        self._reject = reject_preferences

    def setCodecPreferences(self, codecs) -> None:
        if self._reject:
            raise ValueError("Codec is not in capabilities")
        self.codec_preferences = list(codecs)


class FakePeerConnection:
    """
    Minimal stand-in for RTCPeerConnection.

    gathering:
        "instant" - complete when the local description is set
        "late"    - complete shortly after the local description is set
        "never"   - stays in "gathering"
    """

    def __init__(
        self,
        gathering: str = "instant",
        reject_remote: bool = False,
        reject_preferences: bool = False,
    ) -> None:
        self.gathering = gathering
        self.reject_remote = reject_remote
        self.reject_preferences = reject_preferences

        self.handlers = {}
        self.tracks = []
        self.transceivers: List[FakeTransceiver] = []
        self.localDescription = None
        self.remoteDescription = None
        self.iceGatheringState = "new"
        self.connectionState = "new"
        self.closed = False
        self.gathering_completed_at: Optional[float] = None

    def on(self, event: str):
        def decorator(fn):
            self.handlers[event] = fn
            return fn
        return decorator

    def addTrack(self, track):
        sender = object()
        self.tracks.append(track)
        self.transceivers.append(FakeTransceiver(sender, self.reject_preferences))
        return sender

    def getTransceivers(self):
        return list(self.transceivers)

    async def setRemoteDescription(self, description) -> None:
        if self.reject_remote:
            raise ValueError("Invalid SDP")
        self.remoteDescription = description

    async def createAnswer(self):
        return RTCSessionDescription(sdp=ANSWER_SDP, type="answer")

    async def setLocalDescription(self, description) -> None:
        self.localDescription = description
        self.iceGatheringState = "gathering"
        if self.gathering == "instant":
            self._complete_gathering()
        elif self.gathering == "late":
            asyncio.get_running_loop().call_later(0.05, self._complete_gathering)

    def _complete_gathering(self) -> None:
        self.iceGatheringState = "complete"
        self.gathering_completed_at = time.monotonic()
        handler = self.handlers.get("icegatheringstatechange")
        if handler is not None:
            handler()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.connectionState = "closed"
        handler = self.handlers.get("connectionstatechange")
        if handler is not None:
            await handler()


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def capture_config() -> CaptureConfig:
    return make_capture_config()


@pytest.fixture
def offer_body() -> dict:
    return {"type": "offer", "sdp": OFFER_SDP}


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an app driven by scripted mock frames."""
    return Settings.model_validate({
        "capture": {"backend": "mock", "codec": "h264", "width": 320, "height": 240, "fps": 50},
        "stream": {"target_fps": 1000},
        "webrtc": {"gathering_timeout_seconds": 2.0},
        "gamepad": {"enabled": True, "device": "/nonexistent/hidg0"},
    })
