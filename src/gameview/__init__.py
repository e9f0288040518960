"""
gameview-server
===============

Shares one camera with many viewers over two transports.

A single capture source feeds a FrameHub, which fans frames out to
independent viewer sessions:
    - WebSocket /stream: paced binary push of encoded frames
    - WebRTC /offer: negotiated peer connection with a passthrough H.264 track

Components:
    - capture: Camera backends (V4L2 via PyAV, mock)
    - stream: Frame, Subscription, FrameHub
    - sessions: StreamingSession, NegotiationSession, SessionRegistry
    - control: Gamepad HID passthrough
    - client: StreamWatcher diagnostic viewer

Example:
    python -m gameview -d /dev/video0 -p 9090
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
